"""
Pricing, metering and billing services
"""
