"""
Workforce billing engine: rule-based per-seat pricing, usage metering and
scheduled subscription billing
"""
__version__ = "0.1.0"
