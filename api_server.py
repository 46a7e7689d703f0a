#!/usr/bin/env python
"""
FastAPI server for the workforce billing engine
Serves the pricing API and runs billing automation when enabled
"""
import sys
import os

# Add src to Python path (relative to api_server.py)
src_path = os.path.join(os.path.dirname(__file__), "src")
if os.path.exists(src_path) and src_path not in sys.path:
    sys.path.insert(0, src_path)

from workforce_billing.app import create_app
from workforce_billing.config import config
from workforce_billing.logging_config import setup_logging

setup_logging(env=config.ENV, log_level=config.LOG_LEVEL)

app = create_app()


if __name__ == "__main__":
    import logging
    import uvicorn

    logger = logging.getLogger(__name__)

    logger.info("=" * 50)
    logger.info("Workforce Billing API - Starting Up")
    logger.info("=" * 50)
    logger.info(f"Environment: {config.ENV}")
    logger.info(f"Payment provider: {config.PAYMENT_PROVIDER}")
    logger.info(f"Billing automation: {'enabled' if config.ENABLE_BILLING_AUTOMATION else 'disabled'}")
    logger.info(f"DATABASE_URL: {'SET' if os.getenv('DATABASE_URL') else 'NOT SET (using SQLite)'}")
    logger.info(f"Starting server on port {config.PORT}")
    logger.info("=" * 50)

    try:
        uvicorn.run(
            app,
            host="0.0.0.0",
            port=config.PORT,
            log_config=None,  # Keep structured logging
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        sys.exit(1)
