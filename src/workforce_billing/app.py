"""
FastAPI application for the workforce billing engine

The lifespan seeds the default pricing plans and, when billing automation is
enabled, owns the process's SchedulerHandle (kept on app.state).
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import config
from .exceptions import (
    BillingError,
    billing_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from .logging_config import RequestIDMiddleware
from .pricing_routes import router as pricing_router
from .services.metrics import get_metrics_collector
from .services.scheduled_jobs import SchedulerHandle

logger = logging.getLogger(__name__)


def _seed_default_plans():
    from .db.engine import SessionLocal
    from .services.pricing_service import PricingService

    db = SessionLocal()
    try:
        PricingService(db).initialize_default_plans()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to initialize pricing plans: {e}", exc_info=True)
    finally:
        db.close()


def create_app(enable_automation: Optional[bool] = None, seed_plans: bool = True) -> FastAPI:
    """
    Build the API application

    Args:
        enable_automation: Start the billing scheduler on startup
            (defaults to ENABLE_BILLING_AUTOMATION)
        seed_plans: Create the default pricing plans on startup if none exist
    """
    if enable_automation is None:
        enable_automation = config.ENABLE_BILLING_AUTOMATION

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if seed_plans:
            _seed_default_plans()

        scheduler = SchedulerHandle()
        app.state.billing_scheduler = scheduler
        if enable_automation:
            scheduler.start()
        else:
            logger.info("Billing automation disabled (ENABLE_BILLING_AUTOMATION not set)")

        yield

        scheduler.stop()

    app = FastAPI(title="Workforce Billing API", version=config.BUILD_VERSION, lifespan=lifespan)

    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(BillingError, billing_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(pricing_router)

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "healthy", "service": "workforce-billing", "version": config.BUILD_VERSION}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics():
        """Prometheus metrics"""
        return get_metrics_collector().format_prometheus()

    return app
