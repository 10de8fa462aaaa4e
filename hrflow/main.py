"""HR Flow — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from hrflow.accrual.router import router as accruals_router
from hrflow.audit.router import router as audit_router
from hrflow.common.exceptions import register_exception_handlers
from hrflow.common.rate_limit import limiter
from hrflow.config import settings
from hrflow.database import async_session_factory, engine
from hrflow.holidays.router import router as holidays_router
from hrflow.leave.router import router as leave_router
from hrflow.logging_config import configure_logging
from hrflow.notifications.router import router as notifications_router
from hrflow.notifications.service import InboxNotifier
from hrflow.reimbursements.router import router as reimbursements_router
from hrflow.workflow.events import EventBus

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("HR Flow starting (%s)", settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("HR Flow stopped")


def create_app(event_bus: Optional[EventBus] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        event_bus: Subscribers for workflow transition events. Defaults to
            the in-app inbox only.
    """
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="HR Flow",
        description="Leave and reimbursement request workflow engine",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Notification fan-out, shared by every request
    app.state.event_bus = event_bus or EventBus([InboxNotifier(async_session_factory)])

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])
    app.include_router(reimbursements_router, prefix="/api/v1/reimbursements", tags=["reimbursements"])
    app.include_router(holidays_router, prefix="/api/v1/holidays", tags=["holidays"])
    app.include_router(audit_router, prefix="/api/v1/audit-logs", tags=["audit"])
    app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["notifications"])
    app.include_router(accruals_router, prefix="/api/v1/accruals", tags=["accruals"])

    return app


app = create_app()
