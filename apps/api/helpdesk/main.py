"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from helpdesk.core.config import settings
from helpdesk.core.errors import register_error_handlers
from helpdesk.core.structured_logging import configure_logging
from helpdesk.core.websocket import RoomManager
from helpdesk.db.session import engine

configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Ticket titles and chat content stay out of Sentry
    )
    logger.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from helpdesk.core.rate_limit import limiter


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Sync handlers publish from worker threads; deliveries run on this loop
    app.state.rooms.bind_loop()
    yield
    await app.state.rooms.wait_idle()


def create_app() -> FastAPI:
    """Build the API with its own room router."""
    app = FastAPI(
        title="Helpdesk API",
        description="Service-desk tickets, notifications and ticket chat",
        version=settings.VERSION,
        docs_url="/docs" if settings.ENV == "dev" else None,
        redoc_url="/redoc" if settings.ENV == "dev" else None,
        lifespan=lifespan,
    )

    # One router per process, injected into handlers via get_event_bus
    app.state.rooms = RoomManager(send_timeout=settings.WS_SEND_TIMEOUT_SECONDS)

    # Add rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_error_handlers(app)

    # CORS middleware - must be added before routers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,  # Required for cookies
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    # ========================================================================
    # Routers
    # ========================================================================

    from helpdesk.routers import messages, notifications, tickets, websocket as ws_router

    app.include_router(tickets.router, prefix="/tickets", tags=["tickets"])
    app.include_router(messages.router, prefix="/tickets", tags=["messages"])
    app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
    app.include_router(ws_router.router)

    @app.get("/health")
    def health():
        """Liveness and database connectivity."""
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            logger.exception("Health check failed")
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "version": settings.VERSION},
            )
        return {"status": "ok", "version": settings.VERSION}

    return app


app = create_app()
