from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError

from echoecho.infra.config.settings import settings
from echoecho.infra.database import get_database_manager
from echoecho.core.logger.logger import logger
from echoecho.api.router import health, me, subscription, usage, echoes, notifications, admin
from echoecho.api.middleware.logging.request_logging import RequestLoggingMiddleware
from echoecho.core.exceptions.handler import ServiceError, GlobalErrorHandler


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="""
EchoEcho Farcaster mini app API - subscriptions, usage quotas and echo history.

## Services
- **Subscriptions**: USDC-paid premium and pro tiers on Base with lazy expiry
- **Usage**: Per-tier daily quotas for trending and AI features
- **Echoes**: Echo history and collected insight NFTs
- **Notifications**: Mini app push notifications and expiry reminders

## Authentication
All user endpoints require JWT Bearer token authentication.
        """,
        version=settings.APP_VERSION,
        docs_url="/",
        redoc_url="/redoc"
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
        max_age=600,  # 10 minutes
    )

    # Request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Add centralized error handlers
    app.add_exception_handler(ServiceError, GlobalErrorHandler.service_error_handler)
    app.add_exception_handler(RequestValidationError, GlobalErrorHandler.validation_error_handler)
    app.add_exception_handler(Exception, GlobalErrorHandler.general_exception_handler)

    # Include routers
    app.include_router(health.router, prefix="/api/v1")
    app.include_router(me.router, prefix="/api/v1")
    app.include_router(subscription.router, prefix="/api/v1")
    app.include_router(usage.router, prefix="/api/v1")
    app.include_router(echoes.router, prefix="/api/v1")
    app.include_router(notifications.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "Starting API Gateway",
            extra={"service": settings.APP_NAME, "version": settings.APP_VERSION}
        )

        try:
            await get_database_manager().connect()
        except Exception as e:
            # Sessions reconnect lazily; health reports the outage
            logger.error("Failed to connect to database on startup", extra={"error": str(e)})

    @app.on_event("shutdown")
    async def shutdown_event():
        await get_database_manager().close()
        logger.info(
            "Shutting down API Gateway",
            extra={"service": settings.APP_NAME, "version": settings.APP_VERSION}
        )

    return app
