"""
Main FastAPI application.

WHY: This is the entry point for the invoice ledger service. It configures
middleware, routes, exception handlers and the reminder scheduler.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ledger.api import invoices
from ledger.core.config import settings
from ledger.core.exceptions import AppException
from ledger.core.exception_handlers import (
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from ledger.services.scheduler import start_scheduler, shutdown_scheduler, get_scheduler_status


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern allows easier testing with different configurations
    (tests build the app with the reminder sweep disabled).

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Invoice and payment ledger API",
        version=settings.VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Register exception handlers
    # WHY: Every ledger rejection reaches the caller as a specific error kind
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """
        Health check endpoint.

        WHY: Lets monitoring see both that the service is up and whether
        the reminder sweep is scheduled.
        """
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "scheduler": get_scheduler_status(),
        }

    @app.on_event("startup")
    async def startup_event():
        """Start the reminder sweep unless disabled (tests, one-off workers)."""
        if settings.REMINDER_SWEEP_ENABLED:
            await start_scheduler()

    @app.on_event("shutdown")
    async def shutdown_event():
        await shutdown_scheduler()

    @app.get("/", tags=["root"])
    async def root() -> dict:
        """Root endpoint with API information."""
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/api/docs",
        }

    app.include_router(invoices.router, prefix=settings.API_V1_PREFIX)

    return app


# Create app instance
# WHY: Lets uvicorn import the app as ledger.main:app
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ledger.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
