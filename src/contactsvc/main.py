"""
FastAPI application entry point.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contactsvc.config import get_settings
from contactsvc.contacts.router import router as contacts_router
from contactsvc.shared.correlation import CorrelationIdMiddleware
from contactsvc.shared.database import get_database_manager
from contactsvc.shared.exceptions import (
    AppError,
    InvalidResolutionError,
    NotFoundError,
    RepositoryError,
    RepositoryUnavailableError,
    UniqueConstraintViolation,
    ValidationError,
)
from contactsvc.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()

    logger.info("Application starting", extra={"env": settings.app_env})

    if settings.database_url.startswith("sqlite"):
        # Local SQLite databases have no migrations; build the schema in place.
        await get_database_manager().create_all()

    yield

    logger.info("Shutting down application")
    await get_database_manager().close()
    logger.info("Application shutdown complete")


def status_for(exc: AppError) -> int:
    """HTTP status code for a domain error."""
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (ValidationError, InvalidResolutionError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, UniqueConstraintViolation):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, RepositoryUnavailableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Contact Service API",
        description="Contact duplicate detection, bulk import and resolution",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Map domain exceptions to HTTP responses
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        code = status_for(exc)
        if isinstance(exc, RepositoryError) and code >= 500:
            logger.error(
                "Repository failure",
                extra={"path": request.url.path, "error_type": type(exc).__name__},
            )
        content: dict[str, object] = {"detail": str(exc)}
        if exc.details:
            content["details"] = exc.details
        return JSONResponse(status_code=code, content=content)

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(contacts_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
