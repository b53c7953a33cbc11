"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trip_engine import __version__
from trip_engine.api.routes import catalog_router, health_router, trips_router
from trip_engine.database import create_schema, init_db
from trip_engine.errors import (
    ConcurrentModificationError,
    GateViolation,
    PersistenceFailure,
    TripNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    engine, _ = init_db()
    await create_schema(engine)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Trip Engine API",
        description="Trip cost governance and lifecycle engine",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Validation failed",
                "code": "VALIDATION_ERROR",
                "errors": [e.to_dict() for e in exc.errors],
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(p) for p in err["loc"] if p != "body") or "body",
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": "Validation failed", "code": "VALIDATION_ERROR", "errors": errors},
        )

    @app.exception_handler(GateViolation)
    async def gate_violation_handler(request: Request, exc: GateViolation) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": str(exc),
                "code": "GATE_VIOLATION",
                "from_status": exc.from_status,
                "to_status": exc.to_status,
                "blocking_count": exc.blocking_count,
                "errors": [e.to_dict() for e in exc.errors],
            },
        )

    @app.exception_handler(TripNotFoundError)
    async def not_found_handler(request: Request, exc: TripNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc), "code": "NOT_FOUND"},
        )

    @app.exception_handler(PersistenceFailure)
    async def persistence_handler(request: Request, exc: PersistenceFailure) -> JSONResponse:
        if isinstance(exc, ConcurrentModificationError):
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={"detail": str(exc), "code": "CONCURRENT_MODIFICATION"},
            )
        logger.error("Persistence failure on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "The trip store is unavailable", "code": "PERSISTENCE_FAILURE"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(trips_router, prefix="/api/v1")
    app.include_router(catalog_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
