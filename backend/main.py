"""
Pepzi - Main Application Entry Point

Goal planning and weekly schedule engine.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pepzi.core.config import get_settings
from pepzi.core.exceptions import (
    InvariantViolationError,
    PersistenceTimeoutError,
    PlanGenerationError,
    ValidationError,
)
from pepzi.core.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings = get_settings()
    logger.info(f"Starting Pepzi in {settings.ENVIRONMENT} mode...")

    if settings.is_local:
        from pepzi.infrastructure.local.database import init_db

        await init_db()

    from pepzi.services.background_scheduler import (
        start_background_scheduler,
        stop_background_scheduler,
    )

    await start_background_scheduler()

    yield

    # Shutdown
    logger.info("Shutting down Pepzi...")
    await stop_background_scheduler()

    from pepzi.infrastructure.local.database import dispose_db

    await dispose_db()


def _error_body(error) -> dict:
    return {"detail": error.message, "details": error.details}


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Pepzi",
        description="Goal plans turned into a conflict-free weekly schedule",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    @app.exception_handler(PersistenceTimeoutError)
    async def persistence_timeout_handler(request: Request, exc: PersistenceTimeoutError):
        logger.warning(f"Persistence unavailable on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=503, content=_error_body(exc))

    @app.exception_handler(InvariantViolationError)
    async def invariant_violation_handler(request: Request, exc: InvariantViolationError):
        logger.error(f"Invariant violation on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=500, content=_error_body(exc))

    @app.exception_handler(PlanGenerationError)
    async def plan_generation_handler(request: Request, exc: PlanGenerationError):
        logger.error(f"Plan generation failed on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=502, content=_error_body(exc))

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content=_error_body(exc))

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    from pepzi.api import constraints, goals, schedule

    app.include_router(goals.router, prefix="/api/goals", tags=["goals"])
    app.include_router(schedule.router, prefix="/api/schedule", tags=["schedule"])
    app.include_router(constraints.router, prefix="/api/constraints", tags=["constraints"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "version": "0.1.0"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
