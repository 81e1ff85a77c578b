"""Ideaflow Core FastAPI application."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..exceptions import (
    BusyError,
    DiscussionLockedError,
    IdeaflowError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StoreFailureError,
)
from ..services import Services, start_services
from .routers import approvals, discussions, ideas, notifications, tasks, trail

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("ideaflow-core")

# Domain error → HTTP status
ERROR_STATUS_CODES: dict[type, int] = {
    NotFoundError: 404,
    InvalidTransitionError: 400,
    PermissionDeniedError: 403,
    BusyError: 409,
    DiscussionLockedError: 423,
    StoreFailureError: 503,
}


def _status_value(status) -> Optional[str]:
    return getattr(status, "value", status)


async def ideaflow_error_handler(request: Request, exc: IdeaflowError) -> JSONResponse:
    status_code = next(
        (code for cls, code in ERROR_STATUS_CODES.items() if isinstance(exc, cls)),
        500,
    )
    content: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, InvalidTransitionError):
        content["current_status"] = _status_value(exc.current_status)
        content["requested_status"] = _status_value(exc.requested_status)
        content["allowed_transitions"] = [_status_value(s) for s in exc.allowed_transitions]
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content=content)


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc), "error": "ValueError"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Services handed to create_app() are owned by the caller
    owned = getattr(app.state, "services", None) is None
    if owned:
        app.state.services = await start_services(settings)
    try:
        yield
    finally:
        if owned:
            await app.state.services.close()


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the FastAPI application, optionally around pre-built services."""
    app = FastAPI(
        title=settings.app_name,
        description="Idea review, task tracking, discussions and audit trail",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    # CORS middleware - Open for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(IdeaflowError, ideaflow_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)

    # Include all business logic routers with /api/v1 prefix
    app.include_router(ideas.router, prefix="/api/v1/ideas")
    app.include_router(tasks.router, prefix="/api/v1/tasks")
    app.include_router(discussions.router, prefix="/api/v1/discussions")
    app.include_router(trail.router, prefix="/api/v1/trail")
    app.include_router(approvals.router, prefix="/api/v1/approvals")
    app.include_router(notifications.router, prefix="/api/v1/notifications")

    @app.get("/")
    async def root():
        """Root endpoint with server info."""
        return {
            "name": settings.app_name,
            "version": "1.0.0",
            "mode": "solo",
            "docs": "/docs",
            "description": "Idea review, task tracking, discussions and audit trail",
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        services: Optional[Services] = getattr(request.app.state, "services", None)
        return {
            "status": "healthy" if services is not None else "starting",
            "mode": "solo",
            "trail_failures": services.trail.failure_count if services else 0,
            "approvals_busy": services.approvals.busy if services else False,
        }

    return app


app = create_app()
logger.info("Ideaflow Core API configured (solo mode - identity from X-User-* headers)")
