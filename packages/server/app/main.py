"""
TaskHub API Server

Entry point for the FastAPI application.
"""

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import Settings, get_settings
from app.core.database import create_engine, create_session_factory, init_db
from app.core.errors import error_code
from app.core.mailer import Mailer
from app.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware
from app.core.notifications import NotificationDispatcher
from app.core.redis import close_redis, configure_redis, redis_ready
from app.core.tokens import TokenService
from app.api.v1 import router as api_v1_router
from app.api.v1.auth import router as auth_router
from taskhub_shared.schemas.common import ErrorResponse

log = structlog.get_logger()

# Documented error bodies for every router
ERROR_RESPONSES = {
    status_code: {"model": ErrorResponse} for status_code in (400, 401, 403, 404, 409, 422, 502)
}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTP error as ``{"message", "code"}``."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail), "code": error_code(exc)},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "message": "Invalid request",
            "code": "VALIDATION_ERROR",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="TaskHub",
        description="Workspaces, projects and membership for collaborative task management.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Collaborators built once from the immutable settings
    app.state.settings = settings
    app.state.token_service = TokenService(settings)
    app.state.mailer = Mailer(settings)
    app.state.engine = create_engine(settings)
    app.state.session_factory = create_session_factory(app.state.engine)
    app.state.notifier = NotificationDispatcher(app.state.session_factory)
    configure_redis(settings.redis_url)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    )

    # Auth routes
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"], responses=ERROR_RESPONSES)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1", responses=ERROR_RESPONSES)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness checks."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and Redis reachable."""
        try:
            async with app.state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            log.warning("database.unavailable", error=str(exc))
            return JSONResponse(status_code=503, content={"status": "unavailable", "dependency": "database"})
        if not await redis_ready():
            return JSONResponse(status_code=503, content={"status": "unavailable", "dependency": "redis"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("TaskHub starting", debug=settings.debug)
        if settings.create_tables_on_startup:
            await init_db(app.state.engine)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("TaskHub shutting down")
        await close_redis()
        await app.state.engine.dispose()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run("app.main:app", host=_settings.host, port=_settings.port, reload=_settings.debug)
