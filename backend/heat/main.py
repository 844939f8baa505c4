from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
from .config import Settings, get_settings
from .database import create_db_engine, create_session_factory, init_db
from .middleware.basic_auth import SiteLockMiddleware
from .services.scene_generation import SceneGenerator
import logging
import os

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    handlers = [logging.StreamHandler()]
    if settings.log_file:
        log_dir = os.path.dirname(settings.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file))

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves as JSON shaped ``{"error": ...}``"""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request data", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    scene_generator: Optional[SceneGenerator] = None,
) -> FastAPI:
    """Build the application around an explicit settings object"""
    settings = settings or get_settings()
    configure_logging(settings)

    if engine is None:
        engine = create_db_engine(settings.database_url, echo=settings.database_echo)
    init_db(engine)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.scene_generator = scene_generator

    register_exception_handlers(app)

    # Add CORS middleware
    logger.info(f"CORS Origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Added last so it wraps everything, CORS included
    if settings.site_password:
        if settings.is_development:
            logger.info("Site password set but ignored in development")
        else:
            logger.info("Site lock enabled")
        app.add_middleware(SiteLockMiddleware, settings=settings)

    # Import and include routers
    from .api import admin, auth, catalog, profile, stories

    app.include_router(auth.router, prefix="/api/auth", tags=["authentication"])
    app.include_router(stories.router, prefix="/api/stories", tags=["stories"])
    app.include_router(catalog.router, prefix="/api", tags=["catalog"])
    app.include_router(profile.router, prefix="/api", tags=["profile"])
    app.include_router(admin.router, prefix="/api/admin", tags=["admin"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": settings.app_version,
        }

    # Root endpoint
    @app.get("/")
    async def root():
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs"
        }

    logger.info(f"{settings.app_name} {settings.app_version} ready ({settings.environment})")
    return app
