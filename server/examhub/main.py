import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from examhub import __version__
from examhub.config import settings
from examhub.errors import register_error_handlers
from examhub.routes import auth, exam, questions, submissions, users
from examhub.services.sse_manager import SSEConnectionManager
from examhub.storage import build_storage_provider

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_app(storage_provider=None) -> FastAPI:
    """Build the API; the storage backend comes from settings unless given."""
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        debug=settings.debug
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Signed cookie session holding the logged-in user id
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie=settings.session_cookie,
        max_age=settings.session_max_age,
    )

    register_error_handlers(app)

    app.state.storage_provider = storage_provider or build_storage_provider(settings)
    app.state.sse_manager = SSEConnectionManager()

    @app.on_event("startup")
    async def startup_event():
        """Initialize storage on startup"""
        app.state.storage_provider.init()
        logger.info("%s %s is starting (storage: %s)", settings.app_name, __version__, settings.storage_backend)

    @app.on_event("shutdown")
    async def shutdown_event():
        app.state.storage_provider.dispose()

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.api_version,
            "status": "running"
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    app.include_router(auth.router, prefix="/api")
    app.include_router(exam.router, prefix="/api")
    app.include_router(questions.router, prefix="/api")
    app.include_router(submissions.router, prefix="/api")
    app.include_router(users.router, prefix="/api")

    return app


app = create_app()
