"""Main FastAPI application for SecureBlog."""

import time
import logging
from typing import Callable, Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from secureblog.config import Settings
from secureblog.dependencies import build_services
from secureblog.exceptions import BlogError
from secureblog.middleware import session_middleware
from secureblog.routers import admin, auth, blog, posts, taxonomy, uploads

NAME_APP = "SecureBlog"
VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def configure_logging(log_file: str = "secureblog.log") -> None:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file)
        ]
    )


def create_app(settings: Optional[Settings] = None, clock: Callable[[], float] = time.time) -> FastAPI:
    """
    Build the application and prepare its storage directories.

    Args:
        settings: Runtime settings; read from the environment when omitted
        clock: Time source shared by every service

    Returns:
        FastAPI: Configured application

    Raises:
        SystemExit: If the storage directories cannot be created
    """
    if settings is None:
        configure_logging()
        settings = Settings.from_env()

    services = build_services(settings, clock=clock)

    try:
        services.posts.initialize_directories()
        services.uploads.initialize_directory()
    except OSError as e:
        logger.critical(f"Failed to create storage directories under {settings.data_dir}: {e}")
        raise SystemExit(1)

    app = FastAPI(
        title=NAME_APP,
        description="Flat-file blog API with session authentication and hardened image uploads",
        version=VERSION
    )
    app.state.services = services

    app.middleware("http")(session_middleware)

    # CORS only when origins are configured; session cookies are strict same-site
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(BlogError)
    async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
        """Render core service errors as ``{"success": false, "error": message}``."""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    # Include routers
    app.include_router(auth.router)
    app.include_router(blog.router)
    app.include_router(posts.router)
    app.include_router(taxonomy.router)
    app.include_router(uploads.router)
    app.include_router(admin.router)

    @app.on_event("shutdown")
    def shutdown_event():
        """Release the security log file handle."""
        services.security_log.close()

    @app.get("/")
    def root():
        """Root endpoint."""
        return {
            "name": NAME_APP,
            "version": VERSION,
            "status": "running"
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    logger.info(f"{NAME_APP} ready, data directory: {settings.data_dir}")
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("secureblog.main:create_app", factory=True, host="0.0.0.0", port=8000)
