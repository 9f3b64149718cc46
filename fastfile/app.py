"""Main FastAPI application for the file conversion service"""

import time
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.middleware import LoggingMiddleware, SecurityMiddleware
from .api.routes import router as api_router
from .artifacts import ArtifactLifecycleManager, artifact_router
from .core.config import Settings, settings as default_settings
from .core.logger import get_logger, setup_logging
from .services.classifier import FileClassifier
from .services.converter_registry import ConverterRegistry
from .services.dispatcher import ConversionDispatcher
from .services.file_service import FileService

logger = get_logger(__name__)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application

    Args:
        app_settings: Settings to run with (defaults to the environment)

    Returns:
        Configured FastAPI application
    """
    app_settings = app_settings or default_settings

    setup_logging(
        log_level=app_settings.log_level,
        log_file=app_settings.log_file,
        service_name=app_settings.service_name
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        logger.info(f"Starting {app_settings.service_name} v{app_settings.version}")
        logger.info(f"Debug mode: {app_settings.debug}")

        artifact_manager = ArtifactLifecycleManager(app_settings)
        artifact_manager.clear_on_startup()

        classifier = FileClassifier()
        registry = ConverterRegistry(app_settings)
        file_service = FileService(app_settings)

        app.state.settings = app_settings
        app.state.start_time = time.time()
        app.state.classifier = classifier
        app.state.registry = registry
        app.state.file_service = file_service
        app.state.artifact_manager = artifact_manager
        app.state.dispatcher = ConversionDispatcher(
            classifier, registry, file_service, artifact_manager
        )
        logger.info("Conversion services initialized")

        if app_settings.probe_backends_on_startup:
            registry.start_probing()
        else:
            logger.info("Backend probing disabled; only built-in backends are available")

        yield

        # Shutdown
        logger.info(f"Shutting down {app_settings.service_name}")
        await registry.stop()
        artifact_manager.shutdown()

    app = FastAPI(
        title="FastFile Conversion Service",
        description="Converts uploaded media, documents, spreadsheets, presentations and archives",
        version=app_settings.version,
        lifespan=lifespan,
        docs_url="/docs" if app_settings.debug else None,
        redoc_url="/redoc" if app_settings.debug else None
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityMiddleware)

    # Include API routes
    app.include_router(api_router)
    app.include_router(artifact_router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "service": app_settings.service_name,
            "version": app_settings.version,
            "status": "running",
            "docs": "/docs" if app_settings.debug else "disabled"
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "details": str(exc) if app_settings.debug else "An unexpected error occurred"
            }
        )

    return app


app = create_app()


def run() -> None:
    """Console entry point"""
    import uvicorn

    uvicorn.run(
        "fastfile.app:app",
        host=default_settings.api_host,
        port=default_settings.api_port,
        reload=default_settings.debug,
        log_level=default_settings.log_level.lower()
    )


if __name__ == "__main__":
    run()
