"""Main FastAPI application for ollaproxy."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .config import get_config_manager, get_settings
from .exceptions import OllaproxyError
from .logging import get_logger, setup_logging
from .middleware import RequestIDMiddleware
from .models import ErrorResponse
from .registry import ProviderRegistry
from .router import router

# Setup logging before creating the app
setup_logging()
logger = get_logger("ollaproxy.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    logger.info("Starting ollaproxy", version=__version__)

    settings = get_settings()
    logger.info(
        "Application configuration",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        debug=settings.debug,
    )

    if app.state.registry is None:
        # Startup-fatal: without providers nothing can be served
        configs = get_config_manager().load_providers()
        app.state.registry = ProviderRegistry.from_configs(configs, settings)

    logger.info(
        "Providers loaded",
        providers=[provider.name for provider in app.state.registry.providers],
    )

    try:
        yield
    finally:
        logger.info("Shutting down ollaproxy")
        await app.state.registry.aclose()
        logger.info("Shutdown complete")


def create_app(registry: Optional[ProviderRegistry] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        registry: Providers to serve; loaded from the configuration file at
            startup when omitted
    """
    settings = get_settings()

    app = FastAPI(
        title="ollaproxy",
        description="An Ollama-compatible gateway for Ollama and OpenAI-style providers",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.registry = registry

    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(OllaproxyError)
    async def ollaproxy_exception_handler(
        request: Request, exc: OllaproxyError
    ) -> JSONResponse:
        """Turn request-scoped errors into Ollama-style error bodies."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=errors or "invalid request").model_dump(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> PlainTextResponse:
        if exc.status_code == 404:
            return PlainTextResponse("404 page not found", status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error="internal server error").model_dump(),
        )

    return app


# Create the app instance
app = create_app()


def main() -> None:
    """Main entry point for running the application."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "ollaproxy.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # We handle access logging ourselves
    )


if __name__ == "__main__":
    main()
