"""Structured logging configuration for ollaproxy."""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

from .config import get_settings


def setup_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if settings.log_format == "json"
                else structlog.dev.ConsoleRenderer(colors=True)
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if settings.log_format == "console":
        handler: logging.Handler = RichHandler(
            console=Console(file=sys.stdout), rich_tracebacks=True
        )
    else:
        handler = logging.StreamHandler(sys.stdout)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level.upper()),
        handlers=[handler],
    )

    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    # Upstream request logging is done by ProviderLogger
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class RequestLogger:
    """Logger for tracking inbound HTTP requests."""

    def __init__(self):
        self.logger = get_logger("ollaproxy.requests")

    def log_request_start(
        self,
        request_id: str,
        method: str,
        path: str,
        model: Optional[str] = None,
        stream: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Log the start of a request and return context for completion logging."""
        context = {
            "request_id": request_id,
            "method": method,
            "path": path,
            "model": model,
            "stream": stream,
            "start_time": time.time(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        self.logger.info("Request started", **context)

        return context

    def log_request_complete(
        self,
        context: Dict[str, Any],
        status_code: int,
        chunks: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        """Log the completion of a request."""
        latency_ms = int((time.time() - context["start_time"]) * 1000)

        log_data = {
            **context,
            "status_code": status_code,
            "latency_ms": latency_ms,
            "chunks": chunks,
            "error": error,
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }

        if error:
            self.logger.error("Request failed", **log_data)
        else:
            self.logger.info("Request completed", **log_data)


class ProviderLogger:
    """Logger for upstream provider traffic."""

    def __init__(self):
        self.logger = get_logger("ollaproxy.providers")

    def log_upstream_request(
        self,
        provider: str,
        model: str,
        url: str,
        method: str = "POST",
    ) -> None:
        """Log an outgoing request to a provider."""
        self.logger.debug(
            "Upstream request",
            provider=provider,
            model=model,
            url=url,
            method=method,
        )

    def log_upstream_response(
        self,
        provider: str,
        model: str,
        status_code: int,
        latency_ms: int,
        error: Optional[str] = None,
    ) -> None:
        """Log the response headers of a provider, or the failure to get them."""
        if error:
            self.logger.error(
                "Upstream request failed",
                provider=provider,
                model=model,
                status_code=status_code,
                latency_ms=latency_ms,
                error=error,
            )
        else:
            self.logger.debug(
                "Upstream response",
                provider=provider,
                model=model,
                status_code=status_code,
                latency_ms=latency_ms,
            )

    def log_stream_error(self, provider: str, model: str, error: str) -> None:
        """Log a failure that happened after the upstream stream started."""
        self.logger.error(
            "Upstream stream failed",
            provider=provider,
            model=model,
            error=error,
        )

    def log_catalog_fetch(
        self, provider: str, count: int, error: Optional[str] = None
    ) -> None:
        """Log a remote model catalog fetch."""
        if error:
            self.logger.warning(
                "Model catalog unavailable", provider=provider, error=error
            )
        else:
            self.logger.info("Model catalog fetched", provider=provider, models=count)

    def log_model_not_found(self, model: str, available_models: list[str]) -> None:
        """Log when a requested model is not found."""
        self.logger.warning(
            "Model not found",
            requested_model=model,
            available_models=available_models,
        )


# Global logger instances
request_logger = RequestLogger()
provider_logger = ProviderLogger()
