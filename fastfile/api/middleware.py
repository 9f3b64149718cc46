"""Middleware for API requests"""

import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.logger import get_logger

logger = get_logger(__name__)


def describe_request(request: Request) -> str:
    """'POST /api/convert (2048 bytes) from 10.0.0.5'"""
    client = request.client.host if request.client else "unknown"
    size = request.headers.get("content-length")
    body = f" ({size} bytes)" if size and size != "0" else ""
    return f"{request.method} {request.url.path}{body} from {client}"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log details"""
        start_time = time.time()

        # Log request, with upload size when there is a body
        logger.info(f"Request: {describe_request(request)}")

        # Process request
        response = await call_next(request)

        # Calculate processing time
        process_time = time.time() - start_time

        # Log response; failed conversions and expired downloads at warning level
        level = logger.warning if response.status_code >= 400 else logger.info
        level(
            f"Response: {response.status_code} "
            f"in {process_time:.3f}s for {request.method} {request.url.path}"
        )

        # Add processing time header
        response.headers["X-Process-Time"] = f"{process_time:.4f}"
        return response


class SecurityMiddleware(BaseHTTPMiddleware):
    """Adds security headers to every response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        # Add security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response
