"""
API Middleware Module
Request logging and CORS configuration
"""
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import governance_config
from logging_config import http_request_summary


def cors_options() -> dict:
    """
    CORS settings for app.add_middleware(CORSMiddleware, **cors_options()).
    Origins come from ALLOWED_ORIGINS.
    """
    return {
        "allow_origins": list(governance_config.ALLOWED_ORIGINS),
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["Authorization", "Content-Type"],
    }


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response logging middleware"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        http_request_summary(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time * 1000, 2),
        )

        response.headers["X-Process-Time"] = str(process_time)
        return response
