import time
import logging
import re
from typing import Callable, Optional, Tuple
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
import uuid

from onboarding.config import settings

logger = logging.getLogger(__name__)

FLOW_PATH = re.compile(r"/flows/([^/]+)")
SESSION_KEY_PATH = re.compile(r"(/sessions/)([^/]+)")


def describe_path(path: str) -> Tuple[str, Optional[str]]:
    """
    Log-safe form of a request path and the flow it targets

    Session keys may be access tokens, so only their first characters
    are kept.
    """
    flow_match = FLOW_PATH.search(path)
    flow_id = flow_match.group(1) if flow_match else None
    safe_path = SESSION_KEY_PATH.sub(lambda m: f"{m.group(1)}{m.group(2)[:4]}***", path)
    return safe_path, flow_id


class LoggingMiddleware(BaseHTTPMiddleware):
    """Request/response logging tagged with request and flow ids"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        path, flow_id = describe_path(request.url.path)
        tag = f"{request_id} flow={flow_id}" if flow_id else request_id

        start_time = time.time()
        logger.info(f"Request {tag}: {request.method} {path}")

        request.state.request_id = request_id

        try:
            response = await call_next(request)

            duration = time.time() - start_time
            level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(level, f"Response {tag}: {response.status_code} in {duration:.3f}s")

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration:.3f}s"
            if flow_id:
                response.headers["X-Flow-ID"] = flow_id

            return response

        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"Error {tag}: {str(e)} after {duration:.3f}s")
            raise


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Security headers; responses may carry session tokens, so nothing is cached"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"

        return response


def setup_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Response-Time", "X-Flow-ID"]
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(LoggingMiddleware)

    logger.info(f"Middleware ready (origins: {', '.join(settings.ALLOWED_ORIGINS)})")
