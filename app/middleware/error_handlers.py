"""
Global Exception Handler Middleware for the Resume Match API
"""
import time
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.exceptions import ResumeMatchError, map_to_http_exception
from app.utils.logging_config import get_logger

logger = get_logger(__name__)


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Turns library exceptions raised by the routers into JSON error bodies"""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        except ResumeMatchError as exc:
            logger.error(
                f"{exc.__class__.__name__} in {request.method} {request.url.path}: {exc.message}",
                extra={
                    "request_id": request_id,
                    "error_code": exc.error_code,
                    "details": exc.details,
                }
            )
            http_exc = map_to_http_exception(exc)
            return self._create_error_response(request_id, http_exc.status_code, http_exc.detail)

        except ValidationError as exc:
            # pydantic failures inside handlers, not request parsing (FastAPI answers those with 422)
            logger.error(
                f"Data validation error in {request.method} {request.url.path}: {exc}",
                extra={"request_id": request_id}
            )
            detail = {
                "error": "Data validation failed",
                "message": "Invalid data format or values",
                "validation_errors": exc.errors(include_url=False, include_context=False),
            }
            return self._create_error_response(request_id, 400, detail)

        except Exception as exc:
            logger.error(
                f"Unhandled exception in {request.method} {request.url.path}: {exc}",
                extra={
                    "request_id": request_id,
                    "exception_type": exc.__class__.__name__,
                    "traceback": traceback.format_exc(),
                },
                exc_info=True
            )
            # Don't expose internal errors
            detail = {
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            }
            return self._create_error_response(request_id, 500, detail)

    @staticmethod
    def _create_error_response(request_id: str, status_code: int, detail: Any) -> JSONResponse:
        if isinstance(detail, str):
            detail = {"message": detail}
        elif not isinstance(detail, dict):
            detail = {"message": str(detail)}

        error_response = {
            "success": False,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
            "status_code": status_code,
            **detail
        }
        return JSONResponse(status_code=status_code, content=error_response, headers={"X-Request-ID": request_id})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request; progress polling and health checks stay at DEBUG"""

    QUIET_PATHS = {"/health", "/api/matching/runs/latest"}

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Request failed: {request.method} {request.url.path} "
                f"after {time.perf_counter() - started:.3f}s: {exc}"
            )
            raise

        # request_id is set by the inner exception handler
        log = logger.debug if request.url.path in self.QUIET_PATHS else logger.info
        log(
            f"{request.method} {request.url.path} - {response.status_code} in {time.perf_counter() - started:.3f}s",
            extra={"request_id": getattr(request.state, "request_id", None), "status_code": response.status_code},
        )
        return response


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Adds X-Processing-Time and warns about slow requests"""

    def __init__(self, app, slow_request_threshold: float = 2.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        # matching runs are expected to be slow
        if elapsed > self.slow_request_threshold and not request.url.path.startswith("/api/matching/runs"):
            logger.warning(f"Slow request: {request.method} {request.url.path} took {elapsed:.3f}s")

        response.headers["X-Processing-Time"] = f"{elapsed:.3f}"
        return response
