import time
import uuid
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from .logging_config import trace_id_var

logger = logging.getLogger("threatfeed.http")


class TracingMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, logs each request and echoes the id back"""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.log_config = getattr(logging, '_config', {
            "exclude_paths": ["/v1/health", "/v1/metrics/prometheus"],
        })

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = trace_id_var.set(trace_id)
        client_ip = request.client.host if request.client else "unknown"
        start_time = time.time()

        try:
            response = await call_next(request)
            latency_ms = round((time.time() - start_time) * 1000, 2)
            self._log_request(request.method, _log_path(request), response.status_code, latency_ms, client_ip)
            response.headers["X-Request-ID"] = trace_id
            return response
        except Exception as e:
            latency_ms = round((time.time() - start_time) * 1000, 2)
            logger.error("Request failed: %s", e, extra={
                "method": request.method,
                "path": _log_path(request),
                "status": 500,
                "latency_ms": latency_ms,
                "client_ip": client_ip,
            })
            raise
        finally:
            trace_id_var.reset(token)

    def _log_request(self, method: str, path: str, status: int, latency_ms: float, client_ip: str):
        extra = {
            "method": method,
            "path": path,
            "status": status,
            "latency_ms": latency_ms,
            "client_ip": client_ip,
        }
        if status >= 400:
            logger.log(logging.ERROR if status >= 500 else logging.WARNING, "HTTP Request", extra=extra)
            return
        if path in self.log_config["exclude_paths"]:
            return
        logger.info("HTTP Request", extra=extra)


def _log_path(request: Request) -> str:
    # feed tokens are credentials; keep them out of the logs
    path = request.url.path
    if path.startswith("/feed/"):
        return "/feed/{token}"
    return path
