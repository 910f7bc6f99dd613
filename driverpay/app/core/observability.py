"""
Observability: logging setup and request middleware.

Adds correlation IDs to requests and to every log record emitted while
the request is being handled, so trip mutations can be traced end to end.
"""

import time
import uuid
import logging
from contextvars import ContextVar
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Configure structured logger
logger = logging.getLogger("driverpay.http")

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


class CorrelationIdFilter(logging.Filter):
    """Stamp the current request's correlation ID onto log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the ``driverpay`` logger hierarchy.

    Idempotent: calling it twice does not add a second handler.
    """
    root = logging.getLogger("driverpay")
    root.setLevel(level.upper())
    if any(getattr(h, "_driverpay", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    handler._driverpay = True
    root.addHandler(handler)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # 1. Generate or extract Correlation ID
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        token = correlation_id_var.set(correlation_id)

        # 2. Start Timer
        start_time = time.time()

        try:
            # 3. Process Request
            response = await call_next(request)

            # 4. Calculate Duration
            process_time = (time.time() - start_time) * 1000  # ms

            # 5. Add Header to Response
            response.headers["X-Correlation-ID"] = correlation_id
            response.headers["X-Process-Time"] = str(process_time)

            # 6. Structured Log
            log_data = {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(process_time, 2),
                "ip": request.client.host if request.client else "unknown"
            }

            # Log level based on status
            if response.status_code >= 500:
                logger.error("Request failed %s", log_data)
            elif response.status_code >= 400:
                logger.warning("Request error %s", log_data)
            else:
                logger.info("Request %s", log_data)

            return response
        finally:
            correlation_id_var.reset(token)
