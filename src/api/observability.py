import json
import logging
import os
import re
import time
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from prometheus_fastapi_instrumentator import Instrumentator

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")
report_id_var: ContextVar[Optional[int]] = ContextVar("report_id", default=None)

_REPORT_PATH = re.compile(r"^(?:/api/v1)?/financial-reports/(\d+)(?:/|$)")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "service": os.getenv("SERVICE_NAME", "financial-reporting"),
            "environment": os.getenv("ENVIRONMENT", "local"),
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get() or None,
            "request_id": request_id_var.get() or None,
            "trace_id": trace_id_var.get() or None,
            "report_id": report_id_var.get(),
        }
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps({k: v for k, v in payload.items() if v is not None}, default=str)


@dataclass(frozen=True)
class RequestContext:
    correlation_id: str
    request_id: str
    trace_id: str
    report_id: Optional[int]

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        match = _REPORT_PATH.match(request.url.path)
        return cls(
            correlation_id=request.headers.get("X-Correlation-Id")
            or f"corr_{uuid4().hex[:12]}",
            request_id=request.headers.get("X-Request-Id") or f"req_{uuid4().hex[:12]}",
            trace_id=trace_id_from_traceparent(request.headers.get("traceparent"))
            or uuid4().hex,
            report_id=int(match.group(1)) if match else None,
        )

    @property
    def traceparent(self) -> str:
        return f"00-{self.trace_id}-0000000000000001-01"


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)


def trace_id_from_traceparent(traceparent: Optional[str]) -> Optional[str]:
    if not traceparent:
        return None
    parts = traceparent.split("-")
    if len(parts) >= 4 and len(parts[1]) == 32:
        return parts[1]
    return None


def setup_observability(app: FastAPI) -> None:
    configure_logging()
    Instrumentator().instrument(app).expose(app)

    @app.middleware("http")
    async def _request_observability_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        context = RequestContext.from_request(request)
        tokens = (
            (correlation_id_var, correlation_id_var.set(context.correlation_id)),
            (request_id_var, request_id_var.set(context.request_id)),
            (trace_id_var, trace_id_var.set(context.trace_id)),
            (report_id_var, report_id_var.set(context.report_id)),
        )
        status_code = 500
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
        finally:
            logging.getLogger("http.access").info(
                "request.completed",
                extra={
                    "extra_fields": {
                        "http_method": request.method,
                        "endpoint": request.url.path,
                        "status_code": status_code,
                        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                },
            )
            for var, token in reversed(tokens):
                var.reset(token)

        response.headers.setdefault("X-Correlation-Id", context.correlation_id)
        response.headers["X-Request-Id"] = context.request_id
        response.headers["X-Trace-Id"] = context.trace_id
        response.headers["traceparent"] = context.traceparent
        return response
