"""
FILE: deposit_advise/api/observability.py
JSON logs tagged with request identifiers, an access log keyed by route
template, and Prometheus metrics for the optimization and compliance routes.
"""

import json
import logging
import os
import time
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Awaitable, Callable, Dict
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.routing import Match

UNINSTRUMENTED_HANDLERS = ["/metrics", "/health.*"]

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")

_REQUEST_CONTEXT: Dict[str, ContextVar[str]] = {
    "correlation_id": correlation_id_var,
    "request_id": request_id_var,
    "trace_id": trace_id_var,
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "service": os.getenv("SERVICE_NAME", "deposit-advise"),
            "environment": os.getenv("ENVIRONMENT", "local"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name, var in _REQUEST_CONTEXT.items():
            payload[name] = var.get() or None
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps({k: v for k, v in payload.items() if v is not None}, default=str)


def _trace_id_from(traceparent: str) -> str:
    parts = traceparent.split("-")
    if len(parts) >= 4 and len(parts[1]) == 32:
        return parts[1]
    return uuid4().hex


def route_template(request: Request) -> str:
    """Path template of the matched route, so run ids do not become log keys."""
    for route in request.app.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return request.url.path


def _request_identifiers(request: Request) -> Dict[str, str]:
    return {
        "correlation_id": request.headers.get("X-Correlation-Id") or f"corr_{uuid4().hex[:12]}",
        "request_id": request.headers.get("X-Request-Id") or f"req_{uuid4().hex[:12]}",
        "trace_id": _trace_id_from(request.headers.get("traceparent", "")),
    }


def configure_json_logging() -> None:
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)


def setup_observability(app: FastAPI) -> None:
    configure_json_logging()
    Instrumentator(excluded_handlers=UNINSTRUMENTED_HANDLERS).instrument(app).expose(
        app, include_in_schema=False
    )

    @app.middleware("http")
    async def _request_observability_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        access_logger = logging.getLogger("http.access")
        started = time.perf_counter()
        identifiers = _request_identifiers(request)
        tokens: Dict[str, Token[str]] = {
            name: _REQUEST_CONTEXT[name].set(value) for name, value in identifiers.items()
        }
        status_code = 500
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
        finally:
            access_logger.info(
                "request.completed",
                extra={
                    "extra_fields": {
                        "http_method": request.method,
                        "endpoint": route_template(request),
                        "status_code": status_code,
                        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                },
            )
            for name, token in tokens.items():
                _REQUEST_CONTEXT[name].reset(token)

        response.headers["X-Correlation-Id"] = identifiers["correlation_id"]
        response.headers["X-Request-Id"] = identifiers["request_id"]
        response.headers["X-Trace-Id"] = identifiers["trace_id"]
        response.headers["traceparent"] = f"00-{identifiers['trace_id']}-0000000000000001-01"
        return response
