from __future__ import annotations

import socket
import sys
import time
from collections.abc import Mapping
from typing import Any

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import SpanKind, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from trace_relay.config import Settings


_PROPAGATOR = TraceContextTextMapPropagator()


class Transaction:
    """One in-flight request's server span.

    Created by the middleware at request entry and ended on every exit path.
    """

    def __init__(self, name: str, span: trace.Span, entity_name: str, hostname: str) -> None:
        self.name = name
        self.span = span
        self.start_time = time.time()
        self._entity_name = entity_name
        self._hostname = hostname
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    def context(self) -> Context:
        return trace.set_span_in_context(self.span)

    def set_web_request(self, scope: Mapping[str, Any]) -> None:
        headers = scope_headers(scope)
        self.span.set_attribute("http.request.method", str(scope.get("method", "")))
        self.span.set_attribute("url.path", str(scope.get("path", "")))
        self.span.set_attribute("url.scheme", str(scope.get("scheme", "http")))
        if "host" in headers:
            self.span.set_attribute("server.address", headers["host"])
        if "user-agent" in headers:
            self.span.set_attribute("user_agent.original", headers["user-agent"])

    def set_web_response(self, status_code: int) -> None:
        self.span.set_attribute("http.response.status_code", status_code)
        if status_code >= 500:
            self.span.set_status(Status(StatusCode.ERROR))

    def notice_error(self, exc: BaseException) -> None:
        self.span.record_exception(exc)
        self.span.set_status(Status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}"))

    def notice_disconnect(self) -> None:
        self.span.set_attribute("http.client_disconnected", True)
        self.span.set_status(Status(StatusCode.ERROR, "client disconnected"))

    def linking_metadata(self) -> dict[str, str]:
        span_context = self.span.get_span_context()
        return {
            "trace.id": trace.format_trace_id(span_context.trace_id),
            "span.id": trace.format_span_id(span_context.span_id),
            "entity.name": self._entity_name,
            "entity.type": "SERVICE",
            "hostname": self._hostname,
        }

    def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        self.span.end()


class Apm:
    """Long-lived instrumentation handle shared by every request."""

    def __init__(self, app_name: str, provider: TracerProvider, *, distributed_tracing: bool = True) -> None:
        self.app_name = app_name
        self.distributed_tracing = distributed_tracing
        self._provider = provider
        self._tracer = provider.get_tracer("trace_relay")
        self._hostname = socket.gethostname()

    @property
    def tracer(self) -> trace.Tracer:
        return self._tracer

    def start_transaction(self, name: str, carrier: Mapping[str, str] | None = None) -> Transaction:
        parent: Context | None = None
        if self.distributed_tracing and carrier:
            parent = _PROPAGATOR.extract(carrier=dict(carrier))
        span = self._tracer.start_span(name, context=parent, kind=SpanKind.SERVER)
        return Transaction(name, span, entity_name=self.app_name, hostname=self._hostname)

    def inject(self, headers: dict[str, str], context: Context | None) -> None:
        if self.distributed_tracing:
            _PROPAGATOR.inject(headers, context=context)

    def shutdown(self) -> None:
        self._provider.shutdown()


def scope_headers(scope: Mapping[str, Any]) -> dict[str, str]:
    """Decode raw ASGI headers into a lower-cased dict (last value wins)."""

    headers: dict[str, str] = {}
    for key, value in scope.get("headers") or []:
        headers[key.decode("latin-1").lower()] = value.decode("latin-1")
    return headers


def build_apm(settings: Settings, exporter: SpanExporter | None = None) -> Apm:
    provider = TracerProvider(resource=Resource.create({"service.name": settings.app_name}))
    if exporter is not None:
        # Injected exporters (tests) get spans synchronously on end().
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    elif settings.span_exporter == "console":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))
    return Apm(settings.app_name, provider, distributed_tracing=settings.distributed_tracing)
