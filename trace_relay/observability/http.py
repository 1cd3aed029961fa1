from __future__ import annotations

import httpx
from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from trace_relay.errors import FetchRequestBuildError, FetchTransportError
from trace_relay.observability.apm import Apm, Transaction


class InstrumentedClient:
    """Outbound HTTP calls recorded as sub-spans of the calling transaction.

    Wraps the process-wide httpx pool; the W3C trace headers of the sub-span
    are injected so the callee can continue the trace.
    """

    def __init__(self, client: httpx.AsyncClient, apm: Apm) -> None:
        self._client = client
        self._apm = apm

    async def get(self, transaction: Transaction | None, url: str) -> httpx.Response:
        parent = transaction.context() if transaction is not None else None

        try:
            request = self._client.build_request("GET", url)
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            raise FetchRequestBuildError(str(exc)) from exc

        span = self._apm.tracer.start_span(
            f"External GET {request.url.host}",
            context=parent,
            kind=SpanKind.CLIENT,
        )
        try:
            span.set_attribute("http.request.method", "GET")
            span.set_attribute("url.full", str(request.url))
            headers: dict[str, str] = {}
            self._apm.inject(headers, trace.set_span_in_context(span))
            request.headers.update(headers)

            try:
                response = await self._client.send(request)
            except httpx.HTTPError as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                raise FetchTransportError(str(exc)) from exc

            span.set_attribute("http.response.status_code", response.status_code)
            if response.status_code >= 500:
                span.set_status(Status(StatusCode.ERROR))
            return response
        finally:
            span.end()
