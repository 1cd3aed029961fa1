from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from trace_relay.config import get_settings
from trace_relay.main import create_app
from trace_relay.observability.apm import Apm, build_apm

FETCH_HOST = "fetch.test"
INGEST_HOST = "ingest.test"

# Upstream status by trace id; lets concurrent tests pair each response with its own fetch.
FETCH_STATUSES = [200, 201, 202, 203, 404, 418, 503]


class MockUpstream:
    """Stands in for both the demonstration fetch target and the log-ingestion API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.completed: list[httpx.Request] = []
        self.fetch_status = 200
        self.ingest_status = 202
        self.fetch_error: Exception | None = None
        self.ingest_error: Exception | None = None
        self.status_from_trace = False
        self.delay_seconds = 0.0
        self.fetch_started = asyncio.Event()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == FETCH_HOST:
            self.fetch_started.set()
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        response = self._respond(request)
        self.completed.append(request)
        return response

    def _respond(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == FETCH_HOST:
            if self.fetch_error is not None:
                raise self.fetch_error
            status = self.fetch_status
            if self.status_from_trace:
                status = status_for_trace_id(request.headers["traceparent"].split("-")[1])
            return httpx.Response(status, text="hello from upstream")

        if request.url.host == INGEST_HOST:
            if self.ingest_error is not None:
                raise self.ingest_error
            return httpx.Response(self.ingest_status, json={"requestId": "mock"})

        return httpx.Response(404)

    @property
    def fetch_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == FETCH_HOST]

    @property
    def ingest_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == INGEST_HOST]


def status_for_trace_id(trace_id: str) -> int:
    return FETCH_STATUSES[int(trace_id, 16) % len(FETCH_STATUSES)]


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("TELEMETRY_LICENSE_KEY", "test-license-key")
    monkeypatch.setenv("TELEMETRY_APP_NAME", "trace-relay-test")
    monkeypatch.setenv("FETCH_URL", f"https://{FETCH_HOST}/")
    monkeypatch.setenv("LOG_INGEST_URL", f"https://{INGEST_HOST}/log/v1")
    monkeypatch.setenv("SPAN_EXPORTER", "none")
    get_settings.cache_clear()

    yield

    get_settings.cache_clear()


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def apm(span_exporter: InMemorySpanExporter) -> Iterator[Apm]:
    handle = build_apm(get_settings(), exporter=span_exporter)
    yield handle
    handle.shutdown()


@pytest.fixture
async def http_client(upstream: MockUpstream) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        yield client


@pytest.fixture
def app(apm: Apm, http_client: httpx.AsyncClient) -> FastAPI:
    return create_app(get_settings(), apm=apm, http_client=http_client)


@pytest.fixture
async def api_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
