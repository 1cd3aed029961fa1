from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from trace_relay.api.routes import router
from trace_relay.config import Settings, get_settings
from trace_relay.observability.apm import Apm, build_apm
from trace_relay.observability.http import InstrumentedClient
from trace_relay.observability.middleware import TransactionMiddleware
from trace_relay.observability.relay import TelemetryRelay


def create_app(
    settings: Settings | None = None,
    *,
    apm: Apm | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the application and its long-lived collaborators.

    Raises ConfigurationError when settings are not supplied and the
    environment lacks the license key, before anything else is built.
    """

    settings = settings or get_settings()
    owns_apm = apm is None
    owns_client = http_client is None
    apm = apm or build_apm(settings)
    http_client = http_client or httpx.AsyncClient(timeout=settings.outbound_timeout_seconds)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if owns_client:
            await http_client.aclose()
        if owns_apm:
            apm.shutdown()

    app = FastAPI(title="Trace Relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.apm = apm
    app.state.http_client = http_client
    app.state.fetch_client = InstrumentedClient(http_client, apm)
    app.state.relay = TelemetryRelay(http_client, api_key=settings.license_key, url=settings.log_ingest_url)

    app.include_router(router)
    app.add_middleware(TransactionMiddleware, apm=apm)
    return app
