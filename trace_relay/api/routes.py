from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from trace_relay.api.dependencies import get_app_settings, get_fetch_client, get_relay
from trace_relay.config import Settings
from trace_relay.errors import FetchRequestBuildError, FetchTransportError
from trace_relay.models.schemas import FetchResponse
from trace_relay.observability.apm import Transaction
from trace_relay.observability.http import InstrumentedClient
from trace_relay.observability.middleware import get_transaction
from trace_relay.observability.relay import TelemetryRelay

router = APIRouter(tags=["demo"])


@router.get("/", response_class=PlainTextResponse)
async def index() -> PlainTextResponse:
    return PlainTextResponse("OK\n")


@router.get("/fetch", response_model=FetchResponse)
async def fetch(
    transaction: Transaction | None = Depends(get_transaction),
    settings: Settings = Depends(get_app_settings),
    client: InstrumentedClient = Depends(get_fetch_client),
    relay: TelemetryRelay = Depends(get_relay),
) -> FetchResponse | PlainTextResponse:
    try:
        resp = await client.get(transaction, settings.fetch_url)
    except FetchRequestBuildError as exc:
        return PlainTextResponse(f"cannot build request: {exc}\n", status_code=500)
    except FetchTransportError as exc:
        return PlainTextResponse(f"failed to send request: {exc}\n", status_code=500)

    await relay.log(transaction, f"done fetch: status={resp.status_code}")
    return FetchResponse(status=resp.status_code)
