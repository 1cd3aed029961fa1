from __future__ import annotations

from fastapi import Request

from trace_relay.config import Settings
from trace_relay.observability.http import InstrumentedClient
from trace_relay.observability.relay import TelemetryRelay


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_fetch_client(request: Request) -> InstrumentedClient:
    return request.app.state.fetch_client


def get_relay(request: Request) -> TelemetryRelay:
    return request.app.state.relay
