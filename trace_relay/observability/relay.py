from __future__ import annotations

import json
import time
from typing import Any

import httpx
import structlog

from trace_relay.errors import RelayError, RequestBuildError, SerializationError, TransportError
from trace_relay.observability.apm import Transaction

LogRecord = dict[str, Any]

KEY_TIMESTAMP = "timestamp"
KEY_MESSAGE = "message"

logger = structlog.get_logger("relay")


def build_log_record(transaction: Transaction, message: str, now: float | None = None) -> LogRecord:
    """Linking metadata of the transaction plus an epoch-ms timestamp and the message."""

    record: LogRecord = dict(transaction.linking_metadata())
    now = time.time() if now is None else now
    record[KEY_TIMESTAMP] = int(now * 1000)
    record[KEY_MESSAGE] = message
    return record


def build_log_batch(records: list[LogRecord]) -> list[dict[str, list[LogRecord]]]:
    return [{"logs": list(records)}]


class TelemetryRelay:
    """Ships correlated log lines to the log-ingestion endpoint.

    Holds no per-request state, so one instance serves every request.
    Delivery is best-effort: nothing is retried and failures are only logged.
    """

    def __init__(self, client: httpx.AsyncClient, api_key: str, url: str) -> None:
        self._client = client
        self._api_key = api_key
        self._url = url

    async def log(self, transaction: Transaction | None, message: str) -> None:
        if transaction is None:
            return

        record = build_log_record(transaction, message)
        try:
            await self.send([record])
        except RelayError as exc:
            logger.warning("log_relay_failed", error=str(exc), error_type=type(exc).__name__)

    async def send(self, records: list[LogRecord]) -> None:
        try:
            body = json.dumps(build_log_batch(records), allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"json.dumps: {exc}") from exc

        try:
            request = self._client.build_request(
                "POST",
                self._url,
                content=body.encode("utf-8"),
                headers={
                    "x-license-key": self._api_key,
                    "content-type": "application/json",
                },
            )
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            raise RequestBuildError(f"build_request: {exc}") from exc

        try:
            response = await self._client.send(request)
        except httpx.HTTPError as exc:
            raise TransportError(f"send: {exc}") from exc

        # Any status counts as delivered; the endpoint's verdict is only logged.
        logger.info("log_relay_posted", status_code=response.status_code)
