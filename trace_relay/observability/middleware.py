from __future__ import annotations

import math
from time import perf_counter
from typing import Any, Callable

import anyio
import structlog
from anyio.streams.memory import MemoryObjectSendStream
from starlette.requests import Request

from trace_relay.observability.apm import Apm, Transaction, scope_headers

# Logged when the client went away before a response was started.
CLIENT_CLOSED_REQUEST = 499


class TransactionMiddleware:
    """Opens a transaction per HTTP request and always closes it.

    The wrapped app runs inside a cancel scope that is cancelled when the
    client disconnects before the response is complete, so in-flight
    outbound calls are abandoned along with the request.
    """

    def __init__(self, app: Callable[..., Any], apm: Apm) -> None:
        self.app = app
        self.apm = apm

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path")
        method = scope.get("method")

        txn = self.apm.start_transaction(f"{method} {path}", carrier=scope_headers(scope))
        scope.setdefault("state", {})["transaction"] = txn
        txn.set_web_request(scope)

        structlog.contextvars.bind_contextvars(
            trace_id=txn.linking_metadata()["trace.id"],
            path=path,
            method=method,
        )

        start = perf_counter()
        status_code: int | None = None
        response_complete = False
        disconnected = False

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code, response_complete

            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                txn.set_web_response(status_code)
            elif message.get("type") == "http.response.body" and not message.get("more_body", False):
                # Set before forwarding: the server may report disconnect as soon as the body is out.
                response_complete = True

            await send(message)

        async def watch_disconnect(
            forward: MemoryObjectSendStream[dict[str, Any]],
            cancel_scope: anyio.CancelScope,
        ) -> None:
            nonlocal disconnected

            while True:
                message = await receive()
                await forward.send(message)
                if message.get("type") == "http.disconnect":
                    if not response_complete:
                        disconnected = True
                        cancel_scope.cancel()
                    return

        forward, inbound = anyio.create_memory_object_stream(math.inf)
        app_exc: Exception | None = None
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(watch_disconnect, forward, tg.cancel_scope)
                try:
                    await self.app(scope, inbound.receive, send_wrapper)
                except Exception as exc:
                    # Re-raised outside the task group so callers see the bare exception.
                    app_exc = exc
                tg.cancel_scope.cancel()

            if app_exc is not None:
                raise app_exc
            if disconnected:
                txn.notice_disconnect()
        except BaseException as exc:
            txn.notice_error(exc)
            raise
        finally:
            forward.close()
            inbound.close()
            txn.end()
            elapsed_ms = (perf_counter() - start) * 1000.0

            if status_code is None:
                status_code = CLIENT_CLOSED_REQUEST if disconnected else 500

            structlog.get_logger("access").info(
                "http_request",
                status_code=status_code,
                elapsed_ms=round(elapsed_ms, 2),
                client_disconnected=disconnected,
            )

            structlog.contextvars.clear_contextvars()


def get_transaction(request: Request) -> Transaction | None:
    """Return the active transaction for this request, if the middleware opened one."""

    return getattr(request.state, "transaction", None)
