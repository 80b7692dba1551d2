"""
Request/response correlation on top of message delivery.

A request is a message with kind "request" and an id. The matching
response is a message with kind "response" and the same id. The
pending handle for a request is removed when the response arrives or
when the timeout fires, whichever happens first; the loser is dropped.
The timeout starts before delivery: a delivery still in flight when
it fires is cancelled.

Inbound requests go to the single registered handler. Whatever the
handler returns becomes the ``data`` of the response. If the handler
raises (or none is registered) an error response is sent instead:

    {"error": {"code": "F00", "name": "Bad Request",
               "message": "...", "triggered_by": "<our account>",
               "triggered_at": "<ISO-8601>"}}
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from escrow_plugin.errors import (
    InvalidFieldsError,
    RequestHandlerAlreadyRegisteredError,
    RequestTimeoutError,
)
from escrow_plugin.events import EventEmitter, PluginEvent
from escrow_plugin.xrpl.tx import format_timestamp

logger = logging.getLogger(__name__)

REQUEST = "request"
RESPONSE = "response"

HANDLER_ERROR_CODE = "F00"
HANDLER_ERROR_NAME = "Bad Request"
NO_HANDLER_CODE = "F02"
NO_HANDLER_NAME = "Unreachable"

Message = dict[str, Any]
Deliver = Callable[[Message], Awaitable[None]]
RequestHandler = Callable[[Message], Any]


@runtime_checkable
class MessageChannel(Protocol):
    """Point-to-point message channel used instead of ledger memos.

    ``deliver`` sends one message to ``message["to"]``. ``receive``
    installs the callback invoked for every inbound message; the
    message has the same shape the ledger translator produces.
    """

    async def deliver(self, message: Message) -> None:
        ...

    def receive(self, handler: Callable[[Message], Awaitable[None]]) -> None:
        ...


class RequestCorrelator:
    """Pending-request map plus the inbound request handler.

    Args:
        deliver: Coroutine that sends one message.
        account: Our prefixed account, reported in error responses.
        emitter: Event emitter for request/response events.
        default_timeout: Seconds to wait when the caller gives no timeout.
    """

    def __init__(
        self,
        deliver: Deliver,
        *,
        account: str,
        emitter: EventEmitter,
        default_timeout: float = 10.0,
    ) -> None:
        self._deliver = deliver
        self._account = account
        self._emitter = emitter
        self._default_timeout = default_timeout
        self._pending: dict[str, asyncio.Future[Message]] = {}
        self._handler: RequestHandler | None = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    # -----------------------------------------------------------------
    # Outbound
    # -----------------------------------------------------------------

    async def send_request(self, message: Message, timeout: float | None = None) -> Message:
        """Send a request and wait for the correlated response.

        ``timeout`` is in seconds. When omitted, a ``timeout`` field on
        the message (milliseconds) is used, then the default.

        Raises:
            RequestTimeoutError: No response before the timeout.
            InvalidFieldsError: A request with the same id is pending.
        """
        request = dict(message)
        message_timeout = request.pop("timeout", None)
        if timeout is None:
            timeout = (
                message_timeout / 1000.0
                if message_timeout is not None
                else self._default_timeout
            )
        request_id = request.setdefault("id", str(uuid.uuid4()))
        request["kind"] = REQUEST
        if request_id in self._pending:
            raise InvalidFieldsError(f"request {request_id!r} is already pending")

        future: asyncio.Future[Message] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        async def exchange() -> Message:
            await self._deliver(request)
            return await future

        try:
            await self._emitter.emit(PluginEvent.OUTGOING_REQUEST, request)
            return await asyncio.wait_for(exchange(), timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(
                f"no response to request {request_id!r} within {timeout}s"
            ) from None
        finally:
            if self._pending.get(request_id) is future:
                del self._pending[request_id]

    # -----------------------------------------------------------------
    # Inbound
    # -----------------------------------------------------------------

    def register_request_handler(self, handler: RequestHandler) -> None:
        if self._handler is not None:
            raise RequestHandlerAlreadyRegisteredError("a request handler is already registered")
        self._handler = handler

    def deregister_request_handler(self) -> None:
        self._handler = None

    async def handle_response(self, message: Message) -> bool:
        """Settle the pending request with this response's id.

        Returns:
            True if a pending request was settled. Late or unknown
            responses are dropped.
        """
        future = self._pending.pop(message.get("id", ""), None)
        if future is None or future.done():
            logger.debug("dropping uncorrelated response %s", message.get("id"))
            return False
        future.set_result(message)
        await self._emitter.emit(PluginEvent.INCOMING_RESPONSE, message)
        return True

    async def handle_request(self, message: Message) -> Message | None:
        """Run the request handler and send back its response.

        A request without an id or a sender cannot be answered; it is
        logged and dropped (returns None).
        """
        if not message.get("id") or not message.get("from"):
            logger.warning(
                "dropping request without id or sender (id=%r, from=%r)",
                message.get("id"), message.get("from"),
            )
            return None
        await self._emitter.emit(PluginEvent.INCOMING_REQUEST, message)

        if self._handler is None:
            data = self._error(NO_HANDLER_CODE, NO_HANDLER_NAME, "no request handler registered")
        else:
            try:
                data = self._handler(message)
                if inspect.isawaitable(data):
                    data = await data
            except Exception as exc:
                logger.warning("request handler failed for %s: %s", message.get("id"), exc)
                data = self._error(HANDLER_ERROR_CODE, HANDLER_ERROR_NAME, str(exc))

        response: Message = {
            "id": message["id"],
            "to": message["from"],
            "kind": RESPONSE,
            "data": {} if data is None else data,
        }
        await self._deliver(response)
        await self._emitter.emit(PluginEvent.OUTGOING_RESPONSE, response)
        return response

    def _error(self, code: str, name: str, detail: str) -> dict[str, Any]:
        return {
            "error": {
                "code": code,
                "name": name,
                "message": detail,
                "triggered_by": self._account,
                "triggered_at": format_timestamp(datetime.now(timezone.utc)),
            }
        }
