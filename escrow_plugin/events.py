"""
Lifecycle events emitted to the caller.

Listeners may be plain functions or coroutine functions. ``emit()``
awaits each listener in registration order; a listener that raises is
logged and skipped so one bad listener never stalls the ledger stream.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class PluginEvent(StrEnum):
    """All events a plugin can emit."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"

    INCOMING_PREPARE = "incoming_prepare"
    OUTGOING_PREPARE = "outgoing_prepare"
    INCOMING_FULFILL = "incoming_fulfill"
    OUTGOING_FULFILL = "outgoing_fulfill"
    INCOMING_CANCEL = "incoming_cancel"
    OUTGOING_CANCEL = "outgoing_cancel"

    INCOMING_MESSAGE = "incoming_message"
    OUTGOING_MESSAGE = "outgoing_message"
    INCOMING_REQUEST = "incoming_request"
    OUTGOING_REQUEST = "outgoing_request"
    INCOMING_RESPONSE = "incoming_response"
    OUTGOING_RESPONSE = "outgoing_response"

    @classmethod
    def directed(cls, direction: str, action: str) -> PluginEvent:
        """``directed("outgoing", "fulfill")`` → OUTGOING_FULFILL."""
        return cls(f"{direction}_{action}")


class EventEmitter:
    """Minimal async-aware event emitter."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[str(event)].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        try:
            self._listeners[str(event)].remove(listener)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(str(event), ()))

    async def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(str(event), ())):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("listener for %s failed", event)
