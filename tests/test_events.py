"""
Tests for the event emitter.

Test plan:
- Listeners run in registration order, sync and async alike
- A failing listener does not stop the others
- off() removes a listener; removing an unknown one is a no-op
- PluginEvent.directed builds the direction-qualified name
"""

import pytest

from escrow_plugin.events import EventEmitter, PluginEvent


class TestEmit:
    @pytest.mark.asyncio
    async def test_order_sync_and_async(self) -> None:
        emitter = EventEmitter()
        seen: list[str] = []

        async def second(value: int) -> None:
            seen.append(f"async {value}")

        emitter.on(PluginEvent.OUTGOING_PREPARE, lambda value: seen.append(f"sync {value}"))
        emitter.on(PluginEvent.OUTGOING_PREPARE, second)
        await emitter.emit(PluginEvent.OUTGOING_PREPARE, 1)
        assert seen == ["sync 1", "async 1"]

    @pytest.mark.asyncio
    async def test_failing_listener_isolated(self) -> None:
        emitter = EventEmitter()
        seen: list[str] = []

        def bad() -> None:
            raise RuntimeError("listener bug")

        emitter.on("connect", bad)
        emitter.on("connect", lambda: seen.append("ok"))
        await emitter.emit(PluginEvent.CONNECT)
        assert seen == ["ok"]

    @pytest.mark.asyncio
    async def test_off(self) -> None:
        emitter = EventEmitter()
        seen: list[int] = []
        listener = seen.append
        emitter.on("incoming_message", listener)
        emitter.off("incoming_message", listener)
        emitter.off("incoming_message", listener)
        await emitter.emit(PluginEvent.INCOMING_MESSAGE, 1)
        assert seen == []
        assert emitter.listener_count("incoming_message") == 0


class TestDirected:
    def test_directed(self) -> None:
        assert PluginEvent.directed("outgoing", "fulfill") is PluginEvent.OUTGOING_FULFILL
        assert PluginEvent.directed("incoming", "cancel") is PluginEvent.INCOMING_CANCEL

    def test_unknown_action(self) -> None:
        with pytest.raises(ValueError):
            PluginEvent.directed("outgoing", "explode")
