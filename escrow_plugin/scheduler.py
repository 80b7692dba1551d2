"""
Expiry scheduler — cancels outgoing escrows once they expire.

Per transfer:

    Active ──(expires_at + grace)──► Expiring ──► Cancelled
                                        │  ▲
                                        └──┘ retryable rejection

When the timer fires the transfer is re-read from the store. If it is
already done (fulfillment won the race) nothing happens. Otherwise a
cancellation is submitted. A rejection whose engine result is in the
retry policy's retryable set is retried (unbounded unless
``max_attempts`` is set); any other failure is logged and the transfer
stays non-terminal.

Timers are not de-scheduled when a transfer completes; the done check at
fire time makes them no-ops. ``close()`` cancels all outstanding timers
on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime

from escrow_plugin.config import RetryConfig
from escrow_plugin.errors import NotAcceptedError
from escrow_plugin.store import TransferEntry, TransferStore
from escrow_plugin.xrpl.errors import is_retryable_cancel_result
from escrow_plugin.xrpl.tx import parse_timestamp

logger = logging.getLogger(__name__)

CancelFn = Callable[[TransferEntry], Awaitable[None]]


class ExpiryScheduler:
    """Per-transfer expiry timers with bounded-or-unbounded cancel retry.

    Args:
        store: Transfer store consulted when a timer fires.
        cancel: Coroutine that submits a cancellation for an entry and
            waits for its validated outcome.
        grace: Seconds added to every expiry.
        retry: Retry policy for rejected cancellations.
        clock: Wall-clock seconds since the Unix epoch. Inject for tests.
        account: Owner of the escrows this scheduler cancels; transfer ids
            are looked up under it.
    """

    def __init__(
        self,
        store: TransferStore,
        cancel: CancelFn,
        *,
        grace: float = 2.0,
        retry: RetryConfig | None = None,
        clock: Callable[[], float] | None = None,
        account: str | None = None,
    ) -> None:
        self._store = store
        self._account = account
        self._cancel = cancel
        self._grace = grace
        self._retry = retry or RetryConfig()
        self._clock = clock or time.time
        self._timers: dict[str, asyncio.Task[None]] = {}

    def is_armed(self, transfer_id: str) -> bool:
        return transfer_id in self._timers

    def delay_for(self, expires_at: str | datetime) -> float:
        """Seconds from now until the cancellation should be attempted."""
        expiry = parse_timestamp(expires_at).timestamp()
        return max(0.0, expiry - self._clock() + self._grace)

    def arm(self, transfer_id: str, expires_at: str | datetime) -> bool:
        """Start the expiry timer for a transfer. False if already armed."""
        if transfer_id in self._timers:
            return False
        delay = self.delay_for(expires_at)
        logger.debug("expiry of %s armed in %.3fs", transfer_id, delay)
        task = asyncio.create_task(self._expire(transfer_id, delay))
        self._timers[transfer_id] = task
        task.add_done_callback(lambda t: self._forget(transfer_id, t))
        return True

    def _forget(self, transfer_id: str, task: asyncio.Task[None]) -> None:
        if self._timers.get(transfer_id) is task:
            del self._timers[transfer_id]

    async def _expire(self, transfer_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        attempt = 1
        while True:
            entry = self._store.get(transfer_id, self._account)
            if entry is None or entry.done:
                logger.debug("expiry of %s: already done", transfer_id)
                return
            try:
                await self._cancel(entry)
                return
            except NotAcceptedError as exc:
                if entry.done:
                    return
                if not is_retryable_cancel_result(
                    exc.engine_result, self._retry.retryable_results
                ):
                    logger.error(
                        "cancellation of %s rejected (%s); not retrying",
                        transfer_id, exc.engine_result,
                    )
                    return
                attempt += 1
                if not self._retry.allows(attempt):
                    logger.error(
                        "cancellation of %s still rejected (%s) after %d attempts; giving up",
                        transfer_id, exc.engine_result, attempt - 1,
                    )
                    return
                logger.warning(
                    "cancellation of %s rejected (%s); retrying (attempt %d)",
                    transfer_id, exc.engine_result, attempt,
                )
                if self._retry.delay:
                    await asyncio.sleep(self._retry.delay)
            except Exception:
                logger.exception("cancellation of %s failed", transfer_id)
                return

    async def close(self) -> None:
        """Cancel every outstanding timer."""
        timers = list(self._timers.values())
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._timers.clear()
