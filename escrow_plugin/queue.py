"""
Submission queue — strict FIFO serialization of escrow creations.

An EscrowCreate consumes the next sequence number of the signing
account. Preparing two of them concurrently reads the same sequence
from the ledger and one of them is lost (tefPAST_SEQ), so each job is
prepared, signed, submitted and validated before the next one starts
preparing.

Jobs run in submission order. A failing job rejects only its own
caller; the queue carries on with the next one.

EscrowFinish, EscrowCancel and message payments are not routed through
the queue. They do not create escrows, and a sequence collision on one
of them surfaces as a NotAcceptedError on that submission (the expiry
scheduler retries tefPAST_SEQ cancellations).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SubmissionQueue:
    """Single-lane job chain for one plugin instance."""

    def __init__(self) -> None:
        # asyncio.Lock wakes waiters in FIFO order.
        self._lock = asyncio.Lock()
        self._waiting = 0

    @property
    def depth(self) -> int:
        """Jobs queued or running."""
        return self._waiting

    async def run(self, job: Callable[[], Awaitable[T]]) -> T:
        """Run ``job`` once every earlier job has finished."""
        self._waiting += 1
        try:
            async with self._lock:
                logger.debug("running queued submission (%d in queue)", self._waiting)
                return await job()
        finally:
            self._waiting -= 1
