"""
Submission correlator — ties a submitted transaction to its validation.

``submit()`` registers a pending handle under the transaction hash
*before* sending the blob (the validation can race the submit reply),
then waits until the validated-event stream reports that hash:

    - validated with tesSUCCESS → returns None
    - validated with anything else → NotAcceptedError(engine_result)

A preliminary result that can never validate (tem*, tef*, tel*, or a
server-level error) rejects immediately instead of hanging.

There is no timeout here; a submission that never validates waits
forever. Timeout policy belongs to the caller.

Events for hashes with no pending handle are ignored.
"""

from __future__ import annotations

import asyncio
import logging

from escrow_plugin.errors import DuplicateSubmissionError, NotAcceptedError
from escrow_plugin.xrpl.client import LedgerClient, LedgerEvent
from escrow_plugin.xrpl.errors import SUCCESS_RESULT, never_validates
from escrow_plugin.xrpl.signer import SignResult

logger = logging.getLogger(__name__)


class SubmissionCorrelator:
    """Pending-submission map for one plugin instance.

    Args:
        client: Ledger client used for raw submission.
    """

    def __init__(self, client: LedgerClient) -> None:
        self._client = client
        self._pending: dict[str, asyncio.Future[None]] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, tx_hash: str) -> bool:
        return tx_hash.upper() in self._pending

    async def submit(self, signed: SignResult) -> None:
        """Submit a signed transaction and wait for its validated outcome.

        Raises:
            DuplicateSubmissionError: The hash is already awaiting validation.
            NotAcceptedError: The ledger rejected the transaction.
            Exception: Transport failures from the client propagate.
        """
        tx_hash = signed.tx_hash.upper()
        if tx_hash in self._pending:
            raise DuplicateSubmissionError(f"transaction {tx_hash} is already pending")

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._pending[tx_hash] = future
        try:
            result = await self._client.submit(signed.signed_tx_blob_hex)
            logger.debug(
                "submitted %s: %s (accepted=%s)",
                tx_hash, result.engine_result, result.accepted,
            )
            if not future.done() and not result.accepted and (
                result.engine_result is None or never_validates(result.engine_result)
            ):
                raise NotAcceptedError(
                    f"transaction {tx_hash} was rejected on submit: "
                    f"{result.engine_result or result.detail}",
                    engine_result=result.engine_result,
                    tx_hash=tx_hash,
                )
            await future
        finally:
            if self._pending.get(tx_hash) is future:
                del self._pending[tx_hash]

    def handle_event(self, event: LedgerEvent) -> bool:
        """Settle the pending submission matching a validated event.

        Returns:
            True if a pending submission was settled.
        """
        if not event.validated:
            return False
        tx_hash = event.tx_hash
        if tx_hash is None:
            return False
        future = self._pending.pop(tx_hash, None)
        if future is None or future.done():
            return False

        if event.engine_result == SUCCESS_RESULT:
            future.set_result(None)
        else:
            future.set_exception(
                NotAcceptedError(
                    f"transaction {tx_hash} failed with engine result "
                    f"{event.engine_result}",
                    engine_result=event.engine_result,
                    tx_hash=tx_hash,
                )
            )
        return True

    def fail_all(self, exc: BaseException) -> None:
        """Reject every pending submission (used on disconnect)."""
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)
