"""
Transfer lifecycle store — in-memory record of every transfer seen.

Two indexes point at the same TransferEntry objects:
    - by locator: the escrow's ledger object index (what finish/cancel
      events reference, via AffectedNodes).
    - by (sender, transfer id): what callers use. Ids are unique per
      sender only, so two senders may both use the same id.

Invariants:
    - A locator maps to at most one entry, and the mapping never changes.
    - A (sender, transfer id) pair, once aliased, keeps pointing at its
      first entry. Terminal transitions always go to the locator's entry.
    - ``done`` is set exactly once; fulfilled and cancelled are exclusive.

Retention:
    Terminal entries are evicted ``retention`` seconds after they went
    terminal. Eviction runs on each terminal transition. ``retention=None``
    keeps everything for the life of the process.

Single-writer: mutated only from the plugin's event-handling path.
Nothing here awaits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from escrow_plugin.errors import (
    AlreadyRolledBackError,
    InvalidFieldsError,
    MissingFulfillmentError,
    TransferNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class TransferEntry:
    """Ledger-linked state of one escrowed transfer.

    Attributes:
        locator: Ledger index of the escrow object.
        owner: Account that created (owns) the escrow.
        sequence: Owner's sequence number of the EscrowCreate.
        memos: Raw memos of the EscrowCreate, for later finish/cancel
            translation (those transactions carry none of their own).
        transfer_id: Protocol transfer id, once decoded from the memos.
        condition: Protocol execution condition, once known.
        done: Set on the first terminal outcome; never unset.
        fulfillment: Protocol fulfillment, after a validated finish.
        cancelled: True after a validated cancel.
        terminal_at: Monotonic time the entry went terminal.
    """

    locator: str
    owner: str
    sequence: int
    memos: list[dict[str, Any]] = field(default_factory=list)
    transfer_id: str | None = None
    condition: str | None = None
    done: bool = False
    fulfillment: str | None = None
    cancelled: bool = False
    terminal_at: float | None = None


class TransferStore:
    """Authoritative in-memory transfer state for one plugin instance.

    Args:
        retention: Seconds to keep terminal entries. None keeps them forever.
    """

    def __init__(self, retention: float | None = None) -> None:
        self._retention = retention
        self._by_locator: dict[str, TransferEntry] = {}
        self._by_id: dict[tuple[str, str], TransferEntry] = {}
        self._notes: dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self._by_locator)

    # -----------------------------------------------------------------
    # Indexing
    # -----------------------------------------------------------------

    def remember_creation(
        self,
        locator: str,
        *,
        owner: str,
        sequence: int,
        memos: list[dict[str, Any]],
    ) -> TransferEntry:
        """Cache an EscrowCreate under its locator.

        A locator already present keeps its original entry.
        """
        existing = self._by_locator.get(locator)
        if existing is not None:
            return existing
        entry = TransferEntry(
            locator=locator, owner=owner, sequence=sequence, memos=list(memos)
        )
        self._by_locator[locator] = entry
        return entry

    def by_locator(self, locator: str) -> TransferEntry | None:
        return self._by_locator.get(locator)

    def alias(self, transfer_id: str, entry: TransferEntry) -> TransferEntry:
        """Make ``entry`` reachable by (owner, transfer id).

        Returns the entry now bound to the pair. A different escrow of the
        same owner reusing the id stays reachable by locator only.
        """
        entry.transfer_id = transfer_id
        key = (entry.owner, transfer_id)
        bound = self._by_id.get(key)
        if bound is not None and bound is not entry:
            logger.warning(
                "transfer id %s of %s already bound to escrow %s; ignoring escrow %s",
                transfer_id, entry.owner, bound.locator, entry.locator,
            )
            return bound
        self._by_id[key] = entry
        return entry

    def find(self, transfer_id: str) -> list[TransferEntry]:
        """Every entry bound to ``transfer_id``, one per sender."""
        return [entry for (_, tid), entry in self._by_id.items() if tid == transfer_id]

    def get(self, transfer_id: str, sender: str | None = None) -> TransferEntry | None:
        """Entry for a transfer id.

        Without ``sender`` the id must be unambiguous.

        Raises:
            InvalidFieldsError: Several senders used ``transfer_id``.
        """
        if sender is not None:
            return self._by_id.get((sender, transfer_id))
        entries = self.find(transfer_id)
        if len(entries) > 1:
            raise InvalidFieldsError(
                f"transfer id {transfer_id!r} is used by {len(entries)} senders; "
                f"name the sender"
            )
        return entries[0] if entries else None

    # -----------------------------------------------------------------
    # Sender-local notes
    # -----------------------------------------------------------------

    def set_note(self, transfer_id: str, note: Any) -> None:
        if note is not None:
            self._notes[transfer_id] = note

    def note(self, transfer_id: str) -> Any:
        return self._notes.get(transfer_id)

    # -----------------------------------------------------------------
    # Terminal transitions
    # -----------------------------------------------------------------

    def mark_fulfilled(self, entry: TransferEntry, fulfillment: str, now: float) -> bool:
        """Record a validated finish. False if the entry was already done."""
        if entry.done:
            return False
        entry.done = True
        entry.fulfillment = fulfillment
        entry.terminal_at = now
        self.prune(now)
        return True

    def mark_cancelled(self, entry: TransferEntry, now: float) -> bool:
        """Record a validated cancel. False if the entry was already done."""
        if entry.done:
            return False
        entry.done = True
        entry.cancelled = True
        entry.terminal_at = now
        self.prune(now)
        return True

    def is_done(self, transfer_id: str, sender: str | None = None) -> bool:
        entry = self.get(transfer_id, sender)
        return entry is not None and entry.done

    def fulfillment_of(self, transfer_id: str, sender: str | None = None) -> str:
        """The revealed fulfillment of a transfer.

        Raises:
            TransferNotFoundError: Never seen (or already evicted).
            AlreadyRolledBackError: The transfer was cancelled.
            MissingFulfillmentError: Still pending.
            InvalidFieldsError: Ambiguous id and no sender given.
        """
        entry = self.get(transfer_id, sender)
        if entry is None:
            raise TransferNotFoundError(f"transfer {transfer_id!r} not found")
        if entry.cancelled:
            raise AlreadyRolledBackError(f"transfer {transfer_id!r} was cancelled")
        if entry.fulfillment is None:
            raise MissingFulfillmentError(f"transfer {transfer_id!r} has not been fulfilled")
        return entry.fulfillment

    # -----------------------------------------------------------------
    # Retention
    # -----------------------------------------------------------------

    def prune(self, now: float) -> int:
        """Evict terminal entries older than the retention window.

        Returns:
            Number of entries evicted.
        """
        if self._retention is None:
            return 0
        cutoff = now - self._retention
        expired = [
            e for e in self._by_locator.values()
            if e.terminal_at is not None and e.terminal_at < cutoff
        ]
        for entry in expired:
            del self._by_locator[entry.locator]
            if entry.transfer_id is None:
                continue
            key = (entry.owner, entry.transfer_id)
            if self._by_id.get(key) is entry:
                del self._by_id[key]
            if not self.find(entry.transfer_id):
                self._notes.pop(entry.transfer_id, None)
        if expired:
            logger.debug("evicted %d terminal transfer(s)", len(expired))
        return len(expired)
