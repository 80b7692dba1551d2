"""
Tests for the transfer lifecycle store.

Test plan:
- Indexing: remember_creation is idempotent per locator, alias binds the
  (sender, id) to the entry, a second escrow of the same sender with
  the same id does not rebind, two senders may share an id
- Terminal transitions: exactly one of fulfilled/cancelled wins
- fulfillment_of: not found, cancelled, pending, fulfilled
- Notes: None not stored, kept per id
- Retention: terminal entries evicted after the window, live entries
  kept, None keeps everything
"""

import pytest

from escrow_plugin.errors import (
    AlreadyRolledBackError,
    InvalidFieldsError,
    MissingFulfillmentError,
    TransferNotFoundError,
)
from escrow_plugin.store import TransferEntry, TransferStore

OWNER = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
OTHER = "rPEPPER7kfTD9w2To4CQk6UCfuHM9c6GDY"


def _entry(store: TransferStore, locator: str = "L1", transfer_id: str = "t1") -> TransferEntry:
    entry = store.remember_creation(locator, owner=OWNER, sequence=1, memos=[])
    return store.alias(transfer_id, entry)


class TestIndexing:
    def test_remember_is_idempotent(self) -> None:
        store = TransferStore()
        first = store.remember_creation("L1", owner=OWNER, sequence=1, memos=[])
        second = store.remember_creation("L1", owner="rOther", sequence=9, memos=[])
        assert first is second
        assert second.sequence == 1
        assert len(store) == 1

    def test_alias(self) -> None:
        store = TransferStore()
        entry = _entry(store)
        assert store.get("t1") is entry
        assert store.by_locator("L1") is entry
        assert entry.transfer_id == "t1"

    def test_first_binding_wins(self) -> None:
        store = TransferStore()
        first = _entry(store, "L1", "t1")
        other = store.remember_creation("L2", owner=OWNER, sequence=2, memos=[])
        assert store.alias("t1", other) is first
        assert store.get("t1") is first

    def test_same_id_from_two_senders(self) -> None:
        store = TransferStore()
        mine = _entry(store, "L1", "t1")
        theirs = store.alias(
            "t1", store.remember_creation("L2", owner=OTHER, sequence=7, memos=[])
        )
        assert theirs is not mine
        assert store.find("t1") == [mine, theirs]
        assert store.get("t1", sender=OWNER) is mine
        assert store.get("t1", sender=OTHER) is theirs
        with pytest.raises(InvalidFieldsError):
            store.get("t1")
        with pytest.raises(InvalidFieldsError):
            store.fulfillment_of("t1")

    def test_unknown(self) -> None:
        store = TransferStore()
        assert store.get("nope") is None
        assert store.by_locator("nope") is None


class TestTerminal:
    def test_fulfill_then_cancel(self) -> None:
        store = TransferStore()
        entry = _entry(store)
        assert store.mark_fulfilled(entry, "ful", now=0.0) is True
        assert store.mark_cancelled(entry, now=0.0) is False
        assert entry.fulfillment == "ful"
        assert entry.cancelled is False
        assert store.is_done("t1")

    def test_cancel_then_fulfill(self) -> None:
        store = TransferStore()
        entry = _entry(store)
        assert store.mark_cancelled(entry, now=0.0) is True
        assert store.mark_fulfilled(entry, "ful", now=0.0) is False
        assert entry.fulfillment is None
        assert entry.cancelled is True

    def test_second_fulfill_ignored(self) -> None:
        store = TransferStore()
        entry = _entry(store)
        store.mark_fulfilled(entry, "first", now=0.0)
        assert store.mark_fulfilled(entry, "second", now=0.0) is False
        assert entry.fulfillment == "first"


class TestFulfillmentOf:
    def test_not_found(self) -> None:
        with pytest.raises(TransferNotFoundError):
            TransferStore().fulfillment_of("t1")

    def test_pending(self) -> None:
        store = TransferStore()
        _entry(store)
        with pytest.raises(MissingFulfillmentError):
            store.fulfillment_of("t1")

    def test_cancelled(self) -> None:
        store = TransferStore()
        store.mark_cancelled(_entry(store), now=0.0)
        with pytest.raises(AlreadyRolledBackError):
            store.fulfillment_of("t1")

    def test_fulfilled(self) -> None:
        store = TransferStore()
        store.mark_fulfilled(_entry(store), "ful", now=0.0)
        assert store.fulfillment_of("t1") == "ful"


class TestNotes:
    def test_set_and_get(self) -> None:
        store = TransferStore()
        store.set_note("t1", {"route": 1})
        assert store.note("t1") == {"route": 1}

    def test_none_not_stored(self) -> None:
        store = TransferStore()
        store.set_note("t1", None)
        assert store.note("t1") is None


class TestRetention:
    def test_terminal_evicted_after_window(self) -> None:
        store = TransferStore(retention=10.0)
        old = _entry(store, "L1", "t1")
        store.set_note("t1", "note")
        store.mark_fulfilled(old, "ful", now=100.0)
        live = _entry(store, "L2", "t2")

        recent = _entry(store, "L3", "t3")
        store.mark_cancelled(recent, now=111.0)

        assert store.get("t1") is None
        assert store.by_locator("L1") is None
        assert store.note("t1") is None
        assert store.get("t2") is live
        assert store.get("t3") is recent
        with pytest.raises(TransferNotFoundError):
            store.fulfillment_of("t1")

    def test_within_window_kept(self) -> None:
        store = TransferStore(retention=10.0)
        store.mark_fulfilled(_entry(store, "L1", "t1"), "ful", now=100.0)
        assert store.prune(now=105.0) == 0
        assert store.fulfillment_of("t1") == "ful"

    def test_none_keeps_everything(self) -> None:
        store = TransferStore(retention=None)
        store.mark_fulfilled(_entry(store), "ful", now=0.0)
        assert store.prune(now=1e12) == 0
        assert len(store) == 1
