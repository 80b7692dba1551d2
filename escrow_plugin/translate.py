"""
Ledger event → protocol record translation.

Escrow events:
    The escrow object itself is found in the transaction metadata
    (AffectedNodes), preferring a DeletedNode (finish/cancel) over a
    CreatedNode (create). Its LedgerIndex is the locator.

    Only EscrowCreate carries memos. Its {account, memos, sequence} are
    cached under the locator so later finish/cancel events, which
    reference the escrow but carry no transfer id, can be translated.
    The cached entry is also aliased under (owner, transfer id). The
    entry returned is always the locator's, never another escrow that
    happens to share the id. Foreign escrows are rejected before the
    store is touched.

Payment events:
    Memo-carrying payments are messages. A missing body decodes to {},
    a missing correlation id is generated.

Direction:
    "outgoing" if the escrow (or payment) source is our account,
    "incoming" if the destination is. Anything else is foreign and
    raises TranslationError.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any, TypedDict

from escrow_plugin import condition as cc
from escrow_plugin.errors import TranslationError
from escrow_plugin.store import TransferEntry, TransferStore
from escrow_plugin.xrpl.client import LedgerEvent
from escrow_plugin.xrpl.memo import (
    FULFILLMENT_REL,
    ID_REL,
    ILP_REL,
    MESSAGE_ID_REL,
    MESSAGE_KIND_REL,
    MESSAGE_REL,
    memo_text,
    parse_memos,
)
from escrow_plugin.xrpl.tx import TxType, from_ripple_time

OUTGOING = "outgoing"
INCOMING = "incoming"


# Functional syntax because "from" is a keyword.
TransferRecord = TypedDict(
    "TransferRecord",
    {
        "id": str,
        "to": str,
        "from": str,
        "direction": str,
        "ledger": str,
        "amount": str,
        "ilp": str,
        "executionCondition": str | None,
        "noteToSelf": Any,
        "expiresAt": str | None,
    },
)

MessageRecord = TypedDict(
    "MessageRecord",
    {
        "id": str,
        "to": str,
        "from": str,
        "direction": str,
        "ledger": str,
        "data": Any,
        "kind": str | None,
    },
)


@dataclass(frozen=True)
class EscrowNode:
    """The escrow ledger object touched by a transaction."""

    locator: str
    fields: dict[str, Any]
    deleted: bool


def parse_escrow(event: LedgerEvent) -> EscrowNode | None:
    """Find the Escrow node in AffectedNodes, deletions first."""
    nodes = event.meta.get("AffectedNodes") or []
    for node_type, field_key in (("DeletedNode", "FinalFields"), ("CreatedNode", "NewFields")):
        for entry in nodes:
            node = entry.get(node_type)
            if node and node.get("LedgerEntryType") == "Escrow":
                return EscrowNode(
                    locator=node.get("LedgerIndex", ""),
                    fields=node.get(field_key) or {},
                    deleted=node_type == "DeletedNode",
                )
    return None


def get_direction(address: str, source: str | None, destination: str | None) -> str:
    if source == address:
        return OUTGOING
    if destination == address:
        return INCOMING
    raise TranslationError(
        f"transaction from {source!r} to {destination!r} does not involve {address}"
    )


def revealed_fulfillment(event: LedgerEvent) -> str | None:
    """Protocol fulfillment revealed by an EscrowFinish, if any.

    Prefers the binary Fulfillment field; falls back to the reveal memo.
    """
    raw = event.transaction.get("Fulfillment")
    if raw:
        try:
            return cc.decode_fulfillment(raw)
        except ValueError as exc:
            raise TranslationError(f"undecodable fulfillment: {exc}") from exc
    return memo_text(parse_memos(event.transaction.get("Memos")), FULFILLMENT_REL)


class EventTranslator:
    """Turns validated ledger events into transfer and message records.

    Args:
        address: This plugin's r-address.
        prefix: Routing prefix prepended to ledger addresses.
        store: Transfer store used as the locator cache.
    """

    def __init__(self, address: str, prefix: str, store: TransferStore) -> None:
        self._address = address
        self._prefix = prefix
        self._store = store

    def escrow_to_transfer(
        self, event: LedgerEvent
    ) -> tuple[TransferRecord, TransferEntry]:
        """Translate an EscrowCreate/Finish/Cancel event.

        Returns:
            (transfer record, store entry).

        Raises:
            TranslationError: No escrow node, no cached creation, missing
                id memo, undecodable condition, or foreign direction.
        """
        escrow = parse_escrow(event)
        if escrow is None or not escrow.locator:
            raise TranslationError(f"no Escrow node in metadata of tx {event.tx_hash}")

        node = escrow.fields
        direction = get_direction(self._address, node.get("Account"), node.get("Destination"))

        transaction = event.transaction
        if event.tx_type is TxType.ESCROW_CREATE:
            if not transaction.get("Memos"):
                raise TranslationError(f"EscrowCreate {event.tx_hash} carries no memos")
            self._store.remember_creation(
                escrow.locator,
                owner=transaction.get("Account", ""),
                sequence=int(transaction.get("Sequence", 0)),
                memos=transaction["Memos"],
            )

        entry = self._store.by_locator(escrow.locator)
        if entry is None:
            raise TranslationError(f"no cached creation for escrow {escrow.locator}")

        memos = parse_memos(entry.memos)
        transfer_id = memo_text(memos, ID_REL)
        if not transfer_id:
            raise TranslationError(f"escrow {escrow.locator} has no transfer id memo")
        ilp = memo_text(memos, ILP_REL) or ""
        self._store.alias(transfer_id, entry)

        execution_condition = None
        if node.get("Condition"):
            try:
                execution_condition = cc.decode_condition(node["Condition"])
            except ValueError as exc:
                raise TranslationError(f"undecodable condition: {exc}") from exc
            if entry.condition is None:
                entry.condition = execution_condition

        cancel_after = node.get("CancelAfter")
        record: TransferRecord = {
            "id": transfer_id,
            "to": self._prefix + node.get("Destination", ""),
            "from": self._prefix + node.get("Account", ""),
            "direction": direction,
            "ledger": self._prefix,
            "amount": str(node.get("Amount", "0")),
            "ilp": ilp,
            "executionCondition": execution_condition,
            "noteToSelf": self._store.note(transfer_id) if direction == OUTGOING else None,
            "expiresAt": from_ripple_time(cancel_after) if cancel_after is not None else None,
        }
        return record, entry

    def payment_to_message(self, event: LedgerEvent) -> MessageRecord:
        """Translate a memo-carrying Payment into a message record.

        Raises:
            TranslationError: Undecodable body or foreign direction.
        """
        transaction = event.transaction
        memos = parse_memos(transaction.get("Memos"))

        body = memo_text(memos, MESSAGE_REL)
        try:
            data = json.loads(body) if body else {}
        except json.JSONDecodeError as exc:
            raise TranslationError(f"message body of tx {event.tx_hash} is not JSON") from exc

        source = transaction.get("Account")
        destination = transaction.get("Destination")
        return {
            "id": memo_text(memos, MESSAGE_ID_REL) or str(uuid.uuid4()),
            "from": self._prefix + (source or ""),
            "to": self._prefix + (destination or ""),
            "direction": get_direction(self._address, source, destination),
            "ledger": self._prefix,
            "data": data,
            "kind": memo_text(memos, MESSAGE_KIND_REL),
        }
