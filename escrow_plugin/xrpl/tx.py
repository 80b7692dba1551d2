"""
XRPL transaction recipes and the closed transaction-type variant.

Builders return unsigned transaction dicts. They are pure, deterministic, no
secrets, no network calls. Sequence, Fee, LastLedgerSequence and
SigningPubKey are submit-time concerns filled in by the client's
prepare step and the signer.

Ledger time:
    XRPL timestamps count seconds from 2000-01-01T00:00:00Z
    (0x386D4380 seconds after the Unix epoch). Conversions go through
    xrpl-py's time helpers.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from xrpl.utils import (
    XRPLTimeRangeException,
    posix_to_ripple_time,
    ripple_time_to_posix,
)

Memos = list[dict[str, dict[str, str]]]


class TxType(StrEnum):
    """Transaction types the plugin distinguishes. Everything else is OTHER."""

    ESCROW_CREATE = "EscrowCreate"
    ESCROW_FINISH = "EscrowFinish"
    ESCROW_CANCEL = "EscrowCancel"
    PAYMENT = "Payment"
    OTHER = "Other"

    @classmethod
    def of(cls, transaction: dict[str, Any]) -> TxType:
        """Decode the TransactionType field once, at the boundary."""
        try:
            return cls(transaction.get("TransactionType"))
        except ValueError:
            return cls.OTHER


ESCROW_TYPES = frozenset(
    {TxType.ESCROW_CREATE, TxType.ESCROW_FINISH, TxType.ESCROW_CANCEL}
)


# =========================================================================
# Time
# =========================================================================


def parse_timestamp(value: str | datetime) -> datetime:
    """ISO-8601 string (or datetime) → aware UTC datetime. Naive means UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValueError(f"invalid ISO-8601 timestamp: {value!r}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Aware datetime → ISO-8601 UTC with millisecond precision and a Z suffix."""
    return (
        dt.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def to_ripple_time(value: str | datetime) -> int:
    """Absolute timestamp → ledger epoch seconds, rounded up.

    Raises:
        ValueError: If the timestamp is malformed or precedes the ledger epoch.
    """
    posix = parse_timestamp(value).timestamp()
    try:
        return posix_to_ripple_time(math.ceil(posix))
    except XRPLTimeRangeException as exc:
        raise ValueError(str(exc)) from exc


def from_ripple_time(ripple_time: int) -> str:
    """Ledger epoch seconds → ISO-8601 UTC string."""
    posix = ripple_time_to_posix(int(ripple_time))
    return format_timestamp(datetime.fromtimestamp(posix, timezone.utc))


# =========================================================================
# Recipes
# =========================================================================


def _require(**values: object) -> None:
    for name, value in values.items():
        if value is None or value == "":
            raise ValueError(f"{name} must be non-empty")


def plan_escrow_create(
    account: str,
    *,
    destination: str,
    amount_drops: str,
    condition: str,
    cancel_after: int,
    memos: Memos | None = None,
) -> dict[str, Any]:
    """Build an unsigned EscrowCreate.

    Args:
        account: Owner (funding) r-address.
        destination: Recipient r-address.
        amount_drops: Amount in drops, as a decimal string.
        condition: Ledger condition hex (from condition.encode_condition).
        cancel_after: Ledger-epoch second after which the escrow may be cancelled.
        memos: Memo entries (from memo.build_memos).
    """
    _require(account=account, destination=destination, condition=condition)
    if not amount_drops.isdigit():
        raise ValueError(f"amount_drops must be a non-negative integer, got: {amount_drops!r}")

    tx: dict[str, Any] = {
        "TransactionType": TxType.ESCROW_CREATE.value,
        "Account": account,
        "Destination": destination,
        "Amount": amount_drops,
        "Condition": condition,
        "CancelAfter": cancel_after,
    }
    if memos:
        tx["Memos"] = memos
    return tx


def plan_escrow_finish(
    account: str,
    *,
    owner: str,
    offer_sequence: int,
    condition: str,
    fulfillment: str,
    memos: Memos | None = None,
) -> dict[str, Any]:
    """Build an unsigned EscrowFinish releasing escrow (owner, offer_sequence)."""
    _require(account=account, owner=owner, condition=condition, fulfillment=fulfillment)
    tx: dict[str, Any] = {
        "TransactionType": TxType.ESCROW_FINISH.value,
        "Account": account,
        "Owner": owner,
        "OfferSequence": offer_sequence,
        "Condition": condition,
        "Fulfillment": fulfillment,
    }
    if memos:
        tx["Memos"] = memos
    return tx


def plan_escrow_cancel(
    account: str,
    *,
    owner: str,
    offer_sequence: int,
) -> dict[str, Any]:
    """Build an unsigned EscrowCancel returning escrow (owner, offer_sequence)."""
    _require(account=account, owner=owner)
    return {
        "TransactionType": TxType.ESCROW_CANCEL.value,
        "Account": account,
        "Owner": owner,
        "OfferSequence": offer_sequence,
    }


def plan_payment(
    account: str,
    *,
    destination: str,
    amount_drops: str,
    memos: Memos | None = None,
) -> dict[str, Any]:
    """Build an unsigned XRP Payment (used as a memo carrier for messages)."""
    _require(account=account, destination=destination)
    if not amount_drops.isdigit():
        raise ValueError(f"amount_drops must be a non-negative integer, got: {amount_drops!r}")
    tx: dict[str, Any] = {
        "TransactionType": TxType.PAYMENT.value,
        "Account": account,
        "Destination": destination,
        "Amount": amount_drops,
    }
    if memos:
        tx["Memos"] = memos
    return tx
