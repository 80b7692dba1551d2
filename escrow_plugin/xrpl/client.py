"""
Ledger client protocol — the network boundary.

Defines the interface the plugin depends on, not a concrete
implementation. This keeps the lifecycle engine testable and keeps
HTTP details out of the business logic.

Concrete implementations:
    - JsonRpcClient (rippled JSON-RPC)
    - FakeLedger (tests)

Result types are boring frozen dataclasses. No exceptions for
"expected" ledger errors; those are captured in the result objects.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from escrow_plugin.xrpl.tx import TxType


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class SubmitResult:
    """Preliminary result of submitting a signed transaction blob.

    Attributes:
        accepted: Whether the node accepted the transaction for processing.
            True does NOT mean validated, only that it entered the queue.
        tx_hash: Transaction hash, when the node reported one.
        engine_result: Preliminary engine result (e.g. "tesSUCCESS",
            "temBAD_FEE"). None on server-level errors.
        detail: Human-readable detail for diagnostics.
    """

    accepted: bool
    tx_hash: str | None = None
    engine_result: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class AccountInfo:
    """Account state from the ledger.

    Attributes:
        address: The r-address queried.
        balance: Balance in drops, as a decimal string.
        sequence: Next transaction sequence number for the account.
    """

    address: str
    balance: str
    sequence: int


@dataclass(frozen=True)
class LedgerEvent:
    """One transaction notification from the ledger.

    Attributes:
        validated: Whether the transaction is in a validated ledger.
        engine_result: Final engine result (e.g. "tesSUCCESS").
        transaction: Raw transaction JSON, including its "hash".
        meta: Transaction metadata (AffectedNodes, TransactionResult).
        tx_type: TransactionType decoded into the closed TxType variant.
    """

    validated: bool
    engine_result: str | None
    transaction: dict[str, Any]
    meta: dict[str, Any] = field(default_factory=dict)
    tx_type: TxType = TxType.OTHER

    @property
    def tx_hash(self) -> str | None:
        value = self.transaction.get("hash")
        return value.upper() if isinstance(value, str) else None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LedgerEvent:
        """Parse a stream notification.

        Accepts both the websocket shape ("transaction", "meta",
        "engine_result") and the account_tx shape ("tx", "meta"), where
        the engine result lives in meta.TransactionResult.
        """
        transaction = data.get("transaction") or data.get("tx") or {}
        meta = data.get("meta") or {}
        if not isinstance(meta, dict):
            meta = {}
        engine_result = data.get("engine_result") or meta.get("TransactionResult")
        return cls(
            validated=bool(data.get("validated", False)),
            engine_result=engine_result,
            transaction=transaction,
            meta=meta,
            tx_type=TxType.of(transaction),
        )


EventHandler = Callable[[LedgerEvent], Awaitable[None]]


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerClient(Protocol):
    """Interface for XRPL network operations.

    Implementations own connection management and transport concerns.
    The plugin sees only clean result objects and unsigned tx dicts.

    ``prepare_*`` methods take an unsigned recipe (from xrpl/tx.py) and
    return it completed with Sequence, Fee and LastLedgerSequence.
    """

    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def get_account_info(self, address: str) -> AccountInfo:
        ...

    async def prepare_escrow_creation(
        self, address: str, tx: dict[str, Any]
    ) -> dict[str, Any]:
        ...

    async def prepare_escrow_execution(
        self, address: str, tx: dict[str, Any]
    ) -> dict[str, Any]:
        ...

    async def prepare_escrow_cancellation(
        self, address: str, tx: dict[str, Any]
    ) -> dict[str, Any]:
        ...

    async def prepare_payment(
        self, address: str, tx: dict[str, Any]
    ) -> dict[str, Any]:
        ...

    async def submit(self, signed_tx_blob_hex: str) -> SubmitResult:
        """Submit a signed blob. Returns the preliminary result only."""
        ...

    async def subscribe(self, address: str, handler: EventHandler) -> None:
        """Deliver transactions affecting ``address`` to ``handler``.

        Events are delivered one at a time, in ledger order; the next
        event is not delivered until the handler's coroutine completes.
        """
        ...
