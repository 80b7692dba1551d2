"""
XRPL JSON-RPC client — rippled implementation of LedgerClient.

Translates JSON-RPC responses into the result types of client.py.
Uses an injectable transport (JsonRpcTransport) so the HTTP layer can
be swapped for test fakes without changing parsing logic.

Validated-transaction stream:
    JSON-RPC has no push channel, so ``subscribe()`` polls. Each tick
    reads the latest validated ledger index and, if it advanced, pulls
    ``account_tx`` for the new ledger range (following ``marker``
    pagination) and hands every transaction to the handler in ledger
    order. Transport failures are logged and retried on the next tick;
    the poller only stops on ``disconnect()``.

Response parsing targets rippled JSON-RPC conventions:
    - Successful responses: {"result": {"status": "success", ...}}
    - Error responses: {"result": {"status": "error", "error": "...", ...}}
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from escrow_plugin.errors import PluginError
from escrow_plugin.xrpl.client import (
    AccountInfo,
    EventHandler,
    LedgerEvent,
    SubmitResult,
)
from escrow_plugin.xrpl.transport import HttpxTransport, JsonRpcTransport
from escrow_plugin.xrpl.tx import TxType

logger = logging.getLogger(__name__)

# Fee multiplier base for EscrowFinish with a fulfillment:
# base_fee * (33 + fulfillment_bytes / 16).
_FULFILLMENT_FEE_UNITS = 33
_FULFILLMENT_FEE_CHUNK = 16


class JsonRpcError(PluginError):
    """rippled answered with status == "error".

    Attributes:
        error: rippled error token (e.g. "actNotFound").
    """

    def __init__(self, method: str, error: str, message: str | None = None) -> None:
        super().__init__(f"{method} failed: {message or error}")
        self.method = method
        self.error = error


class JsonRpcClient:
    """XRPL JSON-RPC client implementing the LedgerClient protocol.

    Args:
        url: The rippled JSON-RPC endpoint URL (e.g. "http://localhost:5005").
        transport: Injectable transport for HTTP POST. Defaults to
            HttpxTransport. Pass a FakeTransport for testing.
        poll_interval: Seconds between validated-history polls.
        last_ledger_offset: Ledgers added to the current ledger index
            for LastLedgerSequence.
    """

    def __init__(
        self,
        url: str,
        transport: JsonRpcTransport | None = None,
        *,
        poll_interval: float = 1.0,
        last_ledger_offset: int = 10,
    ) -> None:
        self._url = url
        self._transport = transport or HttpxTransport()
        self._poll_interval = poll_interval
        self._last_ledger_offset = last_ledger_offset
        self._request_id = 0
        self._poll_task: asyncio.Task[None] | None = None
        self._last_validated: int | None = None

    @property
    def url(self) -> str:
        """The JSON-RPC endpoint URL."""
        return self._url

    # -----------------------------------------------------------------
    # Plumbing
    # -----------------------------------------------------------------

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {
            "method": method,
            "params": [params or {}],
            "id": self._next_request_id(),
        }
        response = await self._transport.post_json(self._url, payload)
        result: dict[str, Any] = response.get("result", {})
        if result.get("status") == "error":
            raise JsonRpcError(
                method,
                result.get("error", "unknown"),
                result.get("error_message"),
            )
        return result

    # -----------------------------------------------------------------
    # Connection
    # -----------------------------------------------------------------

    async def connect(self) -> None:
        """Check the node answers before anything else is attempted."""
        info = await self._call("server_info")
        state = info.get("info", {}).get("server_state")
        logger.debug("connected to %s (server_state=%s)", self._url, state)

    async def disconnect(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        await self._transport.aclose()

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    async def get_account_info(self, address: str) -> AccountInfo:
        result = await self._call(
            "account_info",
            {"account": address, "ledger_index": "current"},
        )
        return _parse_account_info(address, result)

    async def _validated_ledger_index(self) -> int:
        result = await self._call("ledger", {"ledger_index": "validated"})
        return int(result["ledger_index"])

    # -----------------------------------------------------------------
    # Prepare (autofill)
    # -----------------------------------------------------------------

    async def _autofill(self, address: str, tx: dict[str, Any]) -> dict[str, Any]:
        prepared = dict(tx)
        prepared.setdefault("Account", address)

        account = await self.get_account_info(address)
        fee = await self._call("fee")
        current = await self._call("ledger_current")

        base_fee = int(fee.get("drops", {}).get("base_fee", "10"))
        open_fee = int(fee.get("drops", {}).get("open_ledger_fee", base_fee))
        prepared["Fee"] = str(_required_fee(prepared, base_fee, open_fee))
        prepared["Sequence"] = account.sequence
        prepared["LastLedgerSequence"] = (
            int(current["ledger_current_index"]) + self._last_ledger_offset
        )
        logger.debug(
            "prepared %s for %s at sequence %d",
            prepared.get("TransactionType"), address, account.sequence,
        )
        return prepared

    async def prepare_escrow_creation(self, address: str, tx: dict[str, Any]) -> dict[str, Any]:
        _expect_type(tx, TxType.ESCROW_CREATE)
        return await self._autofill(address, tx)

    async def prepare_escrow_execution(self, address: str, tx: dict[str, Any]) -> dict[str, Any]:
        _expect_type(tx, TxType.ESCROW_FINISH)
        return await self._autofill(address, tx)

    async def prepare_escrow_cancellation(self, address: str, tx: dict[str, Any]) -> dict[str, Any]:
        _expect_type(tx, TxType.ESCROW_CANCEL)
        return await self._autofill(address, tx)

    async def prepare_payment(self, address: str, tx: dict[str, Any]) -> dict[str, Any]:
        _expect_type(tx, TxType.PAYMENT)
        return await self._autofill(address, tx)

    # -----------------------------------------------------------------
    # Submit
    # -----------------------------------------------------------------

    async def submit(self, signed_tx_blob_hex: str) -> SubmitResult:
        """Submit a signed transaction blob.

        Server-level errors are captured in the result, not raised.
        Transport exceptions propagate to the caller.
        """
        payload = {
            "method": "submit",
            "params": [{"tx_blob": signed_tx_blob_hex}],
            "id": self._next_request_id(),
        }
        response = await self._transport.post_json(self._url, payload)
        return _parse_submit_response(response)

    # -----------------------------------------------------------------
    # Validated-transaction stream
    # -----------------------------------------------------------------

    async def subscribe(self, address: str, handler: EventHandler) -> None:
        """Start polling validated history for ``address``.

        Only ledgers validated after this call are delivered.
        """
        if self._poll_task is not None:
            raise RuntimeError("already subscribed")
        self._last_validated = await self._validated_ledger_index()
        logger.debug(
            "subscribed to %s from ledger %d", address, self._last_validated + 1
        )
        self._poll_task = asyncio.create_task(self._poll(address, handler))

    async def _poll(self, address: str, handler: EventHandler) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                await self.poll_once(address, handler)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("polling %s failed; retrying", self._url, exc_info=True)

    async def poll_once(self, address: str, handler: EventHandler) -> int:
        """Deliver transactions from ledgers validated since the last poll.

        Returns:
            Number of events delivered.
        """
        validated = await self._validated_ledger_index()
        start = (self._last_validated or validated - 1) + 1
        if validated < start:
            return 0

        delivered = 0
        marker: Any = None
        while True:
            params: dict[str, Any] = {
                "account": address,
                "ledger_index_min": start,
                "ledger_index_max": validated,
                "forward": True,
                "binary": False,
            }
            if marker is not None:
                params["marker"] = marker
            result = await self._call("account_tx", params)
            for entry in result.get("transactions", []):
                await _dispatch(handler, _entry_to_event(entry))
                delivered += 1
            marker = result.get("marker")
            if marker is None:
                break

        self._last_validated = validated
        return delivered


# =====================================================================
# Helpers (pure functions, no I/O)
# =====================================================================


def _expect_type(tx: dict[str, Any], expected: TxType) -> None:
    actual = TxType.of(tx)
    if actual is not expected:
        raise ValueError(f"expected {expected.value} transaction, got {actual.value}")


def _required_fee(tx: dict[str, Any], base_fee: int, open_fee: int) -> int:
    """Fee in drops. EscrowFinish with a fulfillment pays by fulfillment size."""
    fee = max(base_fee, open_fee)
    fulfillment = tx.get("Fulfillment")
    if TxType.of(tx) is TxType.ESCROW_FINISH and fulfillment:
        size = len(fulfillment) // 2
        fee = max(fee, base_fee * (_FULFILLMENT_FEE_UNITS + size // _FULFILLMENT_FEE_CHUNK))
    return fee


async def _dispatch(handler: EventHandler, event: LedgerEvent) -> None:
    try:
        await handler(event)
    except Exception:
        logger.exception("event handler failed for tx %s", event.tx_hash)


def _entry_to_event(entry: dict[str, Any]) -> LedgerEvent:
    """account_tx entry (API v1 "tx" or v2 "tx_json") → LedgerEvent."""
    tx = dict(entry.get("tx") or entry.get("tx_json") or {})
    if "hash" not in tx and entry.get("hash"):
        tx["hash"] = entry["hash"]
    return LedgerEvent.from_dict(
        {
            "validated": entry.get("validated", False),
            "transaction": tx,
            "meta": entry.get("meta", {}),
        }
    )


def _parse_account_info(address: str, result: dict[str, Any]) -> AccountInfo:
    data = result.get("account_data", {})
    return AccountInfo(
        address=address,
        balance=str(data.get("Balance", "0")),
        sequence=int(data.get("Sequence", 0)),
    )


def _parse_submit_response(response: dict[str, Any]) -> SubmitResult:
    """Parse a rippled submit JSON-RPC response into SubmitResult.

    Handles:
        - Successful submit (engine_result present)
        - Server-level errors (status == "error")
        - Missing/malformed fields (returns accepted=False with detail)
    """
    result = response.get("result", {})

    if result.get("status") == "error":
        return SubmitResult(
            accepted=False,
            detail=result.get("error_message") or result.get("error", "unknown server error"),
        )

    engine_result = result.get("engine_result")
    if engine_result is None:
        return SubmitResult(
            accepted=False,
            detail="no engine_result in submit response",
        )

    tx_hash = None
    tx_json = result.get("tx_json")
    if isinstance(tx_json, dict) and isinstance(tx_json.get("hash"), str):
        tx_hash = tx_json["hash"].upper()

    # Some server versions don't include "accepted";
    # fall back to the engine_result prefix.
    accepted = result.get("accepted", False)
    if not accepted:
        accepted = engine_result == "tesSUCCESS" or engine_result.startswith("ter")

    return SubmitResult(
        accepted=accepted,
        tx_hash=tx_hash,
        engine_result=engine_result,
        detail=result.get("engine_result_message"),
    )
