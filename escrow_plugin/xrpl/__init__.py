"""
XRPL layer of the escrow plugin.

Public API:

    Pure layer (no I/O):
        - Transaction recipes: ``plan_escrow_create``, ``plan_escrow_finish``,
          ``plan_escrow_cancel``, ``plan_payment``.
        - Memo utilities: build, parse, serialize.
        - Ledger time conversions.

    Protocols (for dependency injection):
        - ``LedgerClient`` — network boundary (prepare, submit, subscribe).
        - ``XRPLSigner`` — secrets boundary (sign prepared tx dict).

    Result types:
        - ``SubmitResult``, ``AccountInfo``, ``LedgerEvent`` — client result types.
        - ``SignResult`` — signer result type.

    Engine results:
        - ``classify_engine_result()`` — XRPL engine result → EngineResultClass.

    Concrete implementations:
        - ``JsonRpcClient`` — JSON-RPC implementation of LedgerClient.
        - ``WalletSigner`` — xrpl-py wallet implementation of XRPLSigner.

    Transport:
        - ``JsonRpcTransport`` — injectable transport protocol for JSON-RPC.
        - ``HttpxTransport`` — default httpx-based transport.
"""

from escrow_plugin.xrpl.client import (
    AccountInfo,
    EventHandler,
    LedgerClient,
    LedgerEvent,
    SubmitResult,
)
from escrow_plugin.xrpl.errors import (
    SUCCESS_RESULT,
    EngineResultClass,
    classify_engine_result,
    is_retryable_cancel_result,
    never_validates,
)
from escrow_plugin.xrpl.jsonrpc_client import JsonRpcClient, JsonRpcError
from escrow_plugin.xrpl.memo import (
    MAX_MEMO_BYTES,
    build_memo,
    build_memos,
    memo_text,
    parse_memos,
    serialize_body,
)
from escrow_plugin.xrpl.signer import SignResult, WalletSigner, XRPLSigner, transaction_hash
from escrow_plugin.xrpl.transport import HttpxTransport, JsonRpcTransport
from escrow_plugin.xrpl.tx import (
    TxType,
    from_ripple_time,
    plan_escrow_cancel,
    plan_escrow_create,
    plan_escrow_finish,
    plan_payment,
    to_ripple_time,
)

__all__ = [
    "MAX_MEMO_BYTES",
    "SUCCESS_RESULT",
    "AccountInfo",
    "EngineResultClass",
    "EventHandler",
    "HttpxTransport",
    "JsonRpcClient",
    "JsonRpcError",
    "JsonRpcTransport",
    "LedgerClient",
    "LedgerEvent",
    "SignResult",
    "SubmitResult",
    "TxType",
    "WalletSigner",
    "XRPLSigner",
    "build_memo",
    "build_memos",
    "classify_engine_result",
    "from_ripple_time",
    "is_retryable_cancel_result",
    "memo_text",
    "never_validates",
    "parse_memos",
    "plan_escrow_cancel",
    "plan_escrow_create",
    "plan_escrow_finish",
    "plan_payment",
    "serialize_body",
    "to_ripple_time",
    "transaction_hash",
]
