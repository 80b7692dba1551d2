"""
Memo convention for carrying protocol fields over XRPL memos.

Every memo is a (type URI, data) pair. Both halves are UTF-8 text,
hex-encoded (upper-case) at the ledger layer:

    {"Memo": {"MemoType": hex(type_uri), "MemoData": hex(data)}}

Memo types:
    - ID_REL          transfer id (EscrowCreate, EscrowFinish)
    - ILP_REL         forwarded opaque payload (EscrowCreate)
    - MESSAGE_REL     JSON message body (Payment)
    - MESSAGE_ID_REL  message correlation id (Payment)
    - MESSAGE_KIND_REL "request" | "response"; absent for plain messages
    - FULFILLMENT_REL base64url fulfillment reveal (EscrowFinish)

Message bodies are serialized as compact JSON with sorted keys so the
same body always produces the same memo bytes.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

ID_REL = "https://interledger.org/rel/xrpId"
ILP_REL = "https://interledger.org/rel/xrpIlp"
MESSAGE_REL = "https://interledger.org/rel/xrpMessage"
MESSAGE_ID_REL = "https://interledger.org/rel/xrpMessageId"
MESSAGE_KIND_REL = "https://interledger.org/rel/xrpMessageKind"
FULFILLMENT_REL = "https://interledger.org/rel/xrpFulfillment"

# Conservative ceiling for a single memo's decoded data. XRPL caps the
# serialized Memos field at 1KB.
MAX_MEMO_BYTES = 700


def encode_text_hex(text: str) -> str:
    """UTF-8 text → upper-case hex."""
    return text.encode("utf-8").hex().upper()


def decode_hex(value: str) -> bytes:
    """Hex (either case) → raw bytes."""
    return bytes.fromhex(value)


def serialize_body(body: Any) -> str:
    """Serialize a message body to compact, key-sorted JSON text."""
    return json.dumps(
        body,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def build_memo(memo_type: str, data: str) -> dict[str, dict[str, str]]:
    """Build one XRPL memo entry.

    Raises:
        ValueError: If the decoded data exceeds MAX_MEMO_BYTES.
    """
    raw = data.encode("utf-8")
    if len(raw) > MAX_MEMO_BYTES:
        raise ValueError(
            f"memo {memo_type!r} exceeds {MAX_MEMO_BYTES} bytes (got {len(raw)} bytes)"
        )
    return {
        "Memo": {
            "MemoType": encode_text_hex(memo_type),
            "MemoData": raw.hex().upper(),
        }
    }


def build_memos(fields: Mapping[str, str | None]) -> list[dict[str, dict[str, str]]]:
    """Build memo entries from a type → data mapping, skipping None values.

    Entries are emitted in mapping order.
    """
    return [build_memo(t, d) for t, d in fields.items() if d is not None]


def parse_memos(raw_memos: Iterable[Mapping[str, Any]] | None) -> dict[str, bytes]:
    """Decode ledger memos into a type URI → raw data mapping.

    Entries without a MemoType are skipped. A missing MemoData decodes
    to empty bytes. Later entries win on duplicate types.
    """
    memos: dict[str, bytes] = {}
    for entry in raw_memos or ():
        memo = entry.get("Memo", {})
        memo_type = memo.get("MemoType")
        if not memo_type:
            continue
        type_uri = decode_hex(memo_type).decode("utf-8")
        memos[type_uri] = decode_hex(memo.get("MemoData", ""))
    return memos


def memo_text(memos: Mapping[str, bytes], memo_type: str) -> str | None:
    """UTF-8 text of a memo, or None if absent."""
    data = memos.get(memo_type)
    if data is None:
        return None
    return data.decode("utf-8")
