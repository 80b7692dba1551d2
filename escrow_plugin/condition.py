"""
Condition codec — protocol ⇄ ledger crypto-condition encoding.

Protocol side:
    - condition:   base64url (unpadded) of a raw 32-byte SHA-256 digest.
    - fulfillment: base64url (unpadded) of the preimage.

Ledger side (crypto-condition binary, upper-case hex):
    - condition:   A0 25 80 20 <32-byte hash> 81 01 20
                   (preimage-sha-256 type, fingerprint, cost = 32)
    - fulfillment: A0 <len> 80 <len> <preimage>

Only the preimage-sha-256 type (type id 0) is supported. Any other
type tag raises ValueError on decode.
"""

from __future__ import annotations

import base64
import hashlib

# Context-specific constructed tag [0] — preimage-sha-256.
PREIMAGE_SHA256_TAG = 0xA0

# Primitive tags inside the envelope.
_FINGERPRINT_TAG = 0x80
_COST_TAG = 0x81
_PREIMAGE_TAG = 0x80

DIGEST_LENGTH = 32

# The declared cost of a preimage condition is the digest length.
CONDITION_COST = DIGEST_LENGTH


# =========================================================================
# base64url
# =========================================================================


def base64url(raw: bytes) -> str:
    """Unpadded URL-safe base64."""
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def from_base64url(value: str) -> bytes:
    """Decode URL-safe (or standard) base64, padded or not."""
    normalized = value.replace("+", "-").replace("/", "_").rstrip("=")
    padding = "=" * (-len(normalized) % 4)
    try:
        return base64.urlsafe_b64decode(normalized + padding)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"invalid base64url value: {value!r}") from exc


# =========================================================================
# DER helpers
# =========================================================================


def _encode_length(length: int) -> bytes:
    if length < 0x80:
        return bytes([length])
    body = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(body)]) + body


def _encode_tlv(tag: int, value: bytes) -> bytes:
    return bytes([tag]) + _encode_length(len(value)) + value


def _decode_tlv(data: bytes, offset: int = 0) -> tuple[int, bytes, int]:
    """Read one tag-length-value at offset. Returns (tag, value, next_offset)."""
    if offset + 2 > len(data):
        raise ValueError("truncated crypto-condition")
    tag = data[offset]
    first = data[offset + 1]
    pos = offset + 2
    if first < 0x80:
        length = first
    else:
        count = first & 0x7F
        if count == 0 or pos + count > len(data):
            raise ValueError("invalid length in crypto-condition")
        length = int.from_bytes(data[pos:pos + count], "big")
        pos += count
    end = pos + length
    if end > len(data):
        raise ValueError("truncated crypto-condition")
    return tag, data[pos:end], end


def _from_hex(value: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError as exc:
        raise ValueError(f"invalid hex value: {value!r}") from exc


# =========================================================================
# Conditions
# =========================================================================


def encode_condition(condition: str) -> str:
    """Protocol condition (base64url digest) → ledger condition hex."""
    digest = from_base64url(condition)
    if len(digest) != DIGEST_LENGTH:
        raise ValueError(
            f"condition must decode to {DIGEST_LENGTH} bytes, got {len(digest)}"
        )
    body = _encode_tlv(_FINGERPRINT_TAG, digest) + _encode_tlv(
        _COST_TAG, CONDITION_COST.to_bytes(1, "big")
    )
    return _encode_tlv(PREIMAGE_SHA256_TAG, body).hex().upper()


def decode_condition(ledger_condition: str) -> str:
    """Ledger condition hex → protocol condition (base64url digest)."""
    data = _from_hex(ledger_condition)
    tag, body, end = _decode_tlv(data)
    if tag != PREIMAGE_SHA256_TAG:
        raise ValueError(f"unsupported condition type tag: 0x{tag:02X}")
    if end != len(data):
        raise ValueError("trailing bytes after condition")

    fp_tag, fingerprint, pos = _decode_tlv(body)
    if fp_tag != _FINGERPRINT_TAG or len(fingerprint) != DIGEST_LENGTH:
        raise ValueError("malformed preimage-sha-256 fingerprint")
    cost_tag, _cost, _ = _decode_tlv(body, pos)
    if cost_tag != _COST_TAG:
        raise ValueError("malformed preimage-sha-256 cost")
    return base64url(fingerprint)


# =========================================================================
# Fulfillments
# =========================================================================


def encode_fulfillment(fulfillment: str) -> str:
    """Protocol fulfillment (base64url preimage) → ledger fulfillment hex."""
    preimage = from_base64url(fulfillment)
    body = _encode_tlv(_PREIMAGE_TAG, preimage)
    return _encode_tlv(PREIMAGE_SHA256_TAG, body).hex().upper()


def decode_fulfillment(ledger_fulfillment: str) -> str:
    """Ledger fulfillment hex → protocol fulfillment (base64url preimage)."""
    data = _from_hex(ledger_fulfillment)
    tag, body, end = _decode_tlv(data)
    if tag != PREIMAGE_SHA256_TAG:
        raise ValueError(f"unsupported fulfillment type tag: 0x{tag:02X}")
    if end != len(data):
        raise ValueError("trailing bytes after fulfillment")
    inner_tag, preimage, _ = _decode_tlv(body)
    if inner_tag != _PREIMAGE_TAG:
        raise ValueError("malformed preimage-sha-256 fulfillment")
    return base64url(preimage)


# =========================================================================
# Verification
# =========================================================================


def condition_for(fulfillment: str) -> str:
    """The protocol condition committed to by a protocol fulfillment."""
    return base64url(hashlib.sha256(from_base64url(fulfillment)).digest())


def fulfillment_matches(condition: str, fulfillment: str) -> bool:
    """True iff sha256(preimage) equals the committed digest."""
    try:
        return from_base64url(condition) == hashlib.sha256(
            from_base64url(fulfillment)
        ).digest()
    except ValueError:
        return False
