"""
JSON Schemas for caller-supplied transfers and messages.

Validation failures surface as InvalidFieldsError carrying the first
offending path, so callers see which field was wrong.
"""

from __future__ import annotations

from typing import Any

import jsonschema  # type: ignore[import-untyped]

from escrow_plugin.errors import InvalidFieldsError

_AMOUNT = {
    "oneOf": [
        {"type": "string", "pattern": r"^[0-9]+$"},
        {"type": "integer", "minimum": 0},
    ]
}

TRANSFER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["id", "to", "amount", "executionCondition", "expiresAt"],
    "properties": {
        "id": {"type": "string", "minLength": 1, "maxLength": 128},
        "to": {"type": "string", "minLength": 1},
        "from": {"type": "string"},
        "ledger": {"type": "string"},
        "amount": _AMOUNT,
        "ilp": {"type": "string"},
        "executionCondition": {"type": "string", "pattern": r"^[A-Za-z0-9_-]{43}$"},
        "expiresAt": {"type": "string", "minLength": 1},
        "noteToSelf": {},
    },
}

MESSAGE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["to"],
    "properties": {
        "id": {"type": "string", "minLength": 1, "maxLength": 128},
        "to": {"type": "string", "minLength": 1},
        "from": {"type": "string"},
        "ledger": {"type": "string"},
        "data": {},
        "timeout": {"type": "number", "exclusiveMinimum": 0},
    },
}


def validate(instance: Any, schema: dict[str, Any], what: str) -> None:
    """Validate ``instance`` against ``schema``.

    Raises:
        InvalidFieldsError: With the failing path and reason.
    """
    try:
        jsonschema.validate(instance=instance, schema=schema)
    except jsonschema.ValidationError as exc:
        path = ".".join(str(p) for p in exc.absolute_path) or "<root>"
        raise InvalidFieldsError(f"invalid {what} at {path}: {exc.message}") from exc


def validate_transfer(transfer: Any) -> None:
    validate(transfer, TRANSFER_SCHEMA, "transfer")


def validate_message(message: Any) -> None:
    validate(message, MESSAGE_SCHEMA, "message")
