"""
Tests for transfer/message schema validation.

Test plan:
- Transfer: minimal valid transfer, amount as string or integer,
  each required field, condition length/alphabet, error names the path
- Message: only "to" required, positive timeout
"""

import hashlib

import pytest

from escrow_plugin.condition import base64url
from escrow_plugin.errors import InvalidFieldsError
from escrow_plugin.schema import validate_message, validate_transfer

CONDITION = base64url(hashlib.sha256(b"secret").digest())


def _transfer(**overrides: object) -> dict[str, object]:
    transfer: dict[str, object] = {
        "id": "t1",
        "to": "g.crypto.ripple.rPEPPER7kfTD9w2To4CQk6UCfuHM9c6GDY",
        "amount": "1000000",
        "executionCondition": CONDITION,
        "expiresAt": "2030-01-01T00:00:00.000Z",
    }
    transfer.update(overrides)
    return transfer


class TestTransfer:
    def test_minimal(self) -> None:
        validate_transfer(_transfer())

    def test_optional_fields(self) -> None:
        validate_transfer(_transfer(ilp="AQID", noteToSelf={"any": ["thing"]}))

    def test_integer_amount(self) -> None:
        validate_transfer(_transfer(amount=1000000))

    @pytest.mark.parametrize("amount", ["1.5", "-1", -1, "abc", 1.5])
    def test_bad_amount(self, amount: object) -> None:
        with pytest.raises(InvalidFieldsError, match="amount"):
            validate_transfer(_transfer(amount=amount))

    @pytest.mark.parametrize("field", ["id", "to", "amount", "executionCondition", "expiresAt"])
    def test_required(self, field: str) -> None:
        transfer = _transfer()
        del transfer[field]
        with pytest.raises(InvalidFieldsError, match=field):
            validate_transfer(transfer)

    def test_condition_wrong_length(self) -> None:
        with pytest.raises(InvalidFieldsError, match="executionCondition"):
            validate_transfer(_transfer(executionCondition=CONDITION[:-1]))

    def test_condition_padded_rejected(self) -> None:
        with pytest.raises(InvalidFieldsError, match="executionCondition"):
            validate_transfer(_transfer(executionCondition=CONDITION + "="))

    def test_not_an_object(self) -> None:
        with pytest.raises(InvalidFieldsError, match="<root>"):
            validate_transfer(["t1"])


class TestMessage:
    def test_minimal(self) -> None:
        validate_message({"to": "g.crypto.ripple.rPEPPER7kfTD9w2To4CQk6UCfuHM9c6GDY"})

    def test_to_required(self) -> None:
        with pytest.raises(InvalidFieldsError, match="to"):
            validate_message({"data": {}})

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(InvalidFieldsError, match="timeout"):
            validate_message({"to": "x", "timeout": 0})
