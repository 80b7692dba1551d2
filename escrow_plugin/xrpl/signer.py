"""
XRPL signer protocol — the secrets boundary.

The plugin never sees private keys directly. It passes a prepared
transaction dict, and the signer returns a signed blob plus the
transaction hash the ledger will report once the blob validates.

Concrete implementations:
    - WalletSigner (xrpl-py Wallet, offline signing)
    - FakeSigner (tests)
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from xrpl import CryptoAlgorithm
from xrpl.core.binarycodec import encode, encode_for_signing
from xrpl.core.keypairs import sign
from xrpl.wallet import Wallet

# Hash prefix for signed transactions: "TXN\0".
_TXN_HASH_PREFIX = bytes.fromhex("54584E00")


@dataclass(frozen=True)
class SignResult:
    """Result of signing a transaction.

    Attributes:
        signed_tx_blob_hex: Hex-encoded signed transaction blob.
        tx_hash: Transaction hash (64 upper-case hex chars).
        key_id: Public identifier of the signing key. Never a secret.
    """

    signed_tx_blob_hex: str
    tx_hash: str
    key_id: str


@runtime_checkable
class XRPLSigner(Protocol):
    """Interface for XRPL transaction signing."""

    @property
    def account(self) -> str:
        """XRPL r-address associated with this signer."""
        ...

    @property
    def key_id(self) -> str:
        """Public identifier of the signing key (safe for logging)."""
        ...

    def sign(self, tx_dict: dict[str, Any]) -> SignResult:
        """Sign a prepared transaction dict."""
        ...


def transaction_hash(signed_tx_blob_hex: str) -> str:
    """XRPL txid = SHA512Half(0x54584E00 || signed blob)."""
    digest = hashlib.sha512(_TXN_HASH_PREFIX + bytes.fromhex(signed_tx_blob_hex)).digest()
    return digest[:32].hex().upper()


class WalletSigner:
    """Signs with a wallet derived from a family seed.

    Args:
        secret: XRPL family seed ("s...").

    Raises:
        ValueError: If the seed cannot be decoded.
    """

    def __init__(self, secret: str) -> None:
        # Ed25519 family seeds are encoded with an "sEd" prefix.
        algorithm = (
            CryptoAlgorithm.ED25519 if secret.startswith("sEd") else CryptoAlgorithm.SECP256K1
        )
        try:
            self._wallet = Wallet.from_seed(secret, algorithm=algorithm)
        except Exception as exc:
            raise ValueError("secret is not a valid XRPL seed") from exc

    @property
    def account(self) -> str:
        return self._wallet.classic_address

    @property
    def key_id(self) -> str:
        return self._wallet.public_key

    def sign(self, tx_dict: dict[str, Any]) -> SignResult:
        tx = dict(tx_dict)
        tx["SigningPubKey"] = self._wallet.public_key
        signing_bytes = bytes.fromhex(encode_for_signing(tx))
        tx["TxnSignature"] = sign(signing_bytes, self._wallet.private_key)
        blob = encode(tx)
        return SignResult(
            signed_tx_blob_hex=blob,
            tx_hash=transaction_hash(blob),
            key_id=self._wallet.public_key,
        )
