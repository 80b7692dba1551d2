"""
Tests for WalletSigner — offline signing with an xrpl-py wallet.

Test plan:
- Seed handling: secp256k1 family seed derives the expected account,
  Ed25519 seeds accepted, garbage rejected with ValueError
- Signing: blob decodes to the prepared tx plus SigningPubKey and a
  valid TxnSignature, input dict untouched
- Hash: SHA512Half over the "TXN\\0" prefix and the blob, upper-case
"""

import hashlib

import pytest
from xrpl import CryptoAlgorithm
from xrpl.core.binarycodec import decode, encode_for_signing
from xrpl.core.keypairs import is_valid_message
from xrpl.wallet import Wallet

from escrow_plugin.xrpl.signer import SignResult, WalletSigner, XRPLSigner, transaction_hash

GENESIS_SEED = "snoPBrXtMeMyMHUVTgbuqAfg1SUTb"
GENESIS_ACCOUNT = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"


def _payment(account: str, destination: str) -> dict[str, object]:
    return {
        "TransactionType": "Payment",
        "Account": account,
        "Destination": destination,
        "Amount": "1",
        "Fee": "12",
        "Sequence": 5,
        "LastLedgerSequence": 100,
    }


class TestSeed:
    def test_secp256k1_seed(self) -> None:
        signer = WalletSigner(GENESIS_SEED)
        assert signer.account == GENESIS_ACCOUNT

    def test_ed25519_seed(self) -> None:
        wallet = Wallet.create(algorithm=CryptoAlgorithm.ED25519)
        signer = WalletSigner(wallet.seed)
        assert signer.account == wallet.classic_address
        assert signer.key_id.startswith("ED")

    def test_garbage_rejected(self) -> None:
        with pytest.raises(ValueError, match="seed"):
            WalletSigner("not-a-seed")

    def test_is_xrpl_signer(self) -> None:
        assert isinstance(WalletSigner(GENESIS_SEED), XRPLSigner)


class TestSign:
    def test_signed_blob(self) -> None:
        signer = WalletSigner(GENESIS_SEED)
        destination = Wallet.create().classic_address
        tx = _payment(GENESIS_ACCOUNT, destination)

        result = signer.sign(tx)

        assert isinstance(result, SignResult)
        decoded = decode(result.signed_tx_blob_hex)
        assert decoded["Account"] == GENESIS_ACCOUNT
        assert decoded["Destination"] == destination
        assert decoded["SigningPubKey"] == signer.key_id
        assert result.key_id == signer.key_id

        unsigned = {k: v for k, v in decoded.items() if k != "TxnSignature"}
        assert is_valid_message(
            bytes.fromhex(encode_for_signing(unsigned)),
            bytes.fromhex(decoded["TxnSignature"]),
            signer.key_id,
        )

    def test_input_untouched(self) -> None:
        signer = WalletSigner(GENESIS_SEED)
        tx = _payment(GENESIS_ACCOUNT, Wallet.create().classic_address)
        signer.sign(tx)
        assert "SigningPubKey" not in tx
        assert "TxnSignature" not in tx

    def test_hash_matches_blob(self) -> None:
        signer = WalletSigner(GENESIS_SEED)
        result = signer.sign(_payment(GENESIS_ACCOUNT, Wallet.create().classic_address))
        assert result.tx_hash == transaction_hash(result.signed_tx_blob_hex)


class TestTransactionHash:
    def test_prefix_and_half(self) -> None:
        blob = "DEADBEEF"
        expected = hashlib.sha512(bytes.fromhex("54584E00DEADBEEF")).digest()[:32].hex().upper()
        assert transaction_hash(blob) == expected
        assert len(transaction_hash(blob)) == 64
