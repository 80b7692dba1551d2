"""
Tests for the submission correlator.

All tests use a fake client — no network calls.

Test plan:
- Validation: tesSUCCESS resolves, tec* rejects with NotAcceptedError
  carrying the engine result, hash matching is case-insensitive
- Preliminary rejection: tem*/tef*/tel* and server errors reject
  immediately; tec*/ter* preliminary results still wait
- Race: validation reported before submit() returns still resolves
- Bookkeeping: duplicate hash rejected, pending removed on every path,
  unknown and non-validated events ignored, fail_all rejects everything
- Transport: client exceptions propagate
"""

import asyncio

import pytest

from escrow_plugin.errors import (
    DuplicateSubmissionError,
    NotAcceptedError,
    NotConnectedError,
)
from escrow_plugin.submitter import SubmissionCorrelator
from escrow_plugin.xrpl.client import LedgerEvent, SubmitResult
from escrow_plugin.xrpl.signer import SignResult

SAMPLE_TX_HASH = "AB" * 32


def _signed(tx_hash: str = SAMPLE_TX_HASH) -> SignResult:
    return SignResult(signed_tx_blob_hex="DEADBEEF", tx_hash=tx_hash, key_id="ED00")


def _validated(tx_hash: str = SAMPLE_TX_HASH, result: str = "tesSUCCESS") -> LedgerEvent:
    return LedgerEvent(
        validated=True,
        engine_result=result,
        transaction={"hash": tx_hash, "TransactionType": "EscrowCancel"},
    )


class FakeClient:
    """Submit-only ledger client."""

    def __init__(
        self,
        *,
        submit_result: SubmitResult | None = None,
        should_raise: Exception | None = None,
    ) -> None:
        self._submit_result = submit_result or SubmitResult(
            accepted=True, tx_hash=SAMPLE_TX_HASH, engine_result="tesSUCCESS"
        )
        self._should_raise = should_raise
        self.on_submit: list[LedgerEvent] = []
        self.correlator: SubmissionCorrelator | None = None
        self.submit_calls: list[str] = []

    async def submit(self, signed_tx_blob_hex: str) -> SubmitResult:
        self.submit_calls.append(signed_tx_blob_hex)
        if self._should_raise is not None:
            raise self._should_raise
        # Validation delivered before the submit reply.
        for event in self.on_submit:
            assert self.correlator is not None
            self.correlator.handle_event(event)
        return self._submit_result


async def _settle_later(correlator: SubmissionCorrelator, event: LedgerEvent) -> None:
    await asyncio.sleep(0)
    assert correlator.handle_event(event) is True


class TestValidation:
    @pytest.mark.asyncio
    async def test_success_resolves(self) -> None:
        correlator = SubmissionCorrelator(FakeClient())
        settle = asyncio.create_task(_settle_later(correlator, _validated()))
        await correlator.submit(_signed())
        await settle
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_failure_rejects(self) -> None:
        correlator = SubmissionCorrelator(FakeClient())
        settle = asyncio.create_task(
            _settle_later(correlator, _validated(result="tecNO_PERMISSION"))
        )
        with pytest.raises(NotAcceptedError) as exc_info:
            await correlator.submit(_signed())
        await settle
        assert exc_info.value.engine_result == "tecNO_PERMISSION"
        assert exc_info.value.tx_hash == SAMPLE_TX_HASH
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_hash_case_insensitive(self) -> None:
        correlator = SubmissionCorrelator(FakeClient())
        settle = asyncio.create_task(
            _settle_later(correlator, _validated(SAMPLE_TX_HASH.lower()))
        )
        await correlator.submit(_signed(SAMPLE_TX_HASH.lower()))
        await settle


class TestPreliminaryRejection:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("result", ["temBAD_FEE", "tefPAST_SEQ", "telINSUF_FEE_P"])
    async def test_never_validates(self, result: str) -> None:
        client = FakeClient(submit_result=SubmitResult(accepted=False, engine_result=result))
        correlator = SubmissionCorrelator(client)
        with pytest.raises(NotAcceptedError) as exc_info:
            await correlator.submit(_signed())
        assert exc_info.value.engine_result == result
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        client = FakeClient(
            submit_result=SubmitResult(accepted=False, detail="invalidTransaction")
        )
        correlator = SubmissionCorrelator(client)
        with pytest.raises(NotAcceptedError, match="invalidTransaction"):
            await correlator.submit(_signed())

    @pytest.mark.asyncio
    async def test_claimed_result_still_waits(self) -> None:
        client = FakeClient(
            submit_result=SubmitResult(accepted=False, engine_result="tecUNFUNDED")
        )
        correlator = SubmissionCorrelator(client)
        task = asyncio.create_task(correlator.submit(_signed()))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert not task.done()
        assert correlator.is_pending(SAMPLE_TX_HASH)
        correlator.handle_event(_validated(result="tecUNFUNDED"))
        with pytest.raises(NotAcceptedError):
            await task


class TestRace:
    @pytest.mark.asyncio
    async def test_validation_before_submit_reply(self) -> None:
        client = FakeClient()
        correlator = SubmissionCorrelator(client)
        client.correlator = correlator
        client.on_submit.append(_validated())
        await correlator.submit(_signed())
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_rejection_beats_preliminary_error(self) -> None:
        client = FakeClient(
            submit_result=SubmitResult(accepted=False, engine_result="tefPAST_SEQ")
        )
        correlator = SubmissionCorrelator(client)
        client.correlator = correlator
        client.on_submit.append(_validated())
        await correlator.submit(_signed())


class TestBookkeeping:
    @pytest.mark.asyncio
    async def test_duplicate(self) -> None:
        correlator = SubmissionCorrelator(FakeClient())
        first = asyncio.create_task(correlator.submit(_signed()))
        await asyncio.sleep(0)
        with pytest.raises(DuplicateSubmissionError):
            await correlator.submit(_signed())
        correlator.handle_event(_validated())
        await first

    def test_unknown_hash_ignored(self) -> None:
        correlator = SubmissionCorrelator(FakeClient())
        assert correlator.handle_event(_validated("CD" * 32)) is False

    @pytest.mark.asyncio
    async def test_not_validated_ignored(self) -> None:
        correlator = SubmissionCorrelator(FakeClient())
        task = asyncio.create_task(correlator.submit(_signed()))
        await asyncio.sleep(0)
        event = LedgerEvent(
            validated=False, engine_result="tesSUCCESS", transaction={"hash": SAMPLE_TX_HASH}
        )
        assert correlator.handle_event(event) is False
        assert correlator.is_pending(SAMPLE_TX_HASH)
        correlator.handle_event(_validated())
        await task

    @pytest.mark.asyncio
    async def test_fail_all(self) -> None:
        correlator = SubmissionCorrelator(FakeClient())
        task = asyncio.create_task(correlator.submit(_signed()))
        await asyncio.sleep(0)
        correlator.fail_all(NotConnectedError("gone"))
        with pytest.raises(NotConnectedError):
            await task
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self) -> None:
        correlator = SubmissionCorrelator(FakeClient(should_raise=ConnectionError("refused")))
        with pytest.raises(ConnectionError):
            await correlator.submit(_signed())
        assert correlator.pending_count == 0
