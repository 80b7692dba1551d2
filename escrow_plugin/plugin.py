"""
XRP Ledger escrow plugin — conditional transfers over on-ledger escrows.

Caller intent flows down:
    send_transfer    → SubmissionQueue → EscrowCreate
    fulfill_condition → EscrowFinish
    (expiry timer)   → EscrowCancel
    send_message / send_request → memo Payment (or MessageChannel)

Ledger truth flows up: every validated transaction reported by the
ledger client goes through ``_handle_event``, which
    1. translates it and updates the transfer store (synchronously,
       before the next event is looked at),
    2. schedules the caller-visible events, and
    3. settles the matching pending submission, if any.

Caller-visible events are emitted from background tasks so a listener
that itself submits (and therefore waits on the event stream) cannot
stall the stream.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Coroutine, Mapping
from typing import Any

from escrow_plugin import condition as cc
from escrow_plugin.config import PluginConfig
from escrow_plugin.errors import (
    AlreadyFulfilledError,
    AlreadyRolledBackError,
    InvalidFieldsError,
    NotConnectedError,
    TransferNotFoundError,
    TranslationError,
)
from escrow_plugin.events import EventEmitter, Listener, PluginEvent
from escrow_plugin.queue import SubmissionQueue
from escrow_plugin.rpc import REQUEST, RESPONSE, MessageChannel, RequestCorrelator
from escrow_plugin.scheduler import ExpiryScheduler
from escrow_plugin.schema import validate_message, validate_transfer
from escrow_plugin.store import TransferEntry, TransferStore
from escrow_plugin.submitter import SubmissionCorrelator
from escrow_plugin.translate import OUTGOING, EventTranslator, revealed_fulfillment
from escrow_plugin.xrpl.client import LedgerClient, LedgerEvent
from escrow_plugin.xrpl.errors import SUCCESS_RESULT
from escrow_plugin.xrpl.jsonrpc_client import JsonRpcClient
from escrow_plugin.xrpl.memo import (
    FULFILLMENT_REL,
    ID_REL,
    ILP_REL,
    MESSAGE_ID_REL,
    MESSAGE_KIND_REL,
    MESSAGE_REL,
    build_memos,
    serialize_body,
)
from escrow_plugin.xrpl.signer import WalletSigner, XRPLSigner
from escrow_plugin.xrpl.tx import (
    TxType,
    plan_escrow_cancel,
    plan_escrow_create,
    plan_escrow_finish,
    plan_payment,
    to_ripple_time,
)

logger = logging.getLogger(__name__)

CURRENCY_CODE = "XRP"
CURRENCY_SCALE = 6

PrepareFn = Callable[[str, dict[str, Any]], Awaitable[dict[str, Any]]]


class EscrowPlugin:
    """Conditional-transfer plugin backed by XRP Ledger escrows.

    Args:
        options: PluginConfig or an options mapping (see config.py).
        client: Ledger client. Defaults to JsonRpcClient(options.server).
        signer: Transaction signer. Defaults to WalletSigner(options.secret).
        channel: Optional point-to-point channel used for messages
            instead of memo payments.
        clock: Wall-clock seconds for expiry timers. Inject for tests.

    Raises:
        InvalidFieldsError: Malformed options, or an address that does
            not belong to the secret.
    """

    def __init__(
        self,
        options: PluginConfig | Mapping[str, Any],
        *,
        client: LedgerClient | None = None,
        signer: XRPLSigner | None = None,
        channel: MessageChannel | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        config = options if isinstance(options, PluginConfig) else PluginConfig.from_dict(options)
        if signer is None:
            try:
                signer = WalletSigner(config.secret)
            except ValueError as exc:
                raise InvalidFieldsError(str(exc)) from exc
        if config.address is not None and config.address != signer.account:
            raise InvalidFieldsError(
                f"address {config.address} does not correspond to the secret "
                f"(derived {signer.account})"
            )

        self._config = config
        self._address = signer.account
        self._prefix = config.prefix
        self._signer = signer
        self._client: LedgerClient = client or JsonRpcClient(
            config.server,
            poll_interval=config.poll_interval,
            last_ledger_offset=config.last_ledger_offset,
        )
        self._channel = channel
        self._connected = False

        self._emitter = EventEmitter()
        self._store = TransferStore(retention=config.retention)
        self._translator = EventTranslator(self._address, self._prefix, self._store)
        self._submitter = SubmissionCorrelator(self._client)
        self._queue = SubmissionQueue()
        self._scheduler = ExpiryScheduler(
            self._store,
            self._cancel_escrow,
            grace=config.expiry_grace,
            retry=config.cancel_retry,
            clock=clock,
            account=self._address,
        )
        self._requests = RequestCorrelator(
            self._deliver_message,
            account=self.get_account(),
            emitter=self._emitter,
            default_timeout=config.request_timeout,
        )
        self._tasks: set[asyncio.Task[Any]] = set()
        self._reserved: set[str] = set()

        if channel is not None:
            channel.receive(self._handle_message)

    # -----------------------------------------------------------------
    # Local getters
    # -----------------------------------------------------------------

    @property
    def address(self) -> str:
        """This plugin's ledger r-address."""
        return self._address

    @property
    def store(self) -> TransferStore:
        return self._store

    def is_connected(self) -> bool:
        return self._connected

    def get_account(self) -> str:
        return self._prefix + self._address

    def get_info(self) -> dict[str, Any]:
        return {
            "prefix": self._prefix,
            "currency_scale": CURRENCY_SCALE,
            "currency_code": CURRENCY_CODE,
        }

    def on(self, event: str, listener: Listener) -> None:
        self._emitter.on(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        self._emitter.off(event, listener)

    # -----------------------------------------------------------------
    # Connection
    # -----------------------------------------------------------------

    async def connect(self) -> None:
        if self._connected:
            return
        logger.debug("connecting to %s", self._config.server)
        await self._client.connect()
        await self._client.subscribe(self._address, self._handle_event)
        self._connected = True
        logger.info("connected as %s", self._address)
        await self._emitter.emit(PluginEvent.CONNECT)

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        await self._scheduler.close()
        self._submitter.fail_all(NotConnectedError("plugin disconnected"))
        await self._client.disconnect()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("disconnected")
        await self._emitter.emit(PluginEvent.DISCONNECT)

    def _require_connected(self, operation: str) -> None:
        if not self._connected:
            raise NotConnectedError(f"plugin must be connected before {operation}")

    async def wait_idle(self) -> None:
        """Wait until every scheduled emission and request handler finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------

    async def get_balance(self) -> str:
        """Balance in drops, as a decimal string."""
        self._require_connected("get_balance")
        info = await self._client.get_account_info(self._address)
        return info.balance

    async def get_fulfillment(self, transfer_id: str, sender: str | None = None) -> str:
        """The fulfillment revealed for a transfer.

        ``sender`` (a prefixed account) picks between transfers of
        different senders that share an id.

        Raises:
            TransferNotFoundError: Never seen.
            AlreadyRolledBackError: Cancelled.
            MissingFulfillmentError: Not fulfilled yet.
            InvalidFieldsError: The id is shared and no sender was given.
        """
        owner = self._ledger_destination(sender) if sender is not None else None
        return self._store.fulfillment_of(transfer_id, owner)

    # -----------------------------------------------------------------
    # Transfers
    # -----------------------------------------------------------------

    async def send_transfer(self, transfer: Mapping[str, Any]) -> None:
        """Create an escrow for a transfer and wait until it validates.

        Creations are serialized through the submission queue.

        Raises:
            InvalidFieldsError: Malformed transfer or duplicate id.
            NotAcceptedError: The ledger rejected the EscrowCreate.
        """
        self._require_connected("send_transfer")
        validate_transfer(dict(transfer))
        transfer_id = transfer["id"]
        if (
            transfer_id in self._reserved
            or self._store.get(transfer_id, self._address) is not None
        ):
            raise InvalidFieldsError(f"transfer {transfer_id!r} already exists")

        destination = self._ledger_destination(transfer["to"])
        try:
            tx = plan_escrow_create(
                self._address,
                destination=destination,
                amount_drops=str(transfer["amount"]),
                condition=cc.encode_condition(transfer["executionCondition"]),
                cancel_after=to_ripple_time(transfer["expiresAt"]),
                memos=build_memos({ID_REL: transfer_id, ILP_REL: transfer.get("ilp", "")}),
            )
        except ValueError as exc:
            raise InvalidFieldsError(f"invalid transfer {transfer_id!r}: {exc}") from exc

        self._store.set_note(transfer_id, transfer.get("noteToSelf"))
        logger.debug("sending %s drops to %s as %s", tx["Amount"], destination, transfer_id)
        self._reserved.add(transfer_id)
        try:
            await self._queue.run(
                lambda: self._prepare_sign_submit(self._client.prepare_escrow_creation, tx)
            )
        finally:
            self._reserved.discard(transfer_id)

    async def fulfill_condition(
        self, transfer_id: str, fulfillment: str, sender: str | None = None
    ) -> None:
        """Finish the escrow of a transfer and wait until it validates.

        When several senders used ``transfer_id`` and no ``sender`` is
        given, the live escrow whose condition the fulfillment matches
        is finished.

        Raises:
            TransferNotFoundError: No escrow known for the id.
            AlreadyRolledBackError / AlreadyFulfilledError: Already terminal.
            InvalidFieldsError: The fulfillment does not match the condition.
            NotAcceptedError: The ledger rejected the EscrowFinish.
        """
        self._require_connected("fulfill_condition")
        if sender is not None:
            bound = self._store.get(transfer_id, self._ledger_destination(sender))
            candidates = [bound] if bound is not None else []
        else:
            candidates = self._store.find(transfer_id)
        entry = self._finishable(transfer_id, candidates, fulfillment)
        condition = entry.condition or cc.condition_for(fulfillment)
        try:
            tx = plan_escrow_finish(
                self._address,
                owner=entry.owner,
                offer_sequence=entry.sequence,
                condition=cc.encode_condition(condition),
                fulfillment=cc.encode_fulfillment(fulfillment),
                memos=build_memos({ID_REL: transfer_id, FULFILLMENT_REL: fulfillment}),
            )
        except ValueError as exc:
            raise InvalidFieldsError(str(exc)) from exc

        logger.debug("fulfilling %s (escrow %s:%d)", transfer_id, entry.owner, entry.sequence)
        await self._prepare_sign_submit(self._client.prepare_escrow_execution, tx)

    @staticmethod
    def _finishable(
        transfer_id: str, candidates: list[TransferEntry], fulfillment: str
    ) -> TransferEntry:
        if not candidates:
            raise TransferNotFoundError(f"transfer {transfer_id!r} not found")
        live = [entry for entry in candidates if not entry.done]
        if not live:
            if candidates[0].cancelled:
                raise AlreadyRolledBackError(f"transfer {transfer_id!r} was cancelled")
            raise AlreadyFulfilledError(f"transfer {transfer_id!r} is already fulfilled")
        for entry in live:
            if entry.condition is None or cc.fulfillment_matches(entry.condition, fulfillment):
                return entry
        raise InvalidFieldsError(
            f"fulfillment does not match the condition of transfer {transfer_id!r}"
        )

    async def _cancel_escrow(self, entry: TransferEntry) -> None:
        tx = plan_escrow_cancel(
            self._address, owner=entry.owner, offer_sequence=entry.sequence
        )
        logger.info("cancelling expired transfer %s", entry.transfer_id)
        await self._prepare_sign_submit(self._client.prepare_escrow_cancellation, tx)

    async def _prepare_sign_submit(self, prepare: PrepareFn, tx: dict[str, Any]) -> str:
        prepared = await prepare(self._address, tx)
        signed = self._signer.sign(prepared)
        logger.debug("%s %s signed", prepared.get("TransactionType"), signed.tx_hash)
        await self._submitter.submit(signed)
        return signed.tx_hash

    def _ledger_destination(self, address: str) -> str:
        """``<prefix>rDest[.more]`` → ``rDest``."""
        if not address.startswith(self._prefix):
            raise InvalidFieldsError(
                f"destination {address!r} does not start with prefix {self._prefix!r}"
            )
        local = address[len(self._prefix):].split(".")[0]
        if not local:
            raise InvalidFieldsError(f"destination {address!r} has no ledger account")
        return local

    # -----------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------

    async def send_message(self, message: Mapping[str, Any]) -> None:
        """Send a one-way message."""
        self._require_connected("send_message")
        validate_message(dict(message))
        outgoing = self._outgoing(message)
        await self._deliver_message(outgoing)
        await self._emitter.emit(PluginEvent.OUTGOING_MESSAGE, outgoing)

    async def send_request(
        self, message: Mapping[str, Any], timeout: float | None = None
    ) -> dict[str, Any]:
        """Send a request and wait for the response (timeout in seconds).

        Raises:
            RequestTimeoutError: No response in time.
        """
        self._require_connected("send_request")
        validate_message(dict(message))
        return await self._requests.send_request(self._outgoing(message), timeout)

    def register_request_handler(self, handler: Callable[[dict[str, Any]], Any]) -> None:
        self._requests.register_request_handler(handler)

    def deregister_request_handler(self) -> None:
        self._requests.deregister_request_handler()

    def _outgoing(self, message: Mapping[str, Any]) -> dict[str, Any]:
        outgoing = dict(message)
        outgoing.setdefault("id", str(uuid.uuid4()))
        outgoing["from"] = self.get_account()
        outgoing["ledger"] = self._prefix
        return outgoing

    async def _deliver_message(self, message: dict[str, Any]) -> None:
        if self._channel is not None:
            await self._channel.deliver(message)
            return
        try:
            tx = plan_payment(
                self._address,
                destination=self._ledger_destination(message["to"]),
                amount_drops=self._config.message_drops,
                memos=build_memos(
                    {
                        MESSAGE_REL: serialize_body(message.get("data", {})),
                        MESSAGE_ID_REL: message["id"],
                        MESSAGE_KIND_REL: message.get("kind"),
                    }
                ),
            )
        except (TypeError, ValueError) as exc:
            raise InvalidFieldsError(f"invalid message: {exc}") from exc
        await self._prepare_sign_submit(self._client.prepare_payment, tx)

    # -----------------------------------------------------------------
    # Ledger event handling
    # -----------------------------------------------------------------

    async def _handle_event(self, event: LedgerEvent) -> None:
        try:
            if event.validated and event.engine_result == SUCCESS_RESULT:
                self._handle_transaction(event)
        except TranslationError as exc:
            logger.warning("dropping tx %s: %s", event.tx_hash, exc)
        except Exception:
            logger.exception("failed to handle tx %s", event.tx_hash)
        finally:
            self._submitter.handle_event(event)

    def _handle_transaction(self, event: LedgerEvent) -> None:
        """Apply one validated, successful transaction. Never awaits."""
        tx_type = event.tx_type
        if tx_type is TxType.ESCROW_CREATE:
            record, _ = self._translator.escrow_to_transfer(event)
            logger.info("%s prepare %s", record["direction"], record["id"])
            self._emit(PluginEvent.directed(record["direction"], "prepare"), record)
            if record["direction"] == OUTGOING and record["expiresAt"]:
                self._scheduler.arm(record["id"], record["expiresAt"])

        elif tx_type is TxType.ESCROW_FINISH:
            record, entry = self._translator.escrow_to_transfer(event)
            fulfillment = revealed_fulfillment(event)
            if fulfillment is None:
                raise TranslationError(f"EscrowFinish {event.tx_hash} reveals no fulfillment")
            if entry.condition is not None and not cc.fulfillment_matches(
                entry.condition, fulfillment
            ):
                logger.error(
                    "EscrowFinish %s reveals a fulfillment that does not match %s",
                    event.tx_hash, record["id"],
                )
                return
            if self._store.mark_fulfilled(entry, fulfillment, time.monotonic()):
                logger.info("%s fulfill %s", record["direction"], record["id"])
                self._emit(PluginEvent.directed(record["direction"], "fulfill"), record, fulfillment)

        elif tx_type is TxType.ESCROW_CANCEL:
            record, entry = self._translator.escrow_to_transfer(event)
            if self._store.mark_cancelled(entry, time.monotonic()):
                logger.info("%s cancel %s", record["direction"], record["id"])
                self._emit(PluginEvent.directed(record["direction"], "cancel"), record)

        elif tx_type is TxType.PAYMENT:
            if not event.transaction.get("Memos"):
                return
            message = self._translator.payment_to_message(event)
            self._spawn(self._handle_message(dict(message)))

    async def _handle_message(self, message: dict[str, Any]) -> None:
        if message.get("direction") == OUTGOING:
            return
        kind = message.get("kind")
        if kind == RESPONSE:
            await self._requests.handle_response(message)
        elif kind == REQUEST:
            await self._requests.handle_request(message)
        else:
            await self._emitter.emit(PluginEvent.INCOMING_MESSAGE, message)

    # -----------------------------------------------------------------
    # Background tasks
    # -----------------------------------------------------------------

    def _emit(self, event: PluginEvent, *args: Any) -> None:
        self._spawn(self._emitter.emit(event, *args))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("background task failed", exc_info=task.exception())
