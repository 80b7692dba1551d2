"""
escrow-plugin: Conditional transfers over XRP Ledger escrows.

Every transfer is:
- an EscrowCreate locked by a preimage-sha-256 condition
- released by an EscrowFinish revealing the fulfillment
- or returned by an EscrowCancel once it expires

Messages and request/response pairs travel as memo-carrying payments.
"""

__version__ = "0.1.0"

from escrow_plugin.config import PluginConfig, RetryConfig
from escrow_plugin.errors import (
    AlreadyFulfilledError,
    AlreadyRolledBackError,
    DuplicateSubmissionError,
    InvalidFieldsError,
    MissingFulfillmentError,
    NotAcceptedError,
    NotConnectedError,
    PluginError,
    RequestHandlerAlreadyRegisteredError,
    RequestTimeoutError,
    TransferNotFoundError,
    TranslationError,
)
from escrow_plugin.events import PluginEvent
from escrow_plugin.plugin import EscrowPlugin
from escrow_plugin.rpc import MessageChannel
from escrow_plugin.store import TransferEntry, TransferStore
from escrow_plugin.translate import MessageRecord, TransferRecord

__all__ = [
    "AlreadyFulfilledError",
    "AlreadyRolledBackError",
    "DuplicateSubmissionError",
    "EscrowPlugin",
    "InvalidFieldsError",
    "MessageChannel",
    "MessageRecord",
    "MissingFulfillmentError",
    "NotAcceptedError",
    "NotConnectedError",
    "PluginConfig",
    "PluginError",
    "PluginEvent",
    "RequestHandlerAlreadyRegisteredError",
    "RequestTimeoutError",
    "RetryConfig",
    "TransferEntry",
    "TransferNotFoundError",
    "TransferRecord",
    "TransferStore",
    "TranslationError",
]
