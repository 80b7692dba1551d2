"""
Error taxonomy for the escrow plugin.

Three families, with different propagation rules:

    Construction errors (fatal):
        - ``InvalidFieldsError`` — malformed options, transfers or messages.

    Per-transfer errors (recoverable, surfaced to the awaiting caller):
        - ``TransferNotFoundError``, ``MissingFulfillmentError``,
          ``AlreadyRolledBackError``, ``AlreadyFulfilledError``
        - ``NotAcceptedError`` — the ledger rejected a submitted transaction.
        - ``DuplicateSubmissionError``, ``RequestTimeoutError``,
          ``NotConnectedError``

    Stream errors (logged, the single event is dropped):
        - ``TranslationError`` — malformed or foreign ledger event.
"""

from __future__ import annotations


class PluginError(Exception):
    """Base class for every error raised by the escrow plugin."""


class InvalidFieldsError(PluginError, ValueError):
    """Caller-supplied options, transfer or message are malformed."""


class NotConnectedError(PluginError):
    """An operation that needs the ledger was called while disconnected."""


class TransferNotFoundError(PluginError):
    """No transfer with the given id has been seen on the ledger."""


class MissingFulfillmentError(PluginError):
    """The transfer exists but has not been fulfilled yet."""


class AlreadyRolledBackError(PluginError):
    """The transfer was cancelled; it can never be fulfilled."""


class AlreadyFulfilledError(PluginError):
    """The transfer already reached its fulfilled terminal state."""


class NotAcceptedError(PluginError):
    """The ledger did not accept a submitted transaction.

    Attributes:
        engine_result: Raw engine result reported by the ledger
            (e.g. "tecNO_PERMISSION"). None if none was reported.
        tx_hash: Hash of the rejected transaction, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        engine_result: str | None = None,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__(message)
        self.engine_result = engine_result
        self.tx_hash = tx_hash


class DuplicateSubmissionError(PluginError):
    """A transaction with the same hash is already awaiting validation."""


class TranslationError(PluginError):
    """A validated ledger event could not be turned into a transfer or message."""


class RequestTimeoutError(PluginError, TimeoutError):
    """No response arrived for a request before its timeout."""


class RequestHandlerAlreadyRegisteredError(PluginError):
    """A request handler is already installed; deregister it first."""
