"""
Plugin configuration.

Built from a plain options mapping (``PluginConfig.from_dict``) and
validated on construction. Every violation raises InvalidFieldsError;
misconfiguration is fatal and reported before anything touches the
network.

Options:
    server              rippled JSON-RPC URL (required)
    secret              XRPL family seed (required, never logged)
    address             r-address; must match the seed when given
    prefix              routing prefix, ends with "." (default g.crypto.ripple.)
    expiry_grace        seconds added to every expiry timer (default 2.0).
                        Escrow windows are judged against ledger close
                        time, not the local clock; a cancel sent at the
                        exact local expiry is rejected by the ledger.
    request_timeout     seconds to wait for a response (default 10.0)
    cancel_retry        RetryConfig mapping for expiry cancellations
    retention           seconds a terminal transfer is kept; None = forever
                        (default 3600)
    poll_interval       seconds between validated-history polls (default 1.0)
    last_ledger_offset  ledgers added for LastLedgerSequence (default 10)
    message_drops       amount of the memo-carrying payment (default "1")
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

from xrpl.core.addresscodec import is_valid_classic_address

from escrow_plugin.errors import InvalidFieldsError
from escrow_plugin.xrpl.errors import DEFAULT_RETRYABLE_CANCEL_RESULTS

DEFAULT_PREFIX = "g.crypto.ripple."

_URL_RE = re.compile(r"^(https?|wss?)://\S+$")
_PREFIX_RE = re.compile(r"^[a-zA-Z0-9._~-]+\.$")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for expiry cancellations.

    Attributes:
        max_attempts: Total attempts, including the first. None retries
            until the cancellation validates or fails non-retryably.
        delay: Seconds to wait between attempts (0 = immediately).
        retryable_results: Engine results treated as transient.
    """

    max_attempts: int | None = None
    delay: float = 0.0
    retryable_results: frozenset[str] = DEFAULT_RETRYABLE_CANCEL_RESULTS

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise InvalidFieldsError(
                f"cancel_retry.max_attempts must be >= 1 or None, got: {self.max_attempts}"
            )
        if self.delay < 0:
            raise InvalidFieldsError(f"cancel_retry.delay must be >= 0, got: {self.delay}")
        if not isinstance(self.retryable_results, frozenset):
            object.__setattr__(self, "retryable_results", frozenset(self.retryable_results))

    def allows(self, attempt: int) -> bool:
        """True if attempt number ``attempt`` (1-indexed) may run."""
        return self.max_attempts is None or attempt <= self.max_attempts

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RetryConfig:
        _reject_unknown(cls, data, "cancel_retry")
        kwargs = dict(data)
        if "retryable_results" in kwargs:
            kwargs["retryable_results"] = frozenset(kwargs["retryable_results"])
        return cls(**kwargs)


@dataclass(frozen=True)
class PluginConfig:
    """Validated plugin options. See module docstring for field meanings."""

    server: str
    secret: str = field(repr=False)
    address: str | None = None
    prefix: str = DEFAULT_PREFIX
    expiry_grace: float = 2.0
    request_timeout: float = 10.0
    cancel_retry: RetryConfig = field(default_factory=RetryConfig)
    retention: float | None = 3600.0
    poll_interval: float = 1.0
    last_ledger_offset: int = 10
    message_drops: str = "1"

    def __post_init__(self) -> None:
        if not isinstance(self.server, str) or not _URL_RE.match(self.server):
            raise InvalidFieldsError(f"server must be an http(s) or ws(s) URL, got: {self.server!r}")
        if not isinstance(self.secret, str) or not self.secret:
            raise InvalidFieldsError("secret must be a non-empty string")
        if self.address is not None and not is_valid_classic_address(self.address):
            raise InvalidFieldsError(f"address is not an XRPL r-address: {self.address!r}")
        if not _PREFIX_RE.match(self.prefix):
            raise InvalidFieldsError(f"prefix must be a dotted name ending in '.', got: {self.prefix!r}")
        for name in ("expiry_grace", "request_timeout", "poll_interval"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value < 0:
                raise InvalidFieldsError(f"{name} must be a non-negative number, got: {value!r}")
        if self.request_timeout == 0 or self.poll_interval == 0:
            raise InvalidFieldsError("request_timeout and poll_interval must be positive")
        if self.retention is not None and self.retention < 0:
            raise InvalidFieldsError(f"retention must be >= 0 or None, got: {self.retention!r}")
        if self.last_ledger_offset < 1:
            raise InvalidFieldsError(
                f"last_ledger_offset must be >= 1, got: {self.last_ledger_offset}"
            )
        if not str(self.message_drops).isdigit():
            raise InvalidFieldsError(
                f"message_drops must be a non-negative integer string, got: {self.message_drops!r}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PluginConfig:
        """Build from an options mapping; unknown keys are rejected."""
        _reject_unknown(cls, data, "options")
        kwargs = dict(data)
        for required in ("server", "secret"):
            if required not in kwargs:
                raise InvalidFieldsError(f"options.{required} is required")
        retry = kwargs.get("cancel_retry")
        if isinstance(retry, Mapping):
            kwargs["cancel_retry"] = RetryConfig.from_dict(retry)
        return cls(**kwargs)


def _reject_unknown(cls: type, data: Mapping[str, Any], where: str) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise InvalidFieldsError(f"unknown {where} field(s): {', '.join(unknown)}")
