"""
XRPL engine result classification.

Keeps the mapping coarse and conservative: an engine result is sorted
into one of a small closed set of classes by its prefix. Unknown codes
map to UNKNOWN rather than guessing.

XRPL engine result prefixes:
    - tes: success (tesSUCCESS)
    - tec: claimed cost — included in a ledger, but "failed"
    - tef: local failure — not forwarded, never validates
    - tem: malformed — not forwarded, never validates
    - tel: local error (fee, queue) — not forwarded, never validates
    - ter: retry — may still apply in a later ledger

Reference:
    https://xrpl.org/docs/references/protocol/transactions/transaction-results
"""

from __future__ import annotations

from collections.abc import Collection
from enum import StrEnum

SUCCESS_RESULT = "tesSUCCESS"


class EngineResultClass(StrEnum):
    """Coarse category of an XRPL engine result."""

    SUCCESS = "SUCCESS"
    CLAIMED = "CLAIMED"
    FAILED_LOCALLY = "FAILED_LOCALLY"
    MALFORMED = "MALFORMED"
    RETRY = "RETRY"
    UNKNOWN = "UNKNOWN"


_PREFIX_MAP: dict[str, EngineResultClass] = {
    "tes": EngineResultClass.SUCCESS,
    "tec": EngineResultClass.CLAIMED,
    "tef": EngineResultClass.FAILED_LOCALLY,
    "tel": EngineResultClass.FAILED_LOCALLY,
    "tem": EngineResultClass.MALFORMED,
    "ter": EngineResultClass.RETRY,
}

# Results that can show up on a cancellation attempt and clear on their
# own: cancelling a hair before consensus time passes CancelAfter
# (tecNO_PERMISSION), sequence races with a concurrent submission, and
# fee/queue pressure.
DEFAULT_RETRYABLE_CANCEL_RESULTS: frozenset[str] = frozenset(
    {
        "tecNO_PERMISSION",
        "tefPAST_SEQ",
        "tefMAX_LEDGER",
        "terPRE_SEQ",
        "terQUEUED",
        "telINSUF_FEE_P",
        "telCAN_NOT_QUEUE",
    }
)


def classify_engine_result(engine_result: str | None) -> EngineResultClass:
    """Map an XRPL engine result code to an EngineResultClass.

    Args:
        engine_result: Engine result string (e.g. "tesSUCCESS",
            "temBAD_FEE"). None means the engine never responded.

    Returns:
        EngineResultClass. UNKNOWN for unrecognized codes or None.
    """
    if not engine_result:
        return EngineResultClass.UNKNOWN
    return _PREFIX_MAP.get(engine_result[:3], EngineResultClass.UNKNOWN)


def never_validates(engine_result: str | None) -> bool:
    """True when a preliminary result means the tx will never reach a ledger."""
    return classify_engine_result(engine_result) in (
        EngineResultClass.MALFORMED,
        EngineResultClass.FAILED_LOCALLY,
    )


def is_retryable_cancel_result(
    engine_result: str | None,
    retryable: Collection[str] = DEFAULT_RETRYABLE_CANCEL_RESULTS,
) -> bool:
    """True if a failed cancellation with this result should be retried."""
    return engine_result is not None and engine_result in retryable
