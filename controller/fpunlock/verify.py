"""Classification of fprintd VerifyStatus results."""
from __future__ import annotations

import enum
from typing import Dict


class ResultKind(str, enum.Enum):
    TRANSIENT = "transient"
    UNKNOWN_ERROR = "unknown_error"
    DISCONNECTED = "disconnected"
    MATCH = "match"
    NO_MATCH = "no_match"
    OTHER = "other"


VERIFY_MATCH = "verify-match"
VERIFY_NO_MATCH = "verify-no-match"
VERIFY_UNKNOWN_ERROR = "verify-unknown-error"
VERIFY_DISCONNECTED = "verify-disconnected"

# Results that ask the user to try again without ending the round
TRANSIENT_MESSAGES: Dict[str, str] = {
    "verify-retry-scan": "Retry",
    "verify-swipe-too-short": "Retry, too short",
    "verify-finger-not-centered": "Retry, not centered",
    "verify-remove-and-retry": "Remove and retry",
}

_KINDS: Dict[str, ResultKind] = {
    **{name: ResultKind.TRANSIENT for name in TRANSIENT_MESSAGES},
    VERIFY_UNKNOWN_ERROR: ResultKind.UNKNOWN_ERROR,
    VERIFY_DISCONNECTED: ResultKind.DISCONNECTED,
    VERIFY_MATCH: ResultKind.MATCH,
    VERIFY_NO_MATCH: ResultKind.NO_MATCH,
}


def classify(result: str) -> ResultKind:
    return _KINDS.get(result, ResultKind.OTHER)


def format_round_message(
    *,
    match: bool,
    status: str | None,
    fail_count: int,
    unknown_streak: int,
    unknown: bool,
) -> str:
    """Build the user-facing line shown when a round ends."""
    if status:
        if match:
            return f"FP OK: {status}"
        if unknown:
            return f"FP Failed ({unknown_streak}): {status}"
        return f"FP Failed ({fail_count}): {status}"
    if match:
        return "FP OK"
    return f"FP Failed ({fail_count})"


__all__ = [
    "ResultKind",
    "TRANSIENT_MESSAGES",
    "VERIFY_DISCONNECTED",
    "VERIFY_MATCH",
    "VERIFY_NO_MATCH",
    "VERIFY_UNKNOWN_ERROR",
    "classify",
    "format_round_message",
]
