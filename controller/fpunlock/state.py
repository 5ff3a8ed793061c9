"""Shared session state definitions for the fingerprint unlock service."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict


class SessionPhase(str, enum.Enum):
    """
    Phases of the fingerprint session, roughly in lifecycle order:

    IDLE             - Not initialized (fresh, torn down, suspended)
    BOOTSTRAPPING    - Connecting to the system bus and the fprintd manager
    UNAVAILABLE      - Bootstrap gave up; waits for an activity-driven retry
    CONNECTED        - Manager reachable, no device held
    ACQUIRING        - GetDefaultDevice -> proxy -> Claim in flight
    READY            - Device claimed, no verification round open
    STARTING         - VerifyStart issued, not yet acknowledged
    STALLED          - VerifyStart failed; round open but never acknowledged
    AWAITING_RESULT  - Verification running, VerifyStatus results are acted on
    COMPLETED        - Round stopped without a match; poller re-arms
    MATCHED          - Round stopped with a match
    RESTARTING       - Restart cycle owns the session
    DISABLED         - Failure thresholds reached; needs an explicit re-enable
    """
    IDLE = "idle"
    BOOTSTRAPPING = "bootstrapping"
    UNAVAILABLE = "unavailable"
    CONNECTED = "connected"
    ACQUIRING = "acquiring"
    READY = "ready"
    STARTING = "starting"
    STALLED = "stalled"
    AWAITING_RESULT = "awaiting_result"
    COMPLETED = "completed"
    MATCHED = "matched"
    RESTARTING = "restarting"
    DISABLED = "disabled"


VERIFYING_PHASES = frozenset({SessionPhase.STARTING, SessionPhase.STALLED, SessionPhase.AWAITING_RESULT})


class IdleRestartRequest(enum.IntEnum):
    """Pending idle-restart request raised by user activity."""
    NONE = 0
    REQUESTED = 1
    FORCED = 2


@dataclass
class StatusEvent:
    """Event payload distributed to UI clients whenever a status line changes."""

    type: str
    data: Dict[str, Any]
    phase: SessionPhase


__all__ = ["SessionPhase", "VERIFYING_PHASES", "IdleRestartRequest", "StatusEvent"]
