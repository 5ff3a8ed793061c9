"""Fingerprint screen-unlock session controller built on fprintd."""
from .session_manager import SessionManager
from .state import IdleRestartRequest, SessionPhase

__all__ = [
    "IdleRestartRequest",
    "SessionManager",
    "SessionPhase",
]
