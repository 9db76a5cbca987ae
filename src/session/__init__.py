"""
Session lifecycle: the owned session context, transport contract, events,
and the state machine that drives them.
"""

from .context import SessionContext
from .events import (
    ConnectionStatus,
    ConnectionUpdate,
    CredentialsUpdate,
    EventKind,
    SessionSnapshot,
    StartOutcome,
)
from .manager import SessionManager

__all__ = [
    "SessionContext",
    "SessionManager",
    "ConnectionStatus",
    "ConnectionUpdate",
    "CredentialsUpdate",
    "EventKind",
    "SessionSnapshot",
    "StartOutcome",
]
