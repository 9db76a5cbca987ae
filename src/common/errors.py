from __future__ import annotations

from typing import Any, Optional


class SessionError(RuntimeError):
    """Base error for the session gateway.

    `snapshot` (when set) is the session status observed at the time of the
    failure so callers can resynchronize without a second query.
    """

    def __init__(self, message: str, *, snapshot: Optional[Any] = None) -> None:
        super().__init__(message)
        self.snapshot = snapshot


class NotConnectedError(SessionError):
    """Operation requires a CONNECTED session."""

    def __init__(self, message: str = "session is not connected", *, snapshot=None, result=None) -> None:
        super().__init__(message, snapshot=snapshot)
        # Partial broadcast result when the session dropped mid-run
        self.result = result


class ValidationError(SessionError):
    """A required field is missing or empty."""


class InvalidRecipientError(ValidationError):
    """Recipient normalization yielded an empty identifier."""


class SendFailedError(SessionError):
    """The transport failed to deliver a message. `__cause__` holds the original error."""


class PersistenceError(SessionError):
    """Credential material could not be read, written or wiped."""


class TransientProtocolError(SessionError):
    """Best-effort protocol lookup failed."""


class StartFailedError(SessionError):
    """A new session could not be created."""


class BroadcastAbortedError(SessionError):
    """Pacing was cancelled (process shutdown) before the broadcast finished."""

    def __init__(self, message: str = "broadcast aborted", *, snapshot=None, result=None) -> None:
        super().__init__(message, snapshot=snapshot)
        self.result = result


__all__ = [
    "SessionError",
    "NotConnectedError",
    "ValidationError",
    "InvalidRecipientError",
    "SendFailedError",
    "PersistenceError",
    "TransientProtocolError",
    "StartFailedError",
    "BroadcastAbortedError",
]
