from __future__ import annotations

import threading
from typing import Optional

from common.errors import NotConnectedError
from .capability import SessionTransport
from .events import ConnectionStatus, SessionSnapshot


class SessionContext:
    """
    The one session owned by this process.

    Shared by the state machine (sole writer) and the dispatcher (reader).
    Every read-modify-write happens under `lock`; `generation` increases each
    time the transport is replaced or retired so stale events can be told apart.

    `credentials_generation` names the transport whose credential updates are
    still persisted. It outlives a recoverable close and is cleared only by a
    logout (local or remote), shutdown, or the next `start()`.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.status = ConnectionStatus.DISCONNECTED
        self.pairing_artifact: Optional[str] = None
        self.transport: Optional[SessionTransport] = None
        self.generation = 0
        self.credentials_generation: Optional[int] = None

    def snapshot(self) -> SessionSnapshot:
        with self.lock:
            return SessionSnapshot(status=self.status, pairing_artifact=self.pairing_artifact)

    def is_connected(self) -> bool:
        with self.lock:
            return self.status is ConnectionStatus.CONNECTED

    def connected_transport(self) -> SessionTransport:
        """Return the live transport, or raise NotConnectedError."""
        with self.lock:
            if self.status is not ConnectionStatus.CONNECTED or self.transport is None:
                raise NotConnectedError(snapshot=self.snapshot())
            return self.transport
