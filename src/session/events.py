from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Union


class ConnectionStatus(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    NEEDS_QR = "NEEDS_QR"
    CONNECTED = "CONNECTED"
    LOGGED_OUT = "LOGGED_OUT"
    ERROR = "ERROR"


class StartOutcome(str, Enum):
    ALREADY_CONNECTED = "already_connected"
    IN_PROGRESS = "in_progress"
    INITIATED = "initiated"


class EventKind(str, Enum):
    CONNECTION = "connection.update"
    CREDENTIALS = "creds.update"


class DisconnectReason(IntEnum):
    # Status codes carried by the transport's close event
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503

    # timed_out shares 408 with connection_lost
    TIMED_OUT = 408


class DisconnectClass(str, Enum):
    LOGGED_OUT = "logged_out"
    RESTART_REQUIRED = "restart_required"
    OTHER = "other"


def classify_disconnect(code: Optional[int]) -> DisconnectClass:
    if code == DisconnectReason.LOGGED_OUT:
        return DisconnectClass.LOGGED_OUT
    if code == DisconnectReason.RESTART_REQUIRED:
        return DisconnectClass.RESTART_REQUIRED
    return DisconnectClass.OTHER


def describe_disconnect(code: Optional[int]) -> str:
    if code is None:
        return "unknown"
    try:
        return DisconnectReason(code).name.lower()
    except ValueError:
        return "unknown"


@dataclass(frozen=True)
class ConnectionUpdate:
    """
    Connection lifecycle update from the transport.

    - connection: "connecting" | "open" | "close" (None when only a QR arrives)
    - qr: raw pairing payload to render, when a new pairing code is issued
    - disconnect_code: status code explaining a close (see DisconnectReason)
    """

    connection: Optional[str] = None
    qr: Optional[str] = None
    disconnect_code: Optional[int] = None


@dataclass(frozen=True)
class CredentialsUpdate:
    creds: Dict[str, Any] = field(default_factory=dict)


SessionEvent = Union[ConnectionUpdate, CredentialsUpdate]


@dataclass(frozen=True)
class SessionSnapshot:
    status: ConnectionStatus
    pairing_artifact: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "qr": self.pairing_artifact}
