"""
Contract for the external messaging protocol library.

The gateway never speaks the wire protocol itself. A capability object
creates transports from stored credentials; each transport exposes an event
stream plus `send_text` and `logout`. Concrete capabilities are provided by
the deployment and selected with an import string such as
`mybridge.capability:build`.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence, Tuple, runtime_checkable

from state.models import CredentialRecord
from .events import EventKind, SessionEvent


EventCallback = Callable[[SessionEvent], None]


@dataclass(frozen=True)
class ConnectOptions:
    # None lets the transport fall back to its bundled protocol version
    version: Optional[Tuple[int, ...]] = None
    browser: Tuple[str, ...] = ("BodaApp", "Chrome", "10.0.0")
    print_qr_in_terminal: bool = False


@runtime_checkable
class SessionTransport(Protocol):
    def subscribe(self, kind: EventKind, callback: EventCallback) -> None:
        """Register `callback` for events of `kind`. May be called from any thread."""
        ...

    def send_text(self, address: str, text: str) -> Any:
        ...

    def logout(self) -> None:
        ...


@runtime_checkable
class ProtocolCapability(Protocol):
    def connect(self, credentials: CredentialRecord, options: ConnectOptions) -> SessionTransport:
        ...


def version_lookup_of(capability: Any) -> Optional[Callable[[], Sequence[int]]]:
    """Return the capability's `fetch_latest_version` if it offers one."""
    lookup = getattr(capability, "fetch_latest_version", None)
    return lookup if callable(lookup) else None


def load_capability(target: str) -> ProtocolCapability:
    """Resolve `module.path:factory` and call the factory.

    Raises RuntimeError if the target is malformed or the factory does not
    produce an object with a `connect` method.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise RuntimeError(f"Capability must be given as 'module:factory', got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise RuntimeError(f"Cannot import capability module {module_name!r}") from exc
    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise RuntimeError(f"{target!r} is not a callable capability factory")
    capability = factory()
    if not callable(getattr(capability, "connect", None)):
        raise RuntimeError(f"{target!r} did not return an object with connect()")
    return capability
