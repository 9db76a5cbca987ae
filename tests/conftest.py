import os
import sys
import time
from typing import Any, Dict, List, Optional

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*` / `session.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


class FakeTransport:
    """In-memory transport: records sends and lets tests emit events."""

    def __init__(self, credentials=None, options=None, *, timeline: Optional[List[Any]] = None) -> None:
        self.credentials = credentials
        self.options = options
        self.callbacks: Dict[Any, List[Any]] = {}
        self.sent: List[tuple] = []
        self.send_errors: Dict[str, Exception] = {}
        self.timeline = timeline if timeline is not None else []
        self.logout_calls = 0
        self.fail_logout = False
        self.closed = False

    def subscribe(self, kind, callback) -> None:
        self.callbacks.setdefault(kind, []).append(callback)

    def emit(self, kind, event) -> None:
        for cb in list(self.callbacks.get(kind, [])):
            cb(event)

    # Convenience emitters
    def qr(self, payload: str) -> None:
        from session.events import ConnectionUpdate, EventKind

        self.emit(EventKind.CONNECTION, ConnectionUpdate(qr=payload))

    def open(self) -> None:
        from session.events import ConnectionUpdate, EventKind

        self.emit(EventKind.CONNECTION, ConnectionUpdate(connection="open"))

    def close_with(self, code: Optional[int]) -> None:
        from session.events import ConnectionUpdate, EventKind

        self.emit(EventKind.CONNECTION, ConnectionUpdate(connection="close", disconnect_code=code))

    def creds(self, payload: Dict[str, Any]) -> None:
        from session.events import CredentialsUpdate, EventKind

        self.emit(EventKind.CREDENTIALS, CredentialsUpdate(creds=payload))

    def send_text(self, address: str, text: str):
        self.sent.append((address, text))
        self.timeline.append(("send", address))
        err = self.send_errors.get(address)
        if err is not None:
            raise err
        return {"id": f"msg-{len(self.sent)}"}

    def logout(self) -> None:
        self.logout_calls += 1
        if self.fail_logout:
            raise RuntimeError("remote logout failed")

    def close(self) -> None:
        self.closed = True


class FakeCapability:
    def __init__(
        self,
        *,
        version=(2, 3000, 1015901307),
        version_error: Optional[Exception] = None,
        connect_error: Optional[Exception] = None,
        connect_delay: float = 0.0,
        transport_cls=FakeTransport,
    ) -> None:
        self.version = version
        self.version_error = version_error
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.transport_cls = transport_cls
        self.transports: List[FakeTransport] = []
        self.version_calls = 0

    def connect(self, credentials, options):
        if self.connect_delay:
            time.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        transport = self.transport_cls(credentials, options)
        self.transports.append(transport)
        return transport

    def fetch_latest_version(self):
        self.version_calls += 1
        if self.version_error is not None:
            raise self.version_error
        return self.version

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


def fake_renderer(payload: str) -> str:
    return f"data:fake,{payload}"


@pytest.fixture
def capability() -> FakeCapability:
    return FakeCapability()


@pytest.fixture
def store(tmp_path):
    from state.credential_store import CredentialStore

    return CredentialStore(tmp_path / "auth", "primary")


@pytest.fixture
def context():
    from session.context import SessionContext

    return SessionContext()


@pytest.fixture
def manager(context, capability, store):
    from session.manager import SessionManager

    mgr = SessionManager(context, capability, store, renderer=fake_renderer, settle_timeout=0.01)
    yield mgr
    mgr.close()


@pytest.fixture
def connected(manager, capability) -> FakeTransport:
    """Drive the manager to CONNECTED and return the live fake transport."""
    manager.start()
    transport = capability.last
    transport.open()
    manager.wait_idle()
    return transport
