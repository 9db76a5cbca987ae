from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Sequence, Tuple

from common.errors import PersistenceError, StartFailedError
from common.pairing import render_pairing_artifact
from common.settings import DEFAULT_BROWSER
from state.credential_store import CredentialStore
from state.models import CredentialRecord
from .capability import ConnectOptions, EventCallback, ProtocolCapability, version_lookup_of
from .context import SessionContext
from .events import (
    ConnectionStatus,
    ConnectionUpdate,
    CredentialsUpdate,
    DisconnectClass,
    EventKind,
    SessionEvent,
    SessionSnapshot,
    StartOutcome,
    classify_disconnect,
    describe_disconnect,
)


LOGGER = logging.getLogger(__name__)

DEFAULT_SETTLE_SECONDS = 2.5

_IN_PROGRESS = (ConnectionStatus.CONNECTING, ConnectionStatus.NEEDS_QR)
_STOP = object()


@dataclass(frozen=True)
class _Envelope:
    generation: int
    kind: EventKind
    event: SessionEvent


class SessionManager:
    """
    Lifecycle state machine for the single paired session.

    - `start()` / `logout()` are the only commands; `status()` is a pure read.
    - Transport callbacks only enqueue; one consumer thread applies events in
      order under the context lock.
    - Reconnection is always caller-initiated: no event ever calls `start()`.
    """

    def __init__(
        self,
        context: SessionContext,
        capability: ProtocolCapability,
        store: CredentialStore,
        *,
        version_lookup: Optional[Callable[[], Sequence[int]]] = None,
        renderer: Callable[[str], str] = render_pairing_artifact,
        browser: Iterable[str] = DEFAULT_BROWSER,
        settle_timeout: float = DEFAULT_SETTLE_SECONDS,
    ) -> None:
        self._ctx = context
        self._capability = capability
        self._store = store
        self._version_lookup = version_lookup or version_lookup_of(capability)
        self._render = renderer
        self._browser = tuple(browser)
        self._settle_timeout = settle_timeout
        self._events: "queue.Queue[Any]" = queue.Queue()
        self._settled = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()

    @property
    def context(self) -> SessionContext:
        return self._ctx

    # --------------- Commands / queries ---------------
    def status(self) -> SessionSnapshot:
        return self._ctx.snapshot()

    def start(self) -> SessionSnapshot:
        """Create a new session unless one is live or under construction.

        Returns the snapshot observed once the first status-changing event has
        been applied, or after the settle timeout, whichever comes first.
        Raises StartFailedError (status ERROR) if credentials cannot be loaded
        or the transport cannot be created.
        """
        return self.start_session()[1]

    def start_session(self) -> Tuple[StartOutcome, SessionSnapshot]:
        """Like `start()`, but also report whether this call created the session."""
        ctx = self._ctx
        with ctx.lock:
            if ctx.status is ConnectionStatus.CONNECTED:
                LOGGER.info("Start requested but session is already connected")
                return StartOutcome.ALREADY_CONNECTED, ctx.snapshot()
            if ctx.status in _IN_PROGRESS:
                LOGGER.info("Start requested while connection is in progress (%s)", ctx.status.value)
                return StartOutcome.IN_PROGRESS, ctx.snapshot()

            LOGGER.info("Starting new messaging session")
            self._retire_transport_locked()
            generation = ctx.generation + 1
            ctx.generation = generation
            ctx.credentials_generation = generation
            ctx.pairing_artifact = None
            ctx.status = ConnectionStatus.CONNECTING
            self._settled.clear()
            self._ensure_worker()

        # Disk, version lookup and connect run unlocked so status reads never wait on I/O
        transport = None
        try:
            record = self._store.load()
            options = ConnectOptions(version=self._resolve_version(), browser=self._browser)
            transport = self._capability.connect(record, options)
            transport.subscribe(EventKind.CONNECTION, self._subscriber(generation, EventKind.CONNECTION))
            transport.subscribe(EventKind.CREDENTIALS, self._subscriber(generation, EventKind.CREDENTIALS))
        except Exception as exc:
            if transport is not None:
                self._close_quietly(transport)
            with ctx.lock:
                if ctx.generation == generation:
                    ctx.status = ConnectionStatus.ERROR
                    ctx.credentials_generation = None
                snapshot = ctx.snapshot()
            LOGGER.exception("Could not start messaging session")
            raise StartFailedError(f"could not start session: {exc}", snapshot=snapshot) from exc

        with ctx.lock:
            current = ctx.generation == generation
            if current:
                ctx.transport = transport
        if not current:
            # Logout, shutdown or a close event retired this attempt while connecting
            LOGGER.info("Session start superseded before the transport was installed")
            self._close_quietly(transport)
            return StartOutcome.INITIATED, ctx.snapshot()

        self._settled.wait(self._settle_timeout)
        return StartOutcome.INITIATED, ctx.snapshot()

    def logout(self) -> SessionSnapshot:
        """Hard reset: remote logout (best effort), wipe credentials, LOGGED_OUT."""
        ctx = self._ctx
        with ctx.lock:
            transport = ctx.transport
            ctx.transport = None
            ctx.generation += 1
            ctx.credentials_generation = None

            if transport is None:
                LOGGER.info("Logout requested with no active transport")
            else:
                remote_logout = getattr(transport, "logout", None)
                if callable(remote_logout):
                    try:
                        remote_logout()
                        LOGGER.info("Remote session logged out")
                    except Exception:
                        LOGGER.warning("Remote logout failed; continuing with local reset", exc_info=True)
                self._close_quietly(transport)

            self._wipe_credentials("logout")
            ctx.status = ConnectionStatus.LOGGED_OUT
            ctx.pairing_artifact = None
            self._settled.set()
            return ctx.snapshot()

    def wait_idle(self) -> None:
        """Block until every queued event has been applied."""
        self._events.join()

    def close(self, timeout: float = 5.0) -> None:
        """Stop the event consumer and drop the transport (process shutdown)."""
        with self._worker_lock:
            worker = self._worker
            self._worker = None
        if worker is not None:
            self._events.put(_STOP)
            worker.join(timeout)

        with self._ctx.lock:
            transport = self._ctx.transport
            self._ctx.transport = None
            self._ctx.generation += 1
            self._ctx.credentials_generation = None
        if transport is not None:
            self._close_quietly(transport)
        self._settled.set()

    # --------------- Event consumer ---------------
    def _subscriber(self, generation: int, kind: EventKind) -> EventCallback:
        def _enqueue(event: SessionEvent) -> None:
            self._events.put(_Envelope(generation=generation, kind=kind, event=event))

        return _enqueue

    def _ensure_worker(self) -> None:
        with self._worker_lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(target=self._run, name="session-events", daemon=True)
            self._worker.start()

    def _run(self) -> None:
        while True:
            item = self._events.get()
            try:
                if item is _STOP:
                    return
                self._apply(item)
            except Exception:
                LOGGER.exception("Unhandled error while applying session event")
            finally:
                self._events.task_done()

    def _apply(self, envelope: _Envelope) -> None:
        ctx = self._ctx
        with ctx.lock:
            event = envelope.event
            if isinstance(event, CredentialsUpdate):
                # Credentials outlive a recoverable close; only logout or a newer start retires them
                if envelope.generation != ctx.credentials_generation:
                    LOGGER.debug("Dropping %s from a retired transport", envelope.kind.value)
                    return
                self._persist_credentials(event)
                return
            if envelope.generation != ctx.generation:
                LOGGER.debug("Dropping %s from a retired transport", envelope.kind.value)
                return
            if isinstance(event, ConnectionUpdate):
                self._on_connection_update(event)
            else:
                LOGGER.warning("Ignoring unknown session event: %r", event)

    def _on_connection_update(self, update: ConnectionUpdate) -> None:
        changed = False
        if update.qr:
            self._on_pairing_code(update.qr)
            changed = True
        if update.connection == "close":
            self._on_close(update.disconnect_code)
            changed = True
        elif update.connection == "open":
            self._on_open()
            changed = True
        if changed:
            self._settled.set()

    def _on_pairing_code(self, payload: str) -> None:
        ctx = self._ctx
        LOGGER.info("Pairing code received, rendering artifact")
        try:
            artifact = self._render(payload)
        except Exception:
            LOGGER.exception("Could not render pairing code")
            ctx.pairing_artifact = None
            ctx.status = ConnectionStatus.ERROR
            return
        ctx.pairing_artifact = artifact
        ctx.status = ConnectionStatus.NEEDS_QR

    def _on_close(self, code: Optional[int]) -> None:
        ctx = self._ctx
        ctx.pairing_artifact = None
        ctx.transport = None
        ctx.generation += 1
        LOGGER.info("Connection closed: %s - %s", code, describe_disconnect(code))

        kind = classify_disconnect(code)
        if kind is DisconnectClass.LOGGED_OUT:
            ctx.credentials_generation = None
            ctx.status = ConnectionStatus.LOGGED_OUT
            LOGGER.warning("Session was logged out remotely; a new pairing is required")
            self._wipe_credentials("remote logout")
        elif kind is DisconnectClass.RESTART_REQUIRED:
            ctx.status = ConnectionStatus.DISCONNECTED
            LOGGER.info("Restart required by the provider; caller may start again")
        else:
            ctx.status = ConnectionStatus.DISCONNECTED
            LOGGER.info("Connection closed for another reason; caller may start again")

    def _on_open(self) -> None:
        self._ctx.status = ConnectionStatus.CONNECTED
        self._ctx.pairing_artifact = None
        LOGGER.info("Messaging session connected")

    def _persist_credentials(self, update: CredentialsUpdate) -> None:
        try:
            record = CredentialRecord(creds=dict(update.creds))
        except (TypeError, ValueError):
            LOGGER.error("Ignoring malformed credential update", exc_info=True)
            return
        try:
            self._store.save(record)
        except PersistenceError:
            LOGGER.error("Could not persist updated credentials", exc_info=True)

    # --------------- Helpers ---------------
    def _resolve_version(self) -> Optional[Tuple[int, ...]]:
        if self._version_lookup is None:
            return None
        try:
            version = tuple(int(part) for part in self._version_lookup())
        except Exception as exc:
            LOGGER.warning("Could not fetch latest protocol version, using transport default: %s", exc)
            return None
        if not version:
            return None
        LOGGER.info("Using protocol version %s", ".".join(str(p) for p in version))
        return version

    def _wipe_credentials(self, reason: str) -> None:
        try:
            self._store.wipe()
        except PersistenceError:
            LOGGER.error("Could not reset credential directory after %s", reason, exc_info=True)

    def _retire_transport_locked(self) -> None:
        old = self._ctx.transport
        self._ctx.transport = None
        if old is not None:
            self._close_quietly(old)

    @staticmethod
    def _close_quietly(transport: Any) -> None:
        close = getattr(transport, "close", None)
        if not callable(close):
            return
        try:
            close()
        except Exception:
            LOGGER.warning("Error while closing transport", exc_info=True)
