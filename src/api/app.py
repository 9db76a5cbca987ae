"""
HTTP control surface for the messaging session.

Thin adapter only: every route translates to one SessionManager or
BroadcastDispatcher call, and every response (including errors) carries the
current session status so the frontend can resynchronize.

The server never connects on its own at startup; the frontend calls
/start-session when it actually needs the session.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from common.errors import (
    BroadcastAbortedError,
    NotConnectedError,
    SendFailedError,
    SessionError,
    StartFailedError,
    ValidationError,
)
from common.log import configure_logging
from common.pacing import HumanPacer
from common.settings import DEFAULT_CORS_ORIGINS, ServiceSettings, load_settings
from common.version import DEFAULT_VERSION_URL, VersionClient
from dispatch.broadcaster import BroadcastDispatcher, BroadcastResult
from session.capability import load_capability, version_lookup_of
from session.context import SessionContext
from session.events import StartOutcome
from session.manager import SessionManager
from state.credential_store import CredentialStore


LOGGER = logging.getLogger(__name__)

_START_MESSAGES = {
    StartOutcome.ALREADY_CONNECTED: "Already connected.",
    StartOutcome.IN_PROGRESS: "Connection already in progress.",
    StartOutcome.INITIATED: "Session start initiated.",
}


class SendRequest(BaseModel):
    # Optional so that missing fields reach the dispatcher's own validation
    recipient: Optional[Any] = None
    message: Optional[Any] = None


class BroadcastRequest(BaseModel):
    recipients: Optional[Any] = None
    message: Optional[Any] = None


def _result_payload(result: Optional[BroadcastResult]) -> Dict[str, Any]:
    if result is None:
        return {}
    return {
        "sent": result.sent_count,
        "failed": result.failed_count,
        "results": [r.as_dict() for r in result.results],
    }


def create_app(
    manager: SessionManager,
    dispatcher: BroadcastDispatcher,
    *,
    cors_origins: Iterable[str] = DEFAULT_CORS_ORIGINS,
    resources: Iterable[Any] = (),
) -> FastAPI:
    """Build the FastAPI app around an already-wired manager and dispatcher.

    `resources` are extra objects with `close()` released on shutdown.
    """
    extra = list(resources)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        LOGGER.info("Session control API started")
        yield
        LOGGER.info("Shutting down session control API...")
        dispatcher.close()
        manager.close()
        for res in extra:
            try:
                res.close()
            except Exception:
                LOGGER.warning("Error while closing %r", res, exc_info=True)

    app = FastAPI(title="Session Gateway", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        allow_credentials=True,
    )
    app.state.manager = manager
    app.state.dispatcher = dispatcher

    def _status_of(exc: SessionError) -> Dict[str, Any]:
        snapshot = exc.snapshot or manager.status()
        return snapshot.as_dict()

    # --------------- Error handlers ---------------
    @app.exception_handler(NotConnectedError)
    async def not_connected_handler(request: Request, exc: NotConnectedError):
        content = {"error": str(exc), **_status_of(exc), **_result_payload(exc.result)}
        return JSONResponse(status_code=400, content=content)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc), **_status_of(exc)})

    @app.exception_handler(SendFailedError)
    async def send_failed_handler(request: Request, exc: SendFailedError):
        detail = str(exc.__cause__) if exc.__cause__ is not None else str(exc)
        return JSONResponse(
            status_code=500,
            content={"error": "failed to send message", "detail": detail, **_status_of(exc)},
        )

    @app.exception_handler(StartFailedError)
    async def start_failed_handler(request: Request, exc: StartFailedError):
        detail = str(exc.__cause__) if exc.__cause__ is not None else str(exc)
        return JSONResponse(
            status_code=500,
            content={"error": "could not start session", "detail": detail, **_status_of(exc)},
        )

    @app.exception_handler(BroadcastAbortedError)
    async def aborted_handler(request: Request, exc: BroadcastAbortedError):
        content = {"error": str(exc), **_status_of(exc), **_result_payload(exc.result)}
        return JSONResponse(status_code=503, content=content)

    # --------------- Routes ---------------
    @app.post("/start-session")
    def start_session():
        outcome, snapshot = manager.start_session()
        return {"message": _START_MESSAGES[outcome], **snapshot.as_dict()}

    @app.get("/status")
    def status():
        return manager.status().as_dict()

    @app.post("/logout")
    def logout():
        snapshot = manager.logout()
        return {
            "message": "Session closed and credentials cleared. A new QR will be required.",
            "status": snapshot.status.value,
        }

    @app.post("/send")
    def send(req: SendRequest):
        dispatcher.send_one(req.recipient, req.message)
        return {"success": True, "message": "Message sent.", "status": manager.status().status.value}

    @app.post("/broadcast")
    def broadcast(req: BroadcastRequest):
        result = dispatcher.broadcast(req.recipients, req.message)
        return {
            "success": True,
            "message": f"Broadcast attempted. Sent: {result.sent_count}, Failed: {result.failed_count}.",
            **_result_payload(result),
            "status": manager.status().status.value,
        }

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def build_app(settings: Optional[ServiceSettings] = None) -> FastAPI:
    """Wire store, capability, state machine and dispatcher from settings."""
    settings = settings or load_settings()
    capability = load_capability(settings.require_capability())
    store = CredentialStore(settings.auth_root, settings.session_id, fernet_key=settings.fernet_key)

    resources = []
    version_lookup = version_lookup_of(capability)
    if version_lookup is None:
        version_client = VersionClient(url=settings.version_url or DEFAULT_VERSION_URL)
        version_lookup = version_client.fetch
        resources.append(version_client)

    context = SessionContext()
    manager = SessionManager(
        context,
        capability,
        store,
        version_lookup=version_lookup,
        browser=settings.browser,
        settle_timeout=settings.settle_seconds,
    )
    dispatcher = BroadcastDispatcher(context, HumanPacer(settings.min_delay, settings.max_delay))
    return create_app(manager, dispatcher, cors_origins=settings.cors_origins, resources=resources)


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    app = build_app(settings)
    LOGGER.info("Session gateway listening on http://%s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
