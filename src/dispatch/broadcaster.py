from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

from common.errors import (
    BroadcastAbortedError,
    InvalidRecipientError,
    NotConnectedError,
    SendFailedError,
    ValidationError,
)
from common.log import preview
from common.pacing import HumanPacer, PacingCancelled
from common.recipients import is_blank, normalize_recipient, to_address
from session.context import SessionContext


LOGGER = logging.getLogger(__name__)

SENT = "sent"
FAILED = "failed"
INVALID_RECIPIENT_REASON = "invalid recipient"

Outcome = Literal["sent", "failed"]


@dataclass(frozen=True)
class RecipientOutcome:
    recipient: Any
    outcome: Outcome
    reason: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"recipient": self.recipient, "outcome": self.outcome}
        if self.reason is not None:
            out["reason"] = self.reason
        return out


@dataclass(frozen=True)
class BroadcastResult:
    """Per-recipient outcomes in input order."""

    results: Tuple[RecipientOutcome, ...] = ()

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.outcome == SENT)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if r.outcome == FAILED)


@dataclass(frozen=True)
class SendAck:
    recipient: str
    address: str


class BroadcastDispatcher:
    """
    Text dispatch over the live session.

    Notes
    - Sends are strictly sequential, one transport call per recipient, no retry.
    - After every send attempt (success or failure) the pacer waits a random
      1.5-3.5 s; recipients rejected during normalization are skipped without
      waiting.
    - One send lock serializes every caller: a broadcast holds it for its whole
      run, so concurrent requests queue instead of interleaving on the transport.
    """

    def __init__(self, context: SessionContext, pacer: Optional[HumanPacer] = None) -> None:
        self._ctx = context
        self._pacer = pacer or HumanPacer()
        self._send_lock = threading.Lock()

    def close(self) -> None:
        self._pacer.cancel()

    # --------------- Public API ---------------
    def send_one(self, recipient: Any, body: Any) -> SendAck:
        """Send one message.

        Raises NotConnectedError, ValidationError, InvalidRecipientError or
        SendFailedError (chained to the transport error).
        """
        transport = self._ctx.connected_transport()
        if is_blank(recipient) or not isinstance(body, str) or is_blank(body):
            raise ValidationError("recipient and message are required", snapshot=self._ctx.snapshot())
        digits = normalize_recipient(recipient)
        if digits is None:
            raise InvalidRecipientError("invalid recipient", snapshot=self._ctx.snapshot())

        address = to_address(digits)
        LOGGER.info("Sending message to %s: %r", address, preview(body))
        try:
            with self._send_lock:
                transport.send_text(address, body)
        except Exception as exc:
            LOGGER.error("Error sending message to %s: %s", address, exc)
            raise SendFailedError(f"send failed: {exc}", snapshot=self._ctx.snapshot()) from exc
        return SendAck(recipient=digits, address=address)

    def broadcast(self, recipients: Sequence[Any], body: Any) -> BroadcastResult:
        """Send `body` to each recipient in order and collect the outcomes.

        Per-recipient failures are recorded, never raised. Raises
        NotConnectedError / ValidationError before any send, NotConnectedError
        (with `result`) if the session drops mid-run, and BroadcastAbortedError
        (with `result`) if pacing is cancelled by shutdown.
        """
        self._ctx.connected_transport()
        if not isinstance(recipients, (list, tuple)) or not recipients:
            raise ValidationError(
                "a non-empty list of recipients and a message are required",
                snapshot=self._ctx.snapshot(),
            )
        if not isinstance(body, str) or is_blank(body):
            raise ValidationError(
                "a non-empty list of recipients and a message are required",
                snapshot=self._ctx.snapshot(),
            )

        with self._send_lock:
            return self._run_broadcast(recipients, body)

    def _run_broadcast(self, recipients: Sequence[Any], body: str) -> BroadcastResult:
        LOGGER.info("Starting broadcast of %r to %d recipients", preview(body), len(recipients))
        results: List[RecipientOutcome] = []
        for recipient in recipients:
            digits = normalize_recipient(recipient)
            if digits is None:
                LOGGER.warning("Skipping invalid recipient: %r", recipient)
                results.append(RecipientOutcome(recipient, FAILED, INVALID_RECIPIENT_REASON))
                continue

            try:
                transport = self._ctx.connected_transport()
            except NotConnectedError as exc:
                LOGGER.error("Session dropped during broadcast after %d recipients", len(results))
                raise NotConnectedError(
                    "session disconnected during broadcast",
                    snapshot=exc.snapshot,
                    result=BroadcastResult(tuple(results)),
                ) from exc

            address = to_address(digits)
            try:
                transport.send_text(address, body)
            except Exception as exc:
                LOGGER.error("Error sending message to %s: %s", recipient, exc)
                results.append(RecipientOutcome(recipient, FAILED, str(exc) or type(exc).__name__))
            else:
                LOGGER.info("Message sent to %s", address)
                results.append(RecipientOutcome(recipient, SENT))

            try:
                self._pacer.pause()
            except PacingCancelled as exc:
                LOGGER.warning("Broadcast aborted after %d recipients", len(results))
                raise BroadcastAbortedError(
                    snapshot=self._ctx.snapshot(),
                    result=BroadcastResult(tuple(results)),
                ) from exc

        result = BroadcastResult(tuple(results))
        LOGGER.info("Broadcast completed. Sent: %d, Failed: %d", result.sent_count, result.failed_count)
        return result


__all__ = [
    "BroadcastDispatcher",
    "BroadcastResult",
    "RecipientOutcome",
    "SendAck",
    "SENT",
    "FAILED",
    "INVALID_RECIPIENT_REASON",
]
