from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Optional
from uuid import uuid4

from cryptography.fernet import Fernet, InvalidToken

from common.errors import PersistenceError
from .models import CredentialRecord


LOGGER = logging.getLogger(__name__)

CREDS_FILE = "creds.json"


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a user-provided key.

    The key must be a URL-safe base64-encoded 32-byte key (str or bytes),
    as returned by `cryptography.fernet.Fernet.generate_key()`.
    """
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def _dump_record_json(record: CredentialRecord) -> bytes:
    # Deterministic JSON: stable key order, no extra whitespace
    return json.dumps(record.model_dump(mode="json"), separators=(",", ":"), sort_keys=True).encode("utf-8")


def _load_record_json(data: bytes) -> CredentialRecord:
    raw = json.loads(data.decode("utf-8"))
    return CredentialRecord.model_validate(raw)


class CredentialStore:
    """
    Directory-backed persistence for `CredentialRecord`.

    Layout: `<root>/<session_id>/creds.json`, optionally encrypted at rest
    with Fernet when a key is provided.

    - `load()` creates the session directory if needed and returns
      `CredentialRecord.empty()` when nothing has been saved yet.
    - `save(record)` writes to a temp file in the same directory and
      atomically replaces the destination.
    - `wipe()` removes everything and recreates an empty directory.

    `save` and `wipe` share one lock, so a wipe never interleaves with a
    half-finished write. All filesystem failures surface as PersistenceError.
    """

    def __init__(
        self,
        root: os.PathLike[str] | str,
        session_id: str = "primary",
        *,
        fernet_key: Optional[str | bytes] = None,
    ) -> None:
        if not session_id or os.sep in session_id or session_id in (".", ".."):
            raise ValueError(f"invalid session_id: {session_id!r}")
        self._root = Path(root)
        self._dir = self._root / session_id
        self._fernet = _to_fernet(fernet_key) if fernet_key else None
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._dir

    @property
    def creds_path(self) -> Path:
        return self._dir / CREDS_FILE

    def ensure(self) -> Path:
        """Create the session directory (and root) if missing."""
        with self._lock:
            try:
                self._dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise PersistenceError(f"cannot create credential directory {self._dir}") from exc
            return self._dir

    def load(self) -> CredentialRecord:
        """Read the stored record, or an empty one on first use.

        Raises PersistenceError on unreadable, undecryptable or malformed data.
        """
        with self._lock:
            self.ensure()
            path = self.creds_path
            try:
                blob = path.read_bytes()
            except FileNotFoundError:
                return CredentialRecord.empty()
            except OSError as exc:
                raise PersistenceError(f"cannot read {path}") from exc

        if self._fernet is not None:
            try:
                blob = self._fernet.decrypt(blob)
            except InvalidToken as exc:
                raise PersistenceError("Failed to decrypt credentials: invalid Fernet token") from exc

        try:
            return _load_record_json(blob)
        except Exception as exc:
            raise PersistenceError("Failed to parse stored credentials JSON") from exc

    def save(self, record: CredentialRecord) -> Path:
        try:
            payload = _dump_record_json(record)
        except (TypeError, ValueError) as exc:
            raise PersistenceError("Failed to serialize credentials") from exc
        if self._fernet is not None:
            payload = self._fernet.encrypt(payload)

        with self._lock:
            self.ensure()
            dest = self.creds_path
            tmp = self._dir / f".{CREDS_FILE}.tmp-{uuid4().hex}"
            try:
                tmp.write_bytes(payload)
                os.replace(tmp, dest)
            except OSError as exc:
                raise PersistenceError(f"cannot write {dest}") from exc
            finally:
                # Best-effort cleanup when replace did not happen
                if tmp.exists():
                    try:
                        tmp.unlink()
                    except OSError:
                        LOGGER.warning("Could not remove temp credential file %s", tmp)
            return dest

    def wipe(self) -> Path:
        """Remove all credential material and recreate an empty directory.

        The old directory is first renamed aside so the visible path goes
        straight from "full" to "empty"; the renamed copy is then deleted.
        """
        with self._lock:
            trash: Optional[Path] = None
            try:
                if self._dir.exists():
                    trash = self._root / f".{self._dir.name}.trash-{uuid4().hex}"
                    os.replace(self._dir, trash)
                self._dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise PersistenceError(f"cannot reset credential directory {self._dir}") from exc

            if trash is not None:
                shutil.rmtree(trash, ignore_errors=True)
                if trash.exists():
                    LOGGER.warning("Leftover credential trash directory: %s", trash)
            LOGGER.info("Credential directory reset: %s", self._dir)
            return self._dir
