from __future__ import annotations

from typing import List, Optional, Tuple

import httpx
from pydantic import BaseModel, ValidationError

from .errors import TransientProtocolError


DEFAULT_VERSION_URL = (
    "https://raw.githubusercontent.com/WhiskeySockets/Baileys/master/src/Defaults/baileys-version.json"
)


class _VersionDocument(BaseModel):
    version: List[int]


class VersionClient:
    """
    Best-effort lookup of the latest published protocol version.

    Notes
    - Single attempt, short timeout: callers treat any failure as "use the
      transport's bundled default", so retrying would only delay session start.
    - Every failure is raised as TransientProtocolError.
    """

    def __init__(
        self,
        *,
        url: str = DEFAULT_VERSION_URL,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "VersionClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch(self) -> Tuple[int, ...]:
        try:
            resp = self._client.get(self._url)
        except httpx.HTTPError as exc:
            raise TransientProtocolError(f"version lookup failed: {exc}") from exc

        if resp.status_code != 200:
            raise TransientProtocolError(f"HTTP {resp.status_code} from version endpoint")

        try:
            doc = _VersionDocument.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise TransientProtocolError("malformed version document") from exc

        if not doc.version:
            raise TransientProtocolError("empty version in version document")
        return tuple(doc.version)


__all__ = ["VersionClient", "DEFAULT_VERSION_URL"]
