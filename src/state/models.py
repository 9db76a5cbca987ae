from __future__ import annotations

import base64
from typing import Any, Dict

from pydantic import BaseModel, Field, field_serializer, field_validator


# Tag for binary key material inside the JSON document
BYTES_TAG = "__bytes__"


def _encode_blob(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return {BYTES_TAG: base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {k: _encode_blob(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_blob(v) for v in value]
    return value


def _decode_blob(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1 and isinstance(value.get(BYTES_TAG), str):
            return base64.b64decode(value[BYTES_TAG])
        return {k: _decode_blob(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode_blob(v) for v in value]
    return value


class CredentialRecord(BaseModel):
    """
    Durable session authentication material.

    Fields
    - creds: the opaque credential blob as emitted by the transport on every
      credential update (keys, identity, registration ids, ...). Stored as-is.

    Notes
    - An empty `creds` means "never paired"; the transport starts a fresh
      pairing flow for it.
    - Binary values survive a JSON round trip: they are written as
      `{"__bytes__": "<base64>"}` and decoded back to `bytes` on load.
    """

    creds: Dict[str, Any] = Field(default_factory=dict, description="Opaque credential blob")

    @field_validator("creds", mode="before")
    @classmethod
    def _restore_bytes(cls, v: Any) -> Any:
        return _decode_blob(v) if isinstance(v, dict) else v

    @field_serializer("creds", when_used="json")
    def _tag_bytes(self, v: Dict[str, Any]) -> Dict[str, Any]:
        return _encode_blob(v)

    @classmethod
    def empty(cls) -> "CredentialRecord":
        """Convenience constructor for a fresh, unpaired record."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.creds
