"""
Credential models and directory-backed persistence.

The session's authentication material is serialized to JSON, optionally
encrypted with Fernet, and kept under a per-session directory.
"""

from .models import CredentialRecord
from .credential_store import CredentialStore

__all__ = ["CredentialRecord", "CredentialStore"]
