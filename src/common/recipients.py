from __future__ import annotations

import re
from typing import Any, Optional


USER_ADDRESS_SUFFIX = "@s.whatsapp.net"

_NON_DIGITS = re.compile(r"\D")


def normalize_recipient(raw: Any) -> Optional[str]:
    """Reduce a phone number to its digits.

    Accepts strings such as "+1 (555) 000-1111" as well as plain integers.
    Returns None when nothing usable remains (empty, non-numeric, or an
    unsupported type such as bool/None).
    """
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, int):
        raw = str(raw)
    if not isinstance(raw, str):
        return None
    digits = _NON_DIGITS.sub("", raw)
    return digits or None


def to_address(digits: str) -> str:
    """Transport address for a normalized recipient."""
    return f"{digits}{USER_ADDRESS_SUFFIX}"


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False
