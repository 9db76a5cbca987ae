"""
Service configuration resolved from the environment.

Secrets may come from the environment directly or, when `PARAM_PREFIX` is
set, from SSM Parameter Store under that prefix (e.g. `/wa-gateway/prod/fernet_key`).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple


ENV_AUTH_ROOT = "SESSION_AUTH_ROOT"
ENV_SESSION_ID = "SESSION_ID"
ENV_FERNET_KEY = "SESSION_FERNET_KEY"
ENV_PARAM_PREFIX = "PARAM_PREFIX"
ENV_CAPABILITY = "SESSION_CAPABILITY"
ENV_SETTLE_SECONDS = "SESSION_SETTLE_SECONDS"
ENV_MIN_DELAY = "BROADCAST_MIN_DELAY"
ENV_MAX_DELAY = "BROADCAST_MAX_DELAY"
ENV_VERSION_URL = "SESSION_VERSION_URL"
ENV_BROWSER = "SESSION_BROWSER"
ENV_CORS_ORIGINS = "CORS_ORIGINS"
ENV_HOST = "HOST"
ENV_PORT = "PORT"
ENV_LOG_LEVEL = "LOG_LEVEL"

DEFAULT_AUTH_ROOT = "./auth_info"
DEFAULT_SESSION_ID = "primary"
DEFAULT_BROWSER = ("BodaApp", "Chrome", "10.0.0")
DEFAULT_CORS_ORIGINS = ("http://localhost:3000",)
DEFAULT_PORT = 4003


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _float_env(name: str, default: float) -> float:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid number for {name}: {raw!r}") from exc


def _int_env(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid integer for {name}: {raw!r}") from exc


def _csv(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(tok.strip() for tok in raw.replace("\n", ",").split(",") if tok.strip())


def _load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    import boto3
    from botocore.exceptions import ClientError

    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            # Leave as None if parameter missing or access denied
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                out[name] = None
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


@dataclass(frozen=True)
class ServiceSettings:
    auth_root: str = DEFAULT_AUTH_ROOT
    session_id: str = DEFAULT_SESSION_ID
    fernet_key: Optional[str] = None
    capability: Optional[str] = None
    settle_seconds: float = 2.5
    min_delay: float = 1.5
    max_delay: float = 3.5
    version_url: Optional[str] = None
    browser: Tuple[str, ...] = DEFAULT_BROWSER
    cors_origins: Tuple[str, ...] = field(default=DEFAULT_CORS_ORIGINS)
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    def require_capability(self) -> str:
        return _require(self.capability, ENV_CAPABILITY)


def load_settings() -> ServiceSettings:
    """Build settings from the environment (and SSM when `PARAM_PREFIX` is set)."""
    fernet_key = _getenv(ENV_FERNET_KEY)
    prefix = _getenv(ENV_PARAM_PREFIX)
    if fernet_key is None and prefix:
        params = _load_ssm_params(prefix, ["fernet_key"])
        fernet_key = params.get("fernet_key")

    min_delay = _float_env(ENV_MIN_DELAY, 1.5)
    max_delay = _float_env(ENV_MAX_DELAY, 3.5)
    if min_delay < 0 or max_delay < min_delay:
        raise RuntimeError(
            f"Invalid broadcast delay window: {ENV_MIN_DELAY}={min_delay}, {ENV_MAX_DELAY}={max_delay}"
        )

    return ServiceSettings(
        auth_root=_getenv(ENV_AUTH_ROOT, DEFAULT_AUTH_ROOT) or DEFAULT_AUTH_ROOT,
        session_id=_getenv(ENV_SESSION_ID, DEFAULT_SESSION_ID) or DEFAULT_SESSION_ID,
        fernet_key=fernet_key,
        capability=_getenv(ENV_CAPABILITY),
        settle_seconds=_float_env(ENV_SETTLE_SECONDS, 2.5),
        min_delay=min_delay,
        max_delay=max_delay,
        version_url=_getenv(ENV_VERSION_URL),
        browser=_csv(_getenv(ENV_BROWSER)) or DEFAULT_BROWSER,
        cors_origins=_csv(_getenv(ENV_CORS_ORIGINS)) or DEFAULT_CORS_ORIGINS,
        host=_getenv(ENV_HOST, "0.0.0.0") or "0.0.0.0",
        port=_int_env(ENV_PORT, DEFAULT_PORT),
        log_level=(_getenv(ENV_LOG_LEVEL, "INFO") or "INFO").upper(),
    )
