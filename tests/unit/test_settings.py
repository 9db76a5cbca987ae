from __future__ import annotations

import logging
from typing import Dict, Optional

import pytest

from common import settings as settings_mod
from common.log import configure_logging
from session.capability import load_capability


_ALL_ENV = [
    "SESSION_AUTH_ROOT",
    "SESSION_ID",
    "SESSION_FERNET_KEY",
    "PARAM_PREFIX",
    "SESSION_CAPABILITY",
    "SESSION_SETTLE_SECONDS",
    "BROADCAST_MIN_DELAY",
    "BROADCAST_MAX_DELAY",
    "SESSION_VERSION_URL",
    "SESSION_BROWSER",
    "CORS_ORIGINS",
    "HOST",
    "PORT",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in _ALL_ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = settings_mod.load_settings()

    assert s.auth_root == "./auth_info"
    assert s.session_id == "primary"
    assert s.fernet_key is None
    assert s.capability is None
    assert s.settle_seconds == 2.5
    assert (s.min_delay, s.max_delay) == (1.5, 3.5)
    assert s.browser == ("BodaApp", "Chrome", "10.0.0")
    assert s.cors_origins == ("http://localhost:3000",)
    assert s.port == 4003
    assert s.log_level == "INFO"


def test_overrides(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SESSION_AUTH_ROOT", "/var/lib/gateway")
    monkeypatch.setenv("SESSION_ID", "frontdesk")
    monkeypatch.setenv("SESSION_BROWSER", "Gateway, Firefox, 1.0")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example,https://b.example")
    monkeypatch.setenv("BROADCAST_MIN_DELAY", "0.5")
    monkeypatch.setenv("BROADCAST_MAX_DELAY", "1")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    s = settings_mod.load_settings()
    assert s.auth_root == "/var/lib/gateway"
    assert s.session_id == "frontdesk"
    assert s.browser == ("Gateway", "Firefox", "1.0")
    assert s.cors_origins == ("https://a.example", "https://b.example")
    assert (s.min_delay, s.max_delay) == (0.5, 1.0)
    assert s.port == 8080
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize(
    "name,value",
    [("PORT", "http"), ("SESSION_SETTLE_SECONDS", "soon"), ("BROADCAST_MAX_DELAY", "0.1")],
)
def test_invalid_values_raise(monkeypatch: pytest.MonkeyPatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(RuntimeError):
        settings_mod.load_settings()


def test_fernet_key_from_ssm_when_prefix_set(monkeypatch: pytest.MonkeyPatch):
    calls = []

    def fake_load_ssm_params(prefix: str, names) -> Dict[str, Optional[str]]:
        calls.append((prefix, list(names)))
        return {"fernet_key": "SSM-KEY"}

    monkeypatch.setenv("PARAM_PREFIX", "/wa-gateway/dev/")
    monkeypatch.setattr(settings_mod, "_load_ssm_params", fake_load_ssm_params)

    s = settings_mod.load_settings()
    assert s.fernet_key == "SSM-KEY"
    assert calls == [("/wa-gateway/dev/", ["fernet_key"])]


def test_env_fernet_key_skips_ssm(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PARAM_PREFIX", "/wa-gateway/dev/")
    monkeypatch.setenv("SESSION_FERNET_KEY", "ENV-KEY")

    def fail(*_a, **_k):
        raise AssertionError("SSM should not be queried")

    monkeypatch.setattr(settings_mod, "_load_ssm_params", fail)
    assert settings_mod.load_settings().fernet_key == "ENV-KEY"


def test_require_capability_missing():
    with pytest.raises(RuntimeError):
        settings_mod.load_settings().require_capability()


# --------------- capability loading ---------------
def test_load_capability_from_import_string(tmp_path, monkeypatch: pytest.MonkeyPatch):
    (tmp_path / "bridge_capability.py").write_text(
        "class _Cap:\n"
        "    def connect(self, credentials, options):\n"
        "        return None\n"
        "\n"
        "def build():\n"
        "    return _Cap()\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))

    cap = load_capability("bridge_capability:build")
    assert callable(cap.connect)


@pytest.mark.parametrize(
    "target",
    ["no_colon_here", "module_that_does_not_exist_xyz:build", "collections:OrderedDict", "json:missing"],
)
def test_load_capability_rejects_bad_targets(target):
    with pytest.raises(RuntimeError):
        load_capability(target)


def test_configure_logging_sets_level_and_quiets_httpx():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging("warning")
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
