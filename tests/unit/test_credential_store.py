from __future__ import annotations

import threading

import pytest
from cryptography.fernet import Fernet

from common.errors import PersistenceError
from state.credential_store import CredentialStore
from state.models import CredentialRecord


def _creds_blob():
    return {
        "me": {"id": "15550001111:7@s.whatsapp.net", "name": "Front desk"},
        "registrationId": 4242,
        "noiseKey": {"private": "cHJpdg==", "public": "cHVi"},
        "platform": "web",
    }


def test_load_missing_returns_empty_record_and_creates_dir(tmp_path):
    store = CredentialStore(tmp_path / "auth", "primary")

    record = store.load()
    assert record == CredentialRecord.empty()
    assert record.is_empty
    assert store.path.is_dir()


def test_save_and_load_roundtrip(tmp_path):
    store = CredentialStore(tmp_path / "auth", "primary")

    src = CredentialRecord(creds=_creds_blob())
    path = store.save(src)
    assert path == store.creds_path

    assert store.load() == src
    # No temp files left behind
    assert [p.name for p in store.path.iterdir()] == ["creds.json"]


def test_encrypted_roundtrip_is_not_plaintext_on_disk(tmp_path):
    key = Fernet.generate_key()
    store = CredentialStore(tmp_path / "auth", "primary", fernet_key=key)

    store.save(CredentialRecord(creds=_creds_blob()))
    raw = store.creds_path.read_bytes()
    assert b"registrationId" not in raw

    assert store.load().creds == _creds_blob()


def test_load_with_wrong_key_raises_persistence_error(tmp_path):
    CredentialStore(tmp_path / "auth", "primary", fernet_key=Fernet.generate_key()).save(
        CredentialRecord(creds=_creds_blob())
    )
    other = CredentialStore(tmp_path / "auth", "primary", fernet_key=Fernet.generate_key().decode())

    with pytest.raises(PersistenceError):
        other.load()


def test_load_corrupt_json_raises_persistence_error(tmp_path):
    store = CredentialStore(tmp_path / "auth", "primary")
    store.ensure()
    store.creds_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceError):
        store.load()


def test_wipe_leaves_empty_existing_directory(tmp_path):
    root = tmp_path / "auth"
    store = CredentialStore(root, "primary")
    store.save(CredentialRecord(creds=_creds_blob()))
    (store.path / "pre-key-1.json").write_text("{}", encoding="utf-8")

    store.wipe()

    assert store.path.is_dir()
    assert list(store.path.iterdir()) == []
    # Trash directory is gone too
    assert [p.name for p in root.iterdir()] == ["primary"]
    assert store.load().is_empty


def test_wipe_when_directory_missing_creates_it(tmp_path):
    store = CredentialStore(tmp_path / "auth", "primary")
    assert not store.path.exists()

    store.wipe()
    assert store.path.is_dir()


def test_sessions_are_isolated_by_id(tmp_path):
    a = CredentialStore(tmp_path / "auth", "a")
    b = CredentialStore(tmp_path / "auth", "b")
    a.save(CredentialRecord(creds={"who": "a"}))

    b.wipe()
    assert a.load().creds == {"who": "a"}


@pytest.mark.parametrize("bad", ["", ".", "..", "nested/dir"])
def test_invalid_session_id_rejected(tmp_path, bad):
    with pytest.raises(ValueError):
        CredentialStore(tmp_path, bad)


def test_binary_values_roundtrip(tmp_path):
    store = CredentialStore(tmp_path / "auth", "primary", fernet_key=Fernet.generate_key())
    creds = {"noiseKey": {"private": b"\x00\x01\xfe", "public": b"pub"}, "preKeys": [b"\xff", "text"]}

    store.save(CredentialRecord(creds=creds))
    assert store.load().creds == creds


def test_unserializable_record_raises_persistence_error(tmp_path):
    store = CredentialStore(tmp_path / "auth", "primary")

    with pytest.raises(PersistenceError):
        store.save(CredentialRecord(creds={"handle": object()}))
    assert not store.creds_path.exists()


def test_concurrent_save_and_wipe_keep_directory_consistent(tmp_path):
    root = tmp_path / "auth"
    store = CredentialStore(root, "primary")
    store.ensure()
    barrier = threading.Barrier(2)
    errors = []

    def saver():
        barrier.wait()
        try:
            for i in range(50):
                store.save(CredentialRecord(creds={"v": i}))
        except Exception as exc:
            errors.append(exc)

    def wiper():
        barrier.wait()
        try:
            for _ in range(50):
                store.wipe()
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=saver), threading.Thread(target=wiper)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert errors == []
    assert store.path.is_dir()
    # Either wiped or holding one complete record, never temp files or trash
    assert [p.name for p in store.path.iterdir()] in ([], ["creds.json"])
    assert [p.name for p in root.iterdir()] == ["primary"]
    record = store.load()
    assert record.is_empty or isinstance(record.creds["v"], int)
