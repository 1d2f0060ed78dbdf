"""Tests for EncryptedStore and KeyStore."""

import base64
import os
import stat

import pytest

from heirloom.models.app_config import SecurityConfig
from heirloom.models.error import StorageError, ValidationError
from heirloom.services.encrypted_store import (
    DECRYPTION_SENTINEL, DecryptionFailure, EncryptedStore, KeyStore, is_decryption_sentinel
)


def _flip_last_byte(text: str) -> str:
    raw = bytearray(base64.b64decode(text))
    raw[-1] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


@pytest.mark.parametrize("plaintext", [
    "Dear Sam,\nI love you.",
    "Grüße aus München. «Bonne chance» — ¿qué tal? 🌻",
    "x",
    "line one\r\n\r\nline two\n\n\n",
])
def test_round_trip_without_passphrase(encrypted_store, plaintext):
    blob = encrypted_store.encrypt(plaintext)

    assert encrypted_store.decrypt(blob.ciphertext, blob.salt, blob.iv) == plaintext


def test_round_trip_with_passphrase(encrypted_store):
    blob = encrypted_store.encrypt("For when you turn eighteen.", passphrase="correct horse")

    assert encrypted_store.decrypt(blob.ciphertext, blob.salt, blob.iv, "correct horse") == \
        "For when you turn eighteen."


def test_each_encryption_uses_fresh_salt_and_nonce(encrypted_store):
    first = encrypted_store.encrypt("same text")
    second = encrypted_store.encrypt("same text")

    assert first.iv != second.iv
    assert first.salt != second.salt
    assert first.ciphertext != second.ciphertext


def test_wrong_passphrase_returns_sentinel(encrypted_store):
    blob = encrypted_store.encrypt("secret", passphrase="right")

    result = encrypted_store.decrypt_blob(blob, "wrong")

    assert not result.ok
    assert result.failure is DecryptionFailure.AUTHENTICATION_FAILED
    assert result.failure.can_retry
    assert is_decryption_sentinel(result.text)


def test_tampered_ciphertext_returns_sentinel(encrypted_store):
    blob = encrypted_store.encrypt("do not change me")

    text = encrypted_store.decrypt(_flip_last_byte(blob.ciphertext), blob.salt, blob.iv)

    assert text.startswith(DECRYPTION_SENTINEL[:-1])


@pytest.mark.parametrize("ciphertext,salt,iv", [
    ("not base64!!", "AAAA", "AAAAAAAAAAAAAAAA"),
    ("", "", ""),
    (None, None, None),
    ("QUJD", "AAAA", "AAAAAAAAAAAAAAAA"),
])
def test_malformed_payload_returns_sentinel(encrypted_store, ciphertext, salt, iv):
    result = encrypted_store.decrypt_result(ciphertext, salt, iv)

    assert result.failure is DecryptionFailure.MALFORMED
    assert not result.failure.can_retry
    assert is_decryption_sentinel(result.text)


@pytest.mark.parametrize("passphrase", [12345, b"bytes-pass", "bad \udcff surrogate"])
def test_unusable_passphrase_returns_sentinel(encrypted_store, passphrase):
    blob = encrypted_store.encrypt("secret", passphrase="right")

    result = encrypted_store.decrypt_blob(blob, passphrase)
    text = encrypted_store.decrypt(blob.ciphertext, blob.salt, blob.iv, passphrase)

    assert result.failure is DecryptionFailure.MALFORMED
    assert is_decryption_sentinel(text)


def test_missing_key_file_returns_sentinel(tmp_path):
    writer = EncryptedStore(SecurityConfig(iterations=1000), KeyStore(tmp_path / "a.key"))
    reader = EncryptedStore(SecurityConfig(iterations=1000), KeyStore(tmp_path / "missing.key"))
    blob = writer.encrypt("hello")

    result = reader.decrypt_blob(blob)

    assert result.failure is DecryptionFailure.KEY_UNAVAILABLE


def test_empty_plaintext_is_rejected(encrypted_store):
    with pytest.raises(ValidationError):
        encrypted_store.encrypt("")
    with pytest.raises(ValidationError):
        encrypted_store.encrypt_bytes(b"")


def test_passphrase_can_be_required(tmp_path):
    store = EncryptedStore(SecurityConfig(iterations=1000, require_passphrase=True), KeyStore(tmp_path / "k.key"))

    with pytest.raises(ValidationError) as exc_info:
        store.encrypt("hello")
    assert exc_info.value.code == "PASSPHRASE_REQUIRED"
    assert not (tmp_path / "k.key").exists()

    blob = store.encrypt("hello", passphrase="pw")
    assert store.decrypt_blob(blob, "pw").plaintext == "hello"


def test_bytes_round_trip(encrypted_store):
    data = os.urandom(4096)

    blob = encrypted_store.encrypt_bytes(data)

    assert encrypted_store.decrypt_bytes(blob) == data


def test_key_file_is_created_once_with_owner_only_permissions(tmp_path):
    path = tmp_path / "keys" / "content.key"
    key_store = KeyStore(path)

    first = key_store.load_or_create()
    second = KeyStore(path).load_or_create()

    assert first == second
    assert len(first) == 32
    if os.name == "posix":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_corrupt_key_file_is_not_overwritten(tmp_path):
    path = tmp_path / "content.key"
    path.write_text("garbage", encoding="ascii")

    with pytest.raises(StorageError) as exc_info:
        KeyStore(path).load_or_create()

    assert exc_info.value.code == "ENCRYPTION_FAILED"
    assert path.read_text(encoding="ascii") == "garbage"
