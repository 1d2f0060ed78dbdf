"""Tests for CapsuleVault."""

import json

import pytest

from heirloom.models.app_config import FeatureFlags
from heirloom.models.capsule import ENCRYPTED_SENTINEL, CapsuleRecord, CapsuleStatus, GenerationMethod
from heirloom.models.error import StorageError, ValidationError
from heirloom.services.capsule_vault import CapsuleVault
from heirloom.services.encrypted_store import DecryptionFailure, is_decryption_sentinel
from heirloom.services.record_store import CAPSULES


@pytest.fixture
def vault(record_store, encrypted_store):
    vault = CapsuleVault(record_store, encrypted_store)
    yield vault
    vault.close()


def _capsule(**kwargs):
    defaults = dict(title="For Anna", recipient="Anna", content="Be brave, little one. I love you.")
    defaults.update(kwargs)
    return CapsuleRecord(**defaults)


@pytest.mark.asyncio
async def test_save_seals_content_before_storage(vault, record_store):
    capsule = _capsule()

    stored = await vault.save(capsule)

    assert stored.record_id
    assert stored.is_sealed
    assert stored.word_count == 7
    assert capsule.content == "Be brave, little one. I love you."

    raw = await record_store.get(CAPSULES, stored.record_id)
    assert raw["content"] == ENCRYPTED_SENTINEL
    assert "brave" not in json.dumps(raw)


@pytest.mark.asyncio
async def test_read_content_round_trips(vault):
    stored = await vault.save(_capsule(), passphrase="family")

    loaded = await vault.get(stored.record_id)

    assert await vault.read_content(loaded, passphrase="family") == "Be brave, little one. I love you."


@pytest.mark.asyncio
async def test_wrong_passphrase_reads_sentinel(vault):
    stored = await vault.save(_capsule(), passphrase="family")

    result = await vault.read_content_result(stored, passphrase="guess")

    assert result.failure is DecryptionFailure.AUTHENTICATION_FAILED
    assert is_decryption_sentinel(result.text)


@pytest.mark.asyncio
async def test_malformed_payload_reads_sentinel(vault):
    stored = await vault.save(_capsule())
    stored.encrypted_content = "{broken"

    assert is_decryption_sentinel(await vault.read_content(stored))


@pytest.mark.asyncio
async def test_unencrypted_capsule_is_stored_as_is(vault, record_store):
    stored = await vault.save(_capsule(is_encrypted=False))

    raw = await record_store.get(CAPSULES, stored.record_id)
    assert raw["content"] == "Be brave, little one. I love you."
    assert await vault.read_content(stored) == raw["content"]


@pytest.mark.asyncio
async def test_encryption_feature_off_stores_plaintext(record_store, encrypted_store):
    vault = CapsuleVault(record_store, encrypted_store, FeatureFlags(enable_encryption=False))
    try:
        stored = await vault.save(_capsule())
        assert stored.is_encrypted is False
        assert not stored.is_sealed
    finally:
        vault.close()


@pytest.mark.asyncio
async def test_encryption_failure_stores_nothing(record_store, encrypted_store, monkeypatch):
    vault = CapsuleVault(record_store, encrypted_store)

    def broken(*args, **kwargs):
        raise OSError("disk gone")

    monkeypatch.setattr(encrypted_store, "encrypt", broken)
    try:
        with pytest.raises(StorageError) as exc_info:
            await vault.save(_capsule())
        assert exc_info.value.code == "ENCRYPTION_FAILED"
        assert await record_store.list(CAPSULES) == []
    finally:
        vault.close()


@pytest.mark.asyncio
async def test_title_is_required(vault):
    with pytest.raises(ValidationError):
        await vault.save(_capsule(title="  "))


@pytest.mark.asyncio
async def test_resaving_a_sealed_capsule_does_not_double_encrypt(vault):
    stored = await vault.save(_capsule())
    stored.status = CapsuleStatus.SCHEDULED

    again = await vault.save(stored)

    assert again.record_id == stored.record_id
    assert again.encrypted_content == stored.encrypted_content
    assert await vault.read_content(again) == "Be brave, little one. I love you."


@pytest.mark.asyncio
async def test_capsule_stats(vault):
    await vault.save(_capsule(generation_method=GenerationMethod.AI, voice_model_id="v1"))
    await vault.save(_capsule(is_encrypted=False, status=CapsuleStatus.SCHEDULED))

    stats = await vault.get_capsule_stats()

    assert stats["total"] == 2
    assert stats["ai_generated"] == 1
    assert stats["with_voice"] == 1
    assert stats["encrypted"] == 1
    assert stats["by_status"] == {"draft": 1, "scheduled": 1}


@pytest.mark.asyncio
async def test_delete(vault):
    stored = await vault.save(_capsule())

    assert await vault.delete(stored.record_id) is True
    assert await vault.get(stored.record_id) is None
