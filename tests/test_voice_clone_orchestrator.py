"""Tests for VoiceCloneOrchestrator."""

import asyncio
from datetime import datetime, timedelta

import numpy as np
import pytest

from conftest import FakeVoiceClient, make_sample
from heirloom.models.app_config import FeatureFlags
from heirloom.models.error import RemoteServiceError, UnsupportedOperation, ValidationError
from heirloom.models.service_enums import ServiceStatus
from heirloom.models.voice_model import OriginTier, QualityTier, VoiceModel, VoiceSample
from heirloom.services.record_store import VOICE_MODELS
from heirloom.services.voice_clone_orchestrator import VoiceCloneOrchestrator, generate_local_model_id
from heirloom.utils.audio_analysis import encode_wav


def _orchestrator(record_store, encrypted_store, client=None, features=None):
    return VoiceCloneOrchestrator(client or FakeVoiceClient(), record_store, encrypted_store,
                                  features=features or FeatureFlags())


def _wav(seconds: float, amplitude: int = 8000, rate: int = 8000) -> bytes:
    count = int(seconds * rate)
    if amplitude:
        pcm = (amplitude * np.sin(np.linspace(0, 2 * np.pi * 220 * seconds, count))).astype(np.int16)
    else:
        pcm = np.zeros(count, dtype=np.int16)
    return encode_wav(pcm.tobytes(), rate)


async def _store_model(record_store, model_id, origin, quality, age_days=0, **kwargs):
    model = VoiceModel(id=model_id, name=model_id, origin_tier=origin, quality_tier=quality,
                       created_at=datetime.now() - timedelta(days=age_days), **kwargs)
    await record_store.put(VOICE_MODELS, model_id, model.to_dict())
    return model


# ---------------------------------------------------------------
# Sample validation
# ---------------------------------------------------------------

def test_valid_sample_set(record_store, encrypted_store, samples):
    result = _orchestrator(record_store, encrypted_store).validate_samples(samples)
    assert result.is_valid
    assert result.issues == []


@pytest.mark.parametrize("count", [0, 1, 2])
def test_too_few_samples(record_store, encrypted_store, count):
    result = _orchestrator(record_store, encrypted_store).validate_samples([make_sample()] * count)

    assert not result.is_valid
    assert len(result.issues) == 1
    assert result.issues[0].code == "INSUFFICIENT_SAMPLES"
    assert "At least 3 voice samples" in result.issues[0].message


def test_none_is_too_few(record_store, encrypted_store):
    result = _orchestrator(record_store, encrypted_store).validate_samples(None)
    assert result.issues[0].code == "INSUFFICIENT_SAMPLES"


@pytest.mark.parametrize("bad, code, text", [
    (b"", "SAMPLE_CORRUPTED", "Voice sample 2 is empty or corrupted"),
    (make_sample(999), "SAMPLE_TOO_SHORT", "Voice sample 2 is too short"),
    (make_sample(10 * 1024 * 1024 + 1), "SAMPLE_TOO_LARGE", "Voice sample 2 is too large (max 10MB)"),
    ("not audio", "SAMPLE_CORRUPTED", "Voice sample 2 is empty or corrupted"),
])
def test_first_bad_sample_is_reported(record_store, encrypted_store, bad, code, text):
    batch = [make_sample(), bad, make_sample(999)]

    result = _orchestrator(record_store, encrypted_store).validate_samples(batch)

    assert not result.is_valid
    assert len(result.issues) == 1
    assert result.issues[0].code == code
    assert result.issues[0].message.startswith(text)


def test_size_bounds_are_inclusive(record_store, encrypted_store):
    batch = [make_sample(1000), make_sample(10 * 1024 * 1024), make_sample(1000)]
    assert _orchestrator(record_store, encrypted_store).validate_samples(batch).is_valid


def test_short_and_silent_wavs_only_warn(record_store, encrypted_store):
    batch = [_wav(5.0), _wav(1.0), _wav(5.0, amplitude=0)]

    result = _orchestrator(record_store, encrypted_store).validate_samples(batch)

    assert result.is_valid
    codes = [w.code for w in result.warnings]
    assert "SAMPLE_DURATION_SHORT" in codes
    assert "SAMPLE_SILENT" in codes


# ---------------------------------------------------------------
# Cloning
# ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_remote_clone_success(record_store, encrypted_store, samples):
    client = FakeVoiceClient()
    orchestrator = _orchestrator(record_store, encrypted_store, client)

    model_id = await orchestrator.clone_voice("Grandma's Voice", samples)

    assert model_id == "remote-voice-1"
    model = await orchestrator.get_model(model_id)
    assert model.origin_tier is OriginTier.REMOTE
    assert model.quality_tier is QualityTier.HIGH
    assert model.is_active
    assert model.sample_sizes == [2048, 4096, 8192]
    assert client.calls[0] == ("clone_voice", "Grandma's Voice", 3)


@pytest.mark.asyncio
async def test_remote_failure_falls_back_to_local_model(record_store, encrypted_store, samples):
    orchestrator = _orchestrator(record_store, encrypted_store, FakeVoiceClient(fail_clone=True))

    model_id = await orchestrator.clone_voice("Grandpa", samples)

    assert model_id.startswith("local_")
    model = await orchestrator.get_model(model_id)
    assert model.origin_tier is OriginTier.LOCAL
    assert model.quality_tier is QualityTier.MEDIUM
    assert (await orchestrator.set_active_model(model_id)).id == model_id


@pytest.mark.asyncio
async def test_voice_disabled_skips_remote(record_store, encrypted_store, samples):
    client = FakeVoiceClient()
    orchestrator = _orchestrator(record_store, encrypted_store, client, FeatureFlags(enable_voice=False))

    model_id = await orchestrator.clone_voice("Grandpa", samples)

    assert model_id.startswith("local_")
    assert client.calls == []


@pytest.mark.asyncio
async def test_invalid_input_is_rejected_before_network(record_store, encrypted_store, samples):
    client = FakeVoiceClient()
    orchestrator = _orchestrator(record_store, encrypted_store, client)

    with pytest.raises(ValidationError, match="Voice name is required"):
        await orchestrator.clone_voice("   ", samples)
    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.clone_voice("Grandpa", samples[:2])

    assert exc_info.value.code == "INSUFFICIENT_SAMPLES"
    assert client.calls == []


@pytest.mark.asyncio
async def test_samples_are_stored_encrypted(record_store, encrypted_store, samples):
    orchestrator = _orchestrator(record_store, encrypted_store)

    model_id = await orchestrator.clone_voice("Grandpa", samples)

    raw = await record_store.get(VOICE_MODELS, model_id)
    assert len(raw["sampleBlobs"]) == 3
    assert await orchestrator.get_sample_audio(model_id, 1) == samples[1]
    assert await orchestrator.get_sample_audio(model_id, 3) is None


@pytest.mark.asyncio
async def test_new_clone_becomes_the_only_active_model(record_store, encrypted_store, samples):
    orchestrator = _orchestrator(record_store, encrypted_store)

    first = await orchestrator.clone_voice("First", samples)
    second = await orchestrator.clone_voice("Second", samples)

    assert (await orchestrator.get_active_model()).id == second
    assert not (await orchestrator.get_model(first)).is_active


@pytest.mark.asyncio
async def test_concurrent_clones_are_all_stored(record_store, encrypted_store, samples):
    orchestrator = _orchestrator(record_store, encrypted_store, FakeVoiceClient(fail_clone=True))

    model_ids = await asyncio.gather(*(orchestrator.clone_voice(f"Voice {k}", samples) for k in range(6)))

    models = await orchestrator.get_available_models()
    assert len(set(model_ids)) == 6
    assert {model.id for model in models} == set(model_ids)
    for model_id in model_ids:
        assert await orchestrator.get_model(model_id) is not None
    active = [model.id for model in models if model.is_active]
    assert len(active) == 1
    assert active[0] in model_ids


@pytest.mark.asyncio
async def test_concurrent_selection_keeps_one_active_model(record_store, encrypted_store):
    orchestrator = _orchestrator(record_store, encrypted_store)
    ids = [f"voice-{k}" for k in range(5)]
    for model_id in ids:
        await _store_model(record_store, model_id, OriginTier.REMOTE, QualityTier.HIGH)

    selected = await asyncio.gather(*(orchestrator.set_active_model(model_id) for model_id in ids))

    assert [model.id for model in selected] == ids
    assert all(model.is_active for model in selected)
    models = await orchestrator.get_available_models()
    assert {model.id for model in models} == set(ids)
    assert len([model for model in models if model.is_active]) == 1


@pytest.mark.asyncio
async def test_selecting_unknown_model_changes_nothing(record_store, encrypted_store, samples):
    orchestrator = _orchestrator(record_store, encrypted_store)
    model_id = await orchestrator.clone_voice("Grandma", samples)

    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.set_active_model("missing")

    assert exc_info.value.code == "VOICE_NOT_FOUND"
    assert (await orchestrator.get_active_model()).id == model_id


@pytest.mark.asyncio
async def test_clone_accepts_a_sample_generator(record_store, encrypted_store, samples):
    client = FakeVoiceClient()
    orchestrator = _orchestrator(record_store, encrypted_store, client)

    model_id = await orchestrator.clone_voice("Grandma", (sample for sample in samples))

    model = await orchestrator.get_model(model_id)
    assert model.sample_sizes == [2048, 4096, 8192]
    assert client.calls == [("clone_voice", "Grandma", 3)]


def test_local_model_id_format():
    model_id = generate_local_model_id()
    prefix, millis, suffix = model_id.split("_")
    assert prefix == "local"
    assert millis.isdigit()
    assert len(suffix) == 9


# ---------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_synthesis_with_remote_model(record_store, encrypted_store, samples):
    client = FakeVoiceClient(audio=b"mp3-bytes")
    orchestrator = _orchestrator(record_store, encrypted_store, client)
    model_id = await orchestrator.clone_voice("Grandma", samples)

    assert await orchestrator.synthesize_speech("Hello dear") == b"mp3-bytes"
    assert client.calls[-1] == ("generate_speech", "Hello dear", model_id)


@pytest.mark.asyncio
async def test_local_model_cannot_synthesize(record_store, encrypted_store, samples):
    client = FakeVoiceClient(fail_clone=True)
    orchestrator = _orchestrator(record_store, encrypted_store, client)
    model_id = await orchestrator.clone_voice("Grandma", samples)
    before = len(client.network_calls())

    with pytest.raises(UnsupportedOperation) as exc_info:
        await orchestrator.synthesize_speech("Hello dear", model_id)

    assert "Local voice synthesis is not yet available" in exc_info.value.user_message
    assert exc_info.value.code == "VOICE_SYNTHESIS_UNSUPPORTED"
    assert len(client.network_calls()) == before


@pytest.mark.asyncio
@pytest.mark.parametrize("client", [FakeVoiceClient(audio=b""), FakeVoiceClient(fail_speech=True)])
async def test_synthesis_failures_raise_remote_error(record_store, encrypted_store, samples, client):
    orchestrator = _orchestrator(record_store, encrypted_store, client)
    await orchestrator.clone_voice("Grandma", samples)

    with pytest.raises(RemoteServiceError) as exc_info:
        await orchestrator.synthesize_speech("Hello")

    assert exc_info.value.code == "VOICE_SYNTHESIS_FAILED"


@pytest.mark.asyncio
async def test_synthesis_text_validation(record_store, encrypted_store):
    orchestrator = _orchestrator(record_store, encrypted_store)

    with pytest.raises(ValidationError, match="Text is required"):
        await orchestrator.synthesize_speech("  ")
    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.synthesize_speech("a" * 5001)
    assert exc_info.value.code == "TEXT_TOO_LONG"
    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.synthesize_speech("Hello", "missing")
    assert exc_info.value.code == "VOICE_NOT_FOUND"


# ---------------------------------------------------------------
# Model management
# ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_best_available_model_preference(record_store, encrypted_store):
    orchestrator = _orchestrator(record_store, encrypted_store)
    assert await orchestrator.get_best_available_model() is None

    await _store_model(record_store, "local-old", OriginTier.LOCAL, QualityTier.MEDIUM, age_days=3)
    assert (await orchestrator.get_best_available_model()).id == "local-old"

    await _store_model(record_store, "remote-low", OriginTier.REMOTE, QualityTier.LOW, age_days=2)
    assert (await orchestrator.get_best_available_model()).id == "remote-low"

    await _store_model(record_store, "remote-medium", OriginTier.REMOTE, QualityTier.MEDIUM, age_days=1)
    assert (await orchestrator.get_best_available_model()).id == "remote-medium"

    await _store_model(record_store, "remote-high", OriginTier.REMOTE, QualityTier.HIGH)
    assert (await orchestrator.get_best_available_model()).id == "remote-high"


@pytest.mark.asyncio
async def test_validate_model(record_store, encrypted_store):
    client = FakeVoiceClient()
    orchestrator = _orchestrator(record_store, encrypted_store, client)
    client.remote_voices.add("kept")
    await _store_model(record_store, "kept", OriginTier.REMOTE, QualityTier.HIGH,
                       sample_refs=["a", "b", "c"], sample_sizes=[2000, 2000, 2000])
    await _store_model(record_store, "thin", OriginTier.LOCAL, QualityTier.MEDIUM,
                       sample_refs=["a"], sample_sizes=[10])

    assert (await orchestrator.validate_model("kept")).is_valid

    thin = await orchestrator.validate_model("thin")
    assert {issue.code for issue in thin.issues} == {"INSUFFICIENT_SAMPLES", "SAMPLE_TOO_SHORT"}

    missing = await orchestrator.validate_model("nope")
    assert missing.issues[0].code == "VOICE_NOT_FOUND"


@pytest.mark.asyncio
async def test_remote_check_without_key_is_a_warning(record_store, encrypted_store):
    orchestrator = _orchestrator(record_store, encrypted_store, FakeVoiceClient(configured=False))
    await _store_model(record_store, "r", OriginTier.REMOTE, QualityTier.HIGH,
                       sample_refs=["a", "b", "c"], sample_sizes=[2000, 2000, 2000])

    result = await orchestrator.validate_model("r")

    assert result.is_valid
    assert result.warnings[0].code == "REMOTE_UNVERIFIED"


@pytest.mark.asyncio
async def test_cleanup_removes_models_missing_remotely(record_store, encrypted_store):
    client = FakeVoiceClient()
    orchestrator = _orchestrator(record_store, encrypted_store, client)
    client.remote_voices.add("alive")
    await _store_model(record_store, "alive", OriginTier.REMOTE, QualityTier.HIGH,
                       sample_refs=["a", "b", "c"], sample_sizes=[2000, 2000, 2000])
    await _store_model(record_store, "gone", OriginTier.REMOTE, QualityTier.HIGH,
                       sample_refs=["a", "b", "c"], sample_sizes=[2000, 2000, 2000])

    outcome = await orchestrator.cleanup_models()

    assert outcome == {"cleaned": 1, "errors": []}
    assert [m.id for m in await orchestrator.get_available_models()] == ["alive"]


@pytest.mark.asyncio
async def test_delete_model_removes_remote_voice(record_store, encrypted_store, samples):
    client = FakeVoiceClient()
    orchestrator = _orchestrator(record_store, encrypted_store, client)
    model_id = await orchestrator.clone_voice("Grandma", samples)

    assert await orchestrator.delete_model(model_id) is True
    assert ("delete_voice", model_id) in client.calls
    assert await orchestrator.delete_model(model_id) is False


@pytest.mark.asyncio
async def test_model_stats(record_store, encrypted_store):
    orchestrator = _orchestrator(record_store, encrypted_store)
    await _store_model(record_store, "a", OriginTier.REMOTE, QualityTier.HIGH, is_active=True)
    await _store_model(record_store, "b", OriginTier.LOCAL, QualityTier.MEDIUM)

    stats = await orchestrator.get_model_stats()

    assert stats == {
        "total": 2,
        "active": 1,
        "remote_models": 1,
        "local_models": 1,
        "quality_distribution": {"high": 1, "medium": 1},
    }


@pytest.mark.asyncio
async def test_health_and_stop(record_store, encrypted_store):
    client = FakeVoiceClient(configured=False)
    orchestrator = _orchestrator(record_store, encrypted_store, client)

    healthy, error = await orchestrator.health_check()
    assert not healthy
    assert error.code == "API_KEY_MISSING"

    await orchestrator.start()
    await orchestrator.stop()
    assert client.closed
    assert orchestrator.status is ServiceStatus.STOPPED


def test_voice_sample_wrapping():
    sample = VoiceSample.coerce(b"abc", 2)
    assert sample.name == "sample_2.wav"
    assert VoiceSample.coerce(sample) is sample
