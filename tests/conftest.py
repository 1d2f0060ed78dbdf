"""Shared fakes and fixtures for the Living Heirloom tests."""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from heirloom.models.app_config import AIConfig, FeatureFlags, SecurityConfig, StorageConfig, VoiceConfig
from heirloom.models.error import ErrorSeverity, NetworkError
from heirloom.services.encrypted_store import EncryptedStore, KeyStore
from heirloom.services.record_store import JsonRecordStore


# ---------------------------------------------------------------
# Inference fakes
# ---------------------------------------------------------------

class FakeEngine:
    """Loaded-model stand-in; answers are returned (or raised) in order."""

    def __init__(self, answers=None):
        self.answers: List = list(answers or [])
        self.calls: List[dict] = []
        self.unloaded = False

    async def complete(self, messages, temperature, max_tokens):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if not self.answers:
            return ""
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def unload(self):
        self.unloaded = True


class FakeRuntime:
    """
    Progressive loader stand-in.

    Reports each fraction in ``steps``, waiting ``delay`` seconds before each
    one and on ``gate`` (if set) before finishing.
    """

    def __init__(self, engine: Optional[FakeEngine] = None, steps=(0.1, 0.5, 0.9, 1.0),
                 delay: float = 0.0, error: Optional[Exception] = None, gate: Optional[asyncio.Event] = None):
        self.engine = engine or FakeEngine(["Hello"])
        self.steps = steps
        self.delay = delay
        self.error = error
        self.gate = gate
        self.load_count = 0

    async def load(self, model_id, progress_callback):
        self.load_count += 1
        for fraction in self.steps:
            await asyncio.sleep(self.delay)
            progress_callback(fraction, f"step {fraction}")
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.engine


# ---------------------------------------------------------------
# Voice service fake
# ---------------------------------------------------------------

class FakeVoiceClient:
    """Records calls; failures are switched on per operation."""

    def __init__(self, configured: bool = True, fail_clone: bool = False, audio: bytes = b"ID3-audio",
                 fail_speech: bool = False):
        self.configured = configured
        self.fail_clone = fail_clone
        self.fail_speech = fail_speech
        self.audio = audio
        self.calls: List[tuple] = []
        self.remote_voices = set()
        self.closed = False
        self._next = 0

    @property
    def is_configured(self):
        return self.configured

    def _network_error(self):
        return NetworkError(severity=ErrorSeverity.ERROR, code="RETRY_EXHAUSTED",
                            user_message="Network connectivity issues")

    def clone_voice(self, name, samples):
        self.calls.append(("clone_voice", name, len(samples)))
        if self.fail_clone:
            raise self._network_error()
        self._next += 1
        voice_id = f"remote-voice-{self._next}"
        self.remote_voices.add(voice_id)
        return voice_id

    def generate_speech(self, text, voice_id):
        self.calls.append(("generate_speech", text, voice_id))
        if self.fail_speech:
            raise self._network_error()
        return self.audio

    def voice_exists(self, voice_id):
        self.calls.append(("voice_exists", voice_id))
        return voice_id in self.remote_voices

    def delete_voice(self, voice_id):
        self.calls.append(("delete_voice", voice_id))
        self.remote_voices.discard(voice_id)

    def close(self):
        self.closed = True

    def network_calls(self):
        return [call for call in self.calls if call[0] in ("clone_voice", "generate_speech")]


# ---------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------

def make_sample(size: int = 2048, fill: bytes = b"\x01") -> bytes:
    return fill * size


@pytest.fixture
def samples():
    return [make_sample(2048), make_sample(4096, b"\x02"), make_sample(8192, b"\x03")]


@pytest.fixture
def ai_config():
    return AIConfig(timeout_ms=2000, warmup_enabled=False)


@pytest.fixture
def features():
    return FeatureFlags()


@pytest.fixture
def voice_config():
    return VoiceConfig()


@pytest.fixture
def security_config(tmp_path):
    return SecurityConfig(iterations=1000, key_file=str(tmp_path / "keys" / "content.key"))


@pytest.fixture
def encrypted_store(security_config):
    return EncryptedStore(security_config, KeyStore(security_config.key_file, security_config.key_length))


@pytest.fixture
def record_store(tmp_path):
    store = JsonRecordStore(StorageConfig(data_directory=str(tmp_path / "data")))
    yield store
    store.close()
