"""Tests for SampleRecorder with an in-memory audio backend."""

import asyncio
import itertools
import time

import pytest

from heirloom.models.app_config import VoiceConfig
from heirloom.models.error import HeirloomError, ValidationError
from heirloom.services.voice_recorder import SampleRecorder
from heirloom.utils.audio_analysis import analyze_sample


class FakeStream:
    def __init__(self, fail_after=None, read_error=None):
        self.reads = 0
        self.fail_after = fail_after
        self.read_error = read_error or OSError("Input overflowed")
        self.stopped = False
        self.closed = False

    def read(self, frames, exception_on_overflow=True):
        self.reads += 1
        if self.fail_after is not None and self.reads > self.fail_after:
            raise self.read_error
        time.sleep(0.002)
        return b"\x10\x00" * frames

    def stop_stream(self):
        self.stopped = True

    def close(self):
        self.closed = True


class FakeBackend:
    def __init__(self, stream=None, open_error=None):
        self.stream = stream or FakeStream()
        self.open_error = open_error
        self.open_kwargs = None
        self.terminated = False

    def get_format_from_width(self, width):
        return 8

    def open(self, **kwargs):
        self.open_kwargs = kwargs
        if self.open_error is not None:
            raise self.open_error
        return self.stream

    def terminate(self):
        self.terminated = True


def _released(backend):
    return backend.terminated and (backend.open_error is not None or backend.stream.closed)


@pytest.fixture
def config():
    return VoiceConfig(sample_rate=16000, max_recording_duration=600)


@pytest.fixture
def make_recorder(config):
    recorders = []

    def _make(backend, **kwargs):
        recorder = SampleRecorder(kwargs.pop("config", config), backend_factory=lambda: backend, **kwargs)
        recorders.append(recorder)
        return recorder

    yield _make
    for recorder in recorders:
        recorder.close()


async def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------
# Recording
# ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_stop_returns_wav_and_releases_device(make_recorder):
    backend = FakeBackend()
    recorder = make_recorder(backend)

    await recorder.start()
    assert recorder.is_recording
    await _wait_for(lambda: backend.stream.reads >= 3)
    sample = await recorder.stop()

    assert not recorder.is_recording
    assert _released(backend)
    assert backend.stream.stopped
    assert backend.open_kwargs["rate"] == 16000
    assert backend.open_kwargs["channels"] == 1
    assert backend.open_kwargs["input"] is True
    assert sample.mime_type == "audio/wav"
    analysis = analyze_sample(sample.data)
    assert analysis.sample_rate == 16000
    assert sample.duration == pytest.approx(analysis.duration)


@pytest.mark.asyncio
async def test_auto_stop_at_max_duration(make_recorder):
    backend = FakeBackend()
    ticks = itertools.count()
    recorder = make_recorder(backend, config=VoiceConfig(max_recording_duration=3), clock=lambda: next(ticks))

    await recorder.start()
    await _wait_for(lambda: not recorder.is_recording)

    assert recorder.auto_stopped
    assert _released(backend)
    assert backend.stream.reads == 3
    sample = await recorder.stop()
    assert sample.size > 3 * 2048


@pytest.mark.asyncio
async def test_short_recording_is_rejected(make_recorder):
    backend = FakeBackend()
    recorder = make_recorder(backend, config=VoiceConfig(min_file_size=10 ** 8))

    await recorder.start()
    with pytest.raises(ValidationError) as exc_info:
        await recorder.stop()

    assert exc_info.value.code == "RECORDING_TOO_SHORT"
    assert _released(backend)


@pytest.mark.asyncio
async def test_device_error_while_recording_releases(make_recorder):
    backend = FakeBackend(FakeStream(fail_after=2))
    recorder = make_recorder(backend)

    await recorder.start()
    await _wait_for(lambda: backend.stream.reads > 2)
    with pytest.raises(HeirloomError) as exc_info:
        await recorder.stop()

    assert exc_info.value.code == "MICROPHONE_UNAVAILABLE"
    assert _released(backend)


@pytest.mark.asyncio
async def test_read_failure_releases_device_without_stop(make_recorder):
    stream = FakeStream(fail_after=2, read_error=OSError("device unplugged"))
    backend = FakeBackend(stream)
    recorder = make_recorder(backend)

    await recorder.start()
    await _wait_for(lambda: not recorder.is_recording)

    assert stream.reads == 3
    assert stream.closed
    assert backend.terminated

    with pytest.raises(HeirloomError) as exc_info:
        await recorder.stop()
    assert exc_info.value.code == "MICROPHONE_UNAVAILABLE"
    assert "device unplugged" in exc_info.value.technical_details

    with pytest.raises(ValidationError):
        await recorder.stop()


@pytest.mark.asyncio
async def test_open_failure_reports_missing_microphone(make_recorder):
    backend = FakeBackend(open_error=OSError("Invalid input device"))
    recorder = make_recorder(backend)

    with pytest.raises(HeirloomError) as exc_info:
        await recorder.start()

    assert exc_info.value.code == "MICROPHONE_UNAVAILABLE"
    assert backend.terminated
    assert not recorder.is_recording


@pytest.mark.asyncio
async def test_context_exit_releases_device(make_recorder):
    backend = FakeBackend()
    recorder = make_recorder(backend)

    async with recorder:
        assert recorder.is_recording

    assert not recorder.is_recording
    assert _released(backend)


@pytest.mark.asyncio
async def test_context_exit_on_exception_releases_device(make_recorder):
    backend = FakeBackend()
    recorder = make_recorder(backend)

    with pytest.raises(RuntimeError):
        async with recorder:
            raise RuntimeError("user closed the window")

    assert _released(backend)


@pytest.mark.asyncio
async def test_state_errors(make_recorder):
    recorder = make_recorder(FakeBackend())

    with pytest.raises(ValidationError) as exc_info:
        await recorder.stop()
    assert exc_info.value.code == "NOT_RECORDING"

    await recorder.start()
    with pytest.raises(ValidationError) as exc_info:
        await recorder.start()
    assert exc_info.value.code == "RECORDING_IN_PROGRESS"
    await recorder.cancel()
    assert not recorder.is_recording
