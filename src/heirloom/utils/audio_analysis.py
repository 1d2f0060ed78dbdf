"""
Audio Sample Analysis

Reads WAV buffers with the standard ``wave`` module and measures them with
numpy. Buffers in other containers (webm, mp3) report an unknown duration and
are size-checked only.
"""

import io
import wave
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np


logger = logging.getLogger(__name__)

# RMS below this (on a 0..1 scale) is treated as silence
SILENCE_RMS_THRESHOLD = 0.001

_SAMPLE_DTYPES = {1: np.uint8, 2: np.int16, 4: np.int32}


@dataclass
class SampleAnalysis:
    """
    Measured properties of a WAV sample.

    Attributes:
        duration: Length in seconds
        sample_rate: Frames per second
        channels: Channel count
        rms: Root-mean-square level normalized to 0..1
    """
    duration: float
    sample_rate: int
    channels: int
    rms: float

    @property
    def is_silent(self) -> bool:
        return self.rms < SILENCE_RMS_THRESHOLD


def is_wav(data: bytes) -> bool:
    return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE"


def analyze_sample(data: bytes) -> Optional[SampleAnalysis]:
    """
    Analyze a WAV buffer.

    Args:
        data: Audio bytes

    Returns:
        Optional[SampleAnalysis]: Measurements, or None if the buffer is not a
        readable WAV file
    """
    if not data or not is_wav(data):
        return None

    try:
        with wave.open(io.BytesIO(data), "rb") as wav:
            frames = wav.getnframes()
            rate = wav.getframerate()
            channels = wav.getnchannels()
            width = wav.getsampwidth()
            raw = wav.readframes(frames)
    except (wave.Error, EOFError) as e:
        logger.debug(f"Could not parse WAV sample: {e}")
        return None

    if rate <= 0:
        return None

    duration = frames / float(rate)
    dtype = _SAMPLE_DTYPES.get(width)
    if dtype is None or not raw:
        return SampleAnalysis(duration=duration, sample_rate=rate, channels=channels, rms=0.0)

    usable = len(raw) - (len(raw) % width)
    samples = np.frombuffer(raw[:usable], dtype=dtype).astype(np.float64)
    if width == 1:
        # 8-bit PCM is unsigned
        samples = samples - 128.0
    full_scale = float(2 ** (8 * width - 1))
    rms = float(np.sqrt(np.mean(np.square(samples / full_scale)))) if samples.size else 0.0

    return SampleAnalysis(duration=duration, sample_rate=rate, channels=channels, rms=rms)


def sample_duration(data: bytes) -> Optional[float]:
    """Duration in seconds of a WAV buffer, or None when unknown."""
    analysis = analyze_sample(data)
    return analysis.duration if analysis else None


def encode_wav(pcm: bytes, sample_rate: int, channels: int = 1, sample_width: int = 2) -> bytes:
    """
    Wrap raw PCM frames in a WAV container.

    Args:
        pcm: Interleaved PCM frames
        sample_rate: Frames per second
        channels: Channel count
        sample_width: Bytes per sample

    Returns:
        bytes: WAV file contents
    """
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()
