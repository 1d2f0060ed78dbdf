"""
Voice Sample Recorder

Captures a voice sample from the default microphone with PyAudio. The input
stream is held only while recording and is released on stop, on error and
on context exit.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from heirloom.models.app_config import VoiceConfig
from heirloom.models.error import HeirloomError, ValidationError
from heirloom.models.voice_model import VoiceSample
from heirloom.utils.audio_analysis import encode_wav
from heirloom.utils.error_handler import ErrorCode, create_error


SAMPLE_WIDTH = 2  # 16-bit PCM


def _default_backend() -> Any:
    import pyaudio  # optional "audio" extra
    return pyaudio.PyAudio()


class SampleRecorder:
    """
    Records one voice sample at a time.

    Usage:
        async with SampleRecorder(config) as recorder:
            await asyncio.sleep(10)
            sample = await recorder.stop()

    Attributes:
        config: Sample rate, channel count and size/duration bounds
        is_recording: Whether the input stream is currently open
    """

    def __init__(
        self,
        config: Optional[VoiceConfig] = None,
        backend_factory: Optional[Callable[[], Any]] = None,
        chunk_size: int = 1024,
        clock: Callable[[], float] = time.monotonic
    ):
        self.config = config or VoiceConfig()
        self._backend_factory = backend_factory or _default_backend
        self.chunk_size = chunk_size
        self._clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

        self._backend = None
        self._stream = None
        self._frames: List[bytes] = []
        self._started_at: Optional[float] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._capture_task: Optional[asyncio.Task] = None
        self._capture_error: Optional[Exception] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="SampleRecorder")
        self.auto_stopped = False

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def _open_sync(self) -> None:
        backend = self._backend_factory()
        try:
            stream = backend.open(
                format=backend.get_format_from_width(SAMPLE_WIDTH),
                channels=self.config.channel_count,
                rate=self.config.sample_rate,
                input=True,
                frames_per_buffer=self.chunk_size
            )
        except Exception:
            backend.terminate()
            raise
        self._backend = backend
        self._stream = stream

    def _read_sync(self) -> bytes:
        return self._stream.read(self.chunk_size, exception_on_overflow=False)

    def _release_sync(self) -> None:
        stream, backend = self._stream, self._backend
        self._stream = None
        self._backend = None
        try:
            if stream is not None:
                try:
                    stream.stop_stream()
                finally:
                    stream.close()
        finally:
            if backend is not None:
                backend.terminate()
        self.logger.debug("Microphone released")

    async def _run(self, func):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func)

    async def start(self) -> None:
        """
        Open the microphone and begin capturing.

        Raises:
            ValidationError: A recording is already in progress
            HeirloomError: The microphone could not be opened (MICROPHONE_UNAVAILABLE)
        """
        if self.is_recording:
            raise ValidationError("A recording is already in progress", code="RECORDING_IN_PROGRESS")

        try:
            await self._run(self._open_sync)
        except Exception as e:
            self.logger.error(f"Could not open microphone: {e}")
            raise create_error(ErrorCode.MICROPHONE_UNAVAILABLE.value, technical_details=str(e)) from e

        self._frames = []
        self.auto_stopped = False
        self._capture_error = None
        self._started_at = self._clock()
        self._stop_event = asyncio.Event()
        self._capture_task = asyncio.create_task(self._capture())
        self.logger.info(f"Recording started ({self.config.sample_rate} Hz, {self.config.channel_count} ch)")

    async def _capture(self) -> None:
        """Read chunks until stopped. A read failure releases the device and is kept for stop()."""
        try:
            while not self._stop_event.is_set():
                chunk = await self._run(self._read_sync)
                self._frames.append(chunk)
                if self.elapsed >= self.config.max_recording_duration:
                    self.logger.info(f"Maximum recording length reached ({self.config.max_recording_duration:g}s)")
                    self.auto_stopped = True
                    await self._run(self._release_sync)
                    return
        except Exception as e:
            self.logger.error(f"Microphone read failed: {e}")
            self._capture_error = e
            await self._run(self._release_sync)

    async def _finish_capture(self) -> None:
        """Stop the capture loop and release the device whatever happens."""
        try:
            if self._stop_event is not None:
                self._stop_event.set()
            if self._capture_task is not None:
                await self._capture_task
        finally:
            self._capture_task = None
            self._stop_event = None
            if self.is_recording:
                await self._run(self._release_sync)

    async def stop(self) -> VoiceSample:
        """
        Stop recording and return the captured sample.

        Returns:
            VoiceSample: 16-bit PCM WAV

        Raises:
            ValidationError: Nothing is being recorded, or the result is outside the size bounds
            HeirloomError: The device failed while recording
        """
        if not self.is_recording and self._capture_task is None:
            raise ValidationError("No recording in progress", code="NOT_RECORDING")

        try:
            await self._finish_capture()
        except HeirloomError:
            raise
        except Exception as e:
            self.logger.error(f"Recording failed: {e}")
            raise create_error(ErrorCode.MICROPHONE_UNAVAILABLE.value, technical_details=str(e)) from e

        error, self._capture_error = self._capture_error, None
        if error is not None:
            self._frames = []
            raise create_error(ErrorCode.MICROPHONE_UNAVAILABLE.value, technical_details=str(error)) from error

        pcm = b"".join(self._frames)
        self._frames = []
        frame_bytes = SAMPLE_WIDTH * self.config.channel_count
        duration = len(pcm) / float(self.config.sample_rate * frame_bytes)
        data = encode_wav(pcm, self.config.sample_rate, self.config.channel_count, SAMPLE_WIDTH)

        if len(data) < self.config.min_file_size:
            raise ValidationError("Recording is too short for quality cloning", field="recording",
                                  code=ErrorCode.RECORDING_TOO_SHORT.value)
        if len(data) > self.config.max_file_size:
            max_mb = round(self.config.max_file_size / 1024 / 1024)
            raise ValidationError(f"Recording is too large (max {max_mb}MB)", field="recording",
                                  code="SAMPLE_TOO_LARGE")

        self.logger.info(f"Recording stopped: {duration:.1f}s, {len(data)} bytes")
        return VoiceSample(data=data, name=f"recording_{int(time.time() * 1000)}.wav",
                           mime_type="audio/wav", duration=duration)

    async def cancel(self) -> None:
        """Discard the current recording and release the microphone."""
        try:
            await self._finish_capture()
        finally:
            self._frames = []
            self._capture_error = None

    async def __aenter__(self) -> 'SampleRecorder':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.is_recording or self._capture_task is not None:
            await self.cancel()

    def close(self) -> None:
        self._executor.shutdown(wait=False)
