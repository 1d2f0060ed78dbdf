"""
Model Lifecycle Manager

Owns the inference runtime: progressive load with progress broadcasting,
readiness, the load timeout, warm-up and unload.

State Machine:
    UNLOADED -> DOWNLOADING -> INITIALIZING -> READY
    any state -> ERROR
    ERROR -> UNLOADED (reset/unload only)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from PyQt6.QtCore import QObject, pyqtSignal
from requests.exceptions import ConnectionError as RequestsConnectionError, Timeout as RequestsTimeout

from heirloom.models.app_config import AIConfig
from heirloom.models.error import (
    HeirloomError, ErrorSeverity, ModelTimeoutError, NetworkError, InsufficientResources
)
from heirloom.models.service_enums import ModelState, ProgressStage, ServiceStatus
from heirloom.services.core.base_service import BaseService
from heirloom.services.integrations.inference_runtime import ChatMessage, InferenceEngine, InferenceRuntime
from heirloom.utils.timeout import run_with_timeout


@dataclass(frozen=True)
class ProgressEvent:
    """Model loading progress broadcast to subscribers."""
    fraction: float
    message: str
    stage: ProgressStage


class ProgressNotifier(QObject):
    """
    System-wide progress channel.

    Components that cannot hold a reference to the manager connect to
    ``progress``; the manager is handed the notifier at bootstrap.
    """
    progress = pyqtSignal(object)


ProgressSubscriber = Callable[[ProgressEvent], None]

READY_MESSAGE = "AI ready for conversations!"
STARTING_MESSAGE = "Initializing AI..."


def progress_message(fraction: float) -> str:
    """Message text for a loading fraction."""
    if fraction < 0.2:
        return "Downloading AI model files..."
    if fraction < 0.5:
        return "Processing model components..."
    if fraction < 0.8:
        return "Preparing model for use..."
    return "Finalizing AI initialization..."


def classify_load_error(error: Exception) -> HeirloomError:
    """
    Map a load failure to the error kind surfaced to callers.

    Args:
        error: Failure raised while loading

    Returns:
        HeirloomError: ModelTimeoutError, NetworkError, InsufficientResources or
        a generic MODEL_LOAD_FAILED error
    """
    text = str(error).lower()

    if isinstance(error, ModelTimeoutError) or "timeout" in text or "timed out" in text:
        if isinstance(error, ModelTimeoutError):
            return error
        return ModelTimeoutError(
            severity=ErrorSeverity.WARNING,
            code="MODEL_LOAD_TIMEOUT",
            user_message="AI initialization timed out",
            technical_details=str(error),
            suggested_action="Check your connection and try again"
        )

    if isinstance(error, (MemoryError, InsufficientResources)) or "memory" in text:
        return InsufficientResources(
            severity=ErrorSeverity.ERROR,
            code="MODEL_MEMORY_ERROR",
            user_message="Insufficient memory for AI",
            technical_details=str(error) or error.__class__.__name__,
            suggested_action="Close other applications and try again"
        )

    if isinstance(error, (NetworkError, RequestsConnectionError, RequestsTimeout)) or "network" in text:
        return NetworkError(
            severity=ErrorSeverity.ERROR,
            code="NETWORK_ERROR",
            user_message="Network error loading AI",
            technical_details=str(error),
            suggested_action="Check your internet connection and try again"
        )

    return HeirloomError(
        severity=ErrorSeverity.ERROR,
        code="MODEL_LOAD_FAILED",
        user_message="AI unavailable",
        technical_details=str(error),
        suggested_action="Templates will be used instead"
    )


class ModelLifecycleManager(BaseService):
    """
    Single owner of the inference runtime for the process.

    ``initialize()`` is idempotent and de-duplicated: concurrent callers attach
    to one in-flight load. A load that exceeds the configured timeout leaves
    the manager in ERROR with no in-flight marker, so the next call starts a
    clean attempt.
    """

    def __init__(self, runtime: InferenceRuntime, config: Optional[AIConfig] = None,
                 notifier: Optional[ProgressNotifier] = None):
        """
        Initialize the manager.

        Args:
            runtime: Progressive model loader
            config: Model name, timeout and warm-up settings
            notifier: Optional system-wide progress channel
        """
        super().__init__("ModelLifecycleManager")
        self.runtime = runtime
        self.config = config or AIConfig()
        self.notifier = notifier

        self._state = ModelState.UNLOADED
        self._engine: Optional[InferenceEngine] = None
        self._init_task: Optional[asyncio.Task] = None
        self._subscribers: List[ProgressSubscriber] = []
        self._last_error: Optional[HeirloomError] = None
        self._load_time_seconds: Optional[float] = None

    # State

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def last_error(self) -> Optional[HeirloomError]:
        return self._last_error

    def is_ready(self) -> bool:
        """Pure read of readiness."""
        return self._state == ModelState.READY

    def is_loading(self) -> bool:
        return self._init_task is not None and not self._init_task.done()

    def _set_state(self, new_state: ModelState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        if not old_state.can_transition_to(new_state):
            raise RuntimeError(f"Illegal model state transition {old_state.value} -> {new_state.value}")
        self._state = new_state
        self.logger.info(f"Model state: {old_state.value} -> {new_state.value}")

    # Progress broadcasting

    def on_progress(self, callback: ProgressSubscriber) -> Callable[[], None]:
        """
        Register a progress subscriber.

        Args:
            callback: Called synchronously with each ProgressEvent

        Returns:
            Callable[[], None]: Unsubscribe handle; calling it twice is harmless
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, fraction: float, message: str, stage: ProgressStage) -> None:
        event = ProgressEvent(fraction=fraction, message=message, stage=stage)
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                self.logger.error(f"Error in progress callback: {e}")

        if self.notifier is not None:
            self.notifier.progress.emit(event)

    def _on_runtime_progress(self, fraction: float, text: str = "") -> None:
        fraction = min(1.0, max(0.0, float(fraction)))
        if fraction >= 0.8 and self._state == ModelState.DOWNLOADING:
            self._set_state(ModelState.INITIALIZING)

        stage = ProgressStage.DOWNLOADING if fraction < 0.8 else ProgressStage.LOADING
        self.logger.debug(f"Runtime progress {fraction:.2f}: {text}")
        self._notify(fraction, progress_message(fraction), stage)

    # Lifecycle

    async def initialize(self) -> None:
        """
        Load the model if it is not loaded yet.

        Returns immediately when READY. Concurrent callers share the in-flight
        load; every caller observes its outcome.

        Raises:
            ModelTimeoutError: Load exceeded the configured timeout
            InsufficientResources: Runtime ran out of memory
            NetworkError: Model files could not be fetched
            HeirloomError: Any other load failure
        """
        if self.is_ready():
            return

        if self._init_task is None:
            if self._state == ModelState.ERROR:
                self._set_state(ModelState.UNLOADED)
            self._init_task = asyncio.get_running_loop().create_task(self._do_initialize())

        task = self._init_task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise HeirloomError(
                    severity=ErrorSeverity.WARNING,
                    code="MODEL_LOAD_CANCELLED",
                    user_message="AI initialization was cancelled",
                    suggested_action="Try loading the AI again"
                )
            raise

    async def _do_initialize(self) -> None:
        task = asyncio.current_task()
        start_time = time.time()
        try:
            self._last_error = None
            self._set_state(ModelState.DOWNLOADING)
            self._notify(0.0, STARTING_MESSAGE, ProgressStage.DOWNLOADING)

            engine = await run_with_timeout(
                self.runtime.load(self.config.model_name, self._on_runtime_progress),
                self.config.timeout_seconds,
                message="AI initialization timed out"
            )

            if self._state == ModelState.DOWNLOADING:
                self._set_state(ModelState.INITIALIZING)
            self._engine = engine
            self._set_state(ModelState.READY)
            self._load_time_seconds = time.time() - start_time

            self._notify(1.0, READY_MESSAGE, ProgressStage.READY)
            self.logger.info(f"Model {self.config.model_name} ready in {self._load_time_seconds:.2f}s")

            if self.config.warmup_enabled:
                await self._warm_up()

        except Exception as e:
            error = classify_load_error(e)
            self._last_error = error
            self._engine = None
            self._set_state(ModelState.ERROR)
            self._notify(0.0, error.user_message, ProgressStage.ERROR)
            self.logger.error(f"Failed to initialize model {self.config.model_name}: {e}")
            if error is e:
                raise
            raise error from e

        finally:
            if self._init_task is task:
                self._init_task = None

    async def _warm_up(self) -> None:
        try:
            await self._engine.complete([ChatMessage.user("Hello")], temperature=0.1, max_tokens=5)
            self.logger.info("AI model warmed up successfully")
        except Exception as e:
            self.logger.warning(f"AI model warm-up failed, but initialization succeeded: {e}")

    async def complete(self, messages: List[ChatMessage], temperature: float, max_tokens: int) -> str:
        """
        Run one completion on the loaded model.

        Raises:
            HeirloomError: If the model is not READY or the call fails
        """
        if not self.is_ready() or self._engine is None:
            raise HeirloomError(
                severity=ErrorSeverity.INFO,
                code="MODEL_NOT_READY",
                user_message="The AI model is not ready"
            )
        return await self._engine.complete(messages, temperature=temperature, max_tokens=max_tokens)

    async def unload(self) -> None:
        """Release the runtime handle and return to UNLOADED, abandoning any in-flight load."""
        task = self._init_task
        self._init_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass

        engine = self._engine
        self._engine = None
        if engine is not None:
            try:
                await engine.unload()
            except Exception as e:
                self.logger.warning(f"Error releasing model handle: {e}")

        if self._state != ModelState.UNLOADED:
            self._set_state(ModelState.UNLOADED)
        self._load_time_seconds = None

    async def reset(self) -> None:
        """Clear an ERROR state so the next initialize starts fresh."""
        await self.unload()
        self._last_error = None

    # BaseService

    async def start(self) -> bool:
        await self._update_status(ServiceStatus.STARTING)
        try:
            await self.initialize()
        except HeirloomError:
            await self._update_status(ServiceStatus.ERROR)
            return False
        await self._update_status(ServiceStatus.RUNNING)
        return True

    async def stop(self) -> bool:
        await self._update_status(ServiceStatus.STOPPING)
        await self.unload()
        await self._update_status(ServiceStatus.STOPPED)
        return True

    async def health_check(self) -> tuple[bool, Optional[HeirloomError]]:
        if self.is_ready():
            return True, None
        return False, self._last_error

    def get_status_info(self):
        info = super().get_status_info()
        info.update({
            "model_name": self.config.model_name,
            "model_state": self._state.value,
            "is_loading": self.is_loading(),
            "load_time_seconds": self._load_time_seconds,
            "last_error": self._last_error.user_message if self._last_error else None,
        })
        return info
