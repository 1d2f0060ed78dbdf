"""
Service Status Enumerations

This module contains service and model lifecycle enums to avoid circular imports.
"""

from enum import Enum


class ServiceStatus(Enum):
    """Service status enumeration."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class ModelState(Enum):
    """
    Lifecycle state of the inference runtime.

    State Machine:
        UNLOADED -> DOWNLOADING -> INITIALIZING -> READY
        any state -> ERROR
        ERROR -> UNLOADED (reset/unload only)
    """
    UNLOADED = "unloaded"
    DOWNLOADING = "downloading"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"

    @property
    def allowed_transitions(self) -> frozenset:
        return _MODEL_TRANSITIONS[self]

    def can_transition_to(self, target: 'ModelState') -> bool:
        return target in _MODEL_TRANSITIONS[self]


_MODEL_TRANSITIONS = {
    ModelState.UNLOADED: frozenset({ModelState.DOWNLOADING, ModelState.ERROR}),
    ModelState.DOWNLOADING: frozenset({ModelState.INITIALIZING, ModelState.ERROR, ModelState.UNLOADED}),
    ModelState.INITIALIZING: frozenset({ModelState.READY, ModelState.ERROR, ModelState.UNLOADED}),
    ModelState.READY: frozenset({ModelState.ERROR, ModelState.UNLOADED}),
    ModelState.ERROR: frozenset({ModelState.UNLOADED}),
}


class ProgressStage(Enum):
    """Stage reported with each model loading progress event."""
    DOWNLOADING = "downloading"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class FallbackTier(Enum):
    """Tier of a tiered-fallback execution that produced a result."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"

    @property
    def is_degraded(self) -> bool:
        return self is not FallbackTier.PRIMARY


class ResultStatus(Enum):
    """Tag carried by every tiered result."""
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"
