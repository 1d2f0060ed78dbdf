"""
Heirloom Data Models Package

This package contains the data models and configuration types for the Living
Heirloom core.
"""

from .error import (
    HeirloomError, ErrorSeverity, ErrorKind, ValidationError, ModelTimeoutError, NetworkError,
    RemoteServiceError, UnsupportedOperation, InsufficientResources, StorageError
)
from .validation import ValidationResult, ValidationIssue, ValidationStatus
from .retry_config import RetryConfig, RetryAttempt, FailureKind
from .app_config import AppConfig, FeatureFlags, AIConfig, VoiceConfig, StorageConfig, SecurityConfig
from .service_enums import ServiceStatus, ModelState, ProgressStage, FallbackTier, ResultStatus
from .generation import (
    ContentLength, GenerationRequest, GenerationResult, ContentResult, EmotionClassification
)
from .capsule import EncryptedBlob, CapsuleRecord, CapsuleStatus, GenerationMethod
from .voice_model import VoiceSample, VoiceModel, OriginTier, QualityTier

__all__ = [
    'HeirloomError', 'ErrorSeverity', 'ErrorKind', 'ValidationError', 'ModelTimeoutError',
    'NetworkError', 'RemoteServiceError', 'UnsupportedOperation', 'InsufficientResources', 'StorageError',
    'ValidationResult', 'ValidationIssue', 'ValidationStatus',
    'RetryConfig', 'RetryAttempt', 'FailureKind',
    'AppConfig', 'FeatureFlags', 'AIConfig', 'VoiceConfig', 'StorageConfig', 'SecurityConfig',
    'ServiceStatus', 'ModelState', 'ProgressStage', 'FallbackTier', 'ResultStatus',
    'ContentLength', 'GenerationRequest', 'GenerationResult', 'ContentResult', 'EmotionClassification',
    'EncryptedBlob', 'CapsuleRecord', 'CapsuleStatus', 'GenerationMethod',
    'VoiceSample', 'VoiceModel', 'OriginTier', 'QualityTier',
]
