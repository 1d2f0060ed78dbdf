"""
Application Configuration Model

This module contains the AppConfig data model consumed by the orchestration core:
feature flags, inference settings, voice constraints, storage limits and
encryption parameters. Config is validated on creation and can be serialized
to/from JSON-compatible dictionaries.
"""

import logging
from dataclasses import dataclass, field, asdict, fields
from typing import Optional, Dict, Any

from heirloom.models.validation import ValidationResult, ValidationIssue, ValidationStatus


logger = logging.getLogger(__name__)


@dataclass
class FeatureFlags:
    """Feature switches. Disabled features degrade to their fallback tiers."""
    enable_ai: bool = True
    enable_voice: bool = True
    enable_encryption: bool = True


@dataclass
class AIConfig:
    """Inference runtime settings."""
    model_name: str = "Llama-3.2-3B-Instruct-q4f32_1-MLC"
    max_tokens: int = 800
    temperature: float = 0.7
    timeout_ms: int = 120000
    warmup_enabled: bool = True

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class VoiceConfig:
    """Voice sample constraints and remote cloning service settings."""
    sample_rate: int = 44100
    channel_count: int = 1
    required_samples: int = 3
    min_file_size: int = 1000
    max_file_size: int = 10 * 1024 * 1024
    min_recording_duration: float = 3.0
    max_recording_duration: float = 120.0
    max_text_length: int = 5000
    api_base_url: str = "https://api.elevenlabs.io/v1"
    request_timeout: float = 60.0


@dataclass
class StorageConfig:
    """Durable record storage settings."""
    data_directory: str = "data"
    max_storage_size: int = 100 * 1024 * 1024
    data_retention_days: int = 365


@dataclass
class SecurityConfig:
    """
    At-rest encryption parameters.

    Attributes:
        key_length: AES key length in bits
        salt_length: PBKDF2 salt length in bytes
        iv_length: AES-GCM nonce length in bytes
        iterations: PBKDF2 iteration count
        require_passphrase: Refuse to encrypt with a locally stored key
        key_file: Location of the generated key when no passphrase is used
    """
    key_length: int = 256
    salt_length: int = 16
    iv_length: int = 12
    iterations: int = 100000
    require_passphrase: bool = False
    key_file: str = "keys/content.key"


_SECTIONS = {
    "features": FeatureFlags,
    "ai": AIConfig,
    "voice": VoiceConfig,
    "storage": StorageConfig,
    "security": SecurityConfig,
}


@dataclass
class AppConfig:
    """
    Configuration surface consumed by the orchestration core.

    Attributes:
        features: enable_ai / enable_voice / enable_encryption switches
        ai: Inference model name, token budget and load timeout
        voice: Sample count/size/duration bounds and cloning service settings
        storage: Record store location, quota and retention
        security: Encryption parameters
    """
    features: FeatureFlags = field(default_factory=FeatureFlags)
    ai: AIConfig = field(default_factory=AIConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    elevenlabs_api_key: Optional[str] = field(default=None, repr=False)

    def validate(self) -> ValidationResult:
        """
        Validate the configuration for consistency and correctness.

        Returns:
            ValidationResult: Detailed validation result with issues and warnings
        """
        issues = []
        warnings = []

        def _issue(field_name: str, message: str, code: str = "OUT_OF_RANGE"):
            issues.append(ValidationIssue(field=field_name, message=message, code=code))

        if self.ai.max_tokens < 1 or self.ai.max_tokens > 2000:
            _issue("ai.max_tokens", "AI max_tokens must be between 1 and 2000")

        if self.ai.temperature < 0 or self.ai.temperature > 2:
            _issue("ai.temperature", "AI temperature must be between 0 and 2")

        if self.ai.timeout_ms <= 0:
            _issue("ai.timeout_ms", "AI timeout_ms must be positive")

        if self.voice.required_samples < 1 or self.voice.required_samples > 10:
            _issue("voice.required_samples", "Voice required_samples must be between 1 and 10")

        if self.voice.max_recording_duration < self.voice.min_recording_duration:
            _issue(
                "voice.max_recording_duration",
                "Voice max_recording_duration must be greater than min_recording_duration"
            )

        if self.voice.max_file_size <= self.voice.min_file_size:
            _issue("voice.max_file_size", "Voice max_file_size must be greater than min_file_size")

        if self.voice.max_text_length < 1:
            _issue("voice.max_text_length", "Voice max_text_length must be at least 1")

        if self.storage.data_retention_days < 1:
            _issue("storage.data_retention_days", "Storage data_retention_days must be at least 1")

        if self.security.key_length not in (128, 192, 256):
            _issue("security.key_length", "Security key_length must be 128, 192 or 256")

        if self.security.iterations < 10000:
            warnings.append(ValidationIssue(
                field="security.iterations",
                message="PBKDF2 iteration count below 10000 weakens passphrase-derived keys",
                code="WEAK_KDF",
                severity=ValidationStatus.WARNING
            ))

        if self.features.enable_voice and not self.elevenlabs_api_key:
            warnings.append(ValidationIssue(
                field="elevenlabs_api_key",
                message="No voice cloning API key configured; cloned voices will be local only",
                code="MISSING_API_KEY",
                severity=ValidationStatus.WARNING
            ))

        return ValidationResult.from_issues(issues, warnings)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert config to dictionary for serialization.

        The API key is never serialized.
        """
        return {name: asdict(getattr(self, name)) for name in _SECTIONS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppConfig':
        """
        Create config from a dictionary, ignoring unknown sections and keys.

        Args:
            data: Dictionary containing config sections

        Returns:
            AppConfig: Config instance
        """
        sections = {}
        for name, section_cls in _SECTIONS.items():
            raw = data.get(name) or {}
            if not isinstance(raw, dict):
                logger.warning(f"Ignoring config section '{name}': expected object, got {type(raw).__name__}")
                raw = {}
            known = {f.name for f in fields(section_cls)}
            unknown = set(raw) - known
            if unknown:
                logger.debug(f"Ignoring unknown keys in '{name}': {sorted(unknown)}")
            sections[name] = section_cls(**{k: v for k, v in raw.items() if k in known})

        return cls(**sections)


def merge_deep(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``source`` into a copy of ``target``."""
    result = dict(target)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_deep(result[key], value)
        else:
            result[key] = value
    return result
