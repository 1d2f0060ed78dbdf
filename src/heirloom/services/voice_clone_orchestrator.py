"""
Voice Clone Orchestrator

Sample validation, remote cloning with a local-record fallback, speech
synthesis dispatch and voice model management.

Remote and local clones are stored in the same record shape; only
``origin_tier`` tells them apart. Local-origin models keep their encrypted
samples for playback but cannot synthesize speech.
"""

import asyncio
import random
import string
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

from heirloom.models.app_config import FeatureFlags, VoiceConfig
from heirloom.models.capsule import EncryptedBlob
from heirloom.models.error import (
    ErrorSeverity, HeirloomError, RemoteServiceError, StorageError, UnsupportedOperation, ValidationError
)
from heirloom.models.service_enums import ServiceStatus
from heirloom.models.validation import ValidationIssue, ValidationResult, ValidationStatus
from heirloom.models.voice_model import OriginTier, QualityTier, VoiceModel, VoiceSample
from heirloom.services.core.base_service import BaseService
from heirloom.services.encrypted_store import EncryptedStore
from heirloom.services.fallback_policy import FallbackPolicy
from heirloom.services.integrations.elevenlabs_client import ElevenLabsClient
from heirloom.services.record_store import VOICE_MODELS, JsonRecordStore
from heirloom.utils.audio_analysis import analyze_sample
from heirloom.utils.sanitization import sanitize_voice_name


# Issue codes that make a stored model unusable
CRITICAL_MODEL_ISSUES = frozenset({"VOICE_NOT_FOUND", "SAMPLE_CORRUPTED", "VOICE_MISSING_REMOTE"})


def generate_local_model_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"local_{int(time.time() * 1000)}_{suffix}"


class VoiceCloneOrchestrator(BaseService):
    """
    Voice cloning and synthesis over an unreliable remote service.

    A failed remote clone is never surfaced to the caller: a local-origin
    model is stored in its place. Synthesis on a local-origin model fails with
    UnsupportedOperation before any network call is made.
    """

    def __init__(
        self,
        client: ElevenLabsClient,
        store: JsonRecordStore,
        encrypted_store: EncryptedStore,
        config: Optional[VoiceConfig] = None,
        features: Optional[FeatureFlags] = None,
        policy: Optional[FallbackPolicy] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Remote cloning/synthesis client
            store: Persistence for voice model records
            encrypted_store: Seals sample buffers before they are stored
            config: Sample bounds and text limits
            features: enable_voice / enable_encryption switches
            policy: Tiered executor for the clone fallback
        """
        super().__init__("VoiceCloneOrchestrator")
        self.client = client
        self.store = store
        self.encrypted_store = encrypted_store
        self.config = config or VoiceConfig()
        self.features = features or FeatureFlags()
        self.policy = policy or FallbackPolicy("voice")
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="VoiceClone")

    async def _in_executor(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args))

    # Validation

    def validate_samples(self, samples: Optional[Sequence[Any]]) -> ValidationResult:
        """
        Check sample count and per-sample size.

        Only the first violation is reported. WAV samples outside the nominal
        duration window, or silent ones, produce warnings.

        Args:
            samples: VoiceSample objects or raw byte buffers

        Returns:
            ValidationResult: Valid, or invalid with a single issue
        """
        samples = list(samples or [])
        required = self.config.required_samples

        if len(samples) < required:
            return ValidationResult.invalid(
                "samples",
                f"At least {required} voice samples are required for quality cloning",
                "INSUFFICIENT_SAMPLES"
            )

        warnings: List[ValidationIssue] = []
        max_mb = round(self.config.max_file_size / 1024 / 1024)

        for index, raw in enumerate(samples, start=1):
            field = f"samples[{index - 1}]"
            try:
                sample = VoiceSample.coerce(raw, index - 1)
            except TypeError:
                return ValidationResult.invalid(field, f"Voice sample {index} is empty or corrupted", "SAMPLE_CORRUPTED")

            if sample.size == 0:
                return ValidationResult.invalid(field, f"Voice sample {index} is empty or corrupted", "SAMPLE_CORRUPTED")
            if sample.size < self.config.min_file_size:
                return ValidationResult.invalid(
                    field, f"Voice sample {index} is too short for quality cloning", "SAMPLE_TOO_SHORT"
                )
            if sample.size > self.config.max_file_size:
                return ValidationResult.invalid(
                    field, f"Voice sample {index} is too large (max {max_mb}MB)", "SAMPLE_TOO_LARGE"
                )

            analysis = analyze_sample(sample.data)
            if analysis is None:
                continue
            if analysis.duration < self.config.min_recording_duration:
                warnings.append(ValidationIssue(
                    field=field,
                    message=(f"Voice sample {index} is shorter than "
                             f"{self.config.min_recording_duration:g} seconds"),
                    code="SAMPLE_DURATION_SHORT",
                    severity=ValidationStatus.WARNING
                ))
            elif analysis.duration > self.config.max_recording_duration:
                warnings.append(ValidationIssue(
                    field=field,
                    message=(f"Voice sample {index} is longer than "
                             f"{self.config.max_recording_duration:g} seconds"),
                    code="SAMPLE_DURATION_LONG",
                    severity=ValidationStatus.WARNING
                ))
            if analysis.is_silent:
                warnings.append(ValidationIssue(
                    field=field,
                    message=f"Voice sample {index} appears to be silent",
                    code="SAMPLE_SILENT",
                    severity=ValidationStatus.WARNING
                ))

        return ValidationResult.valid(warnings)

    # Cloning

    async def _seal_samples(self, samples: List[VoiceSample], passphrase: Optional[str]) -> List[EncryptedBlob]:
        if not self.features.enable_encryption:
            self.logger.info("Encryption disabled; sample audio will not be stored")
            return []
        blobs = []
        for sample in samples:
            try:
                blobs.append(await self._in_executor(self.encrypted_store.encrypt_bytes, sample.data, passphrase))
            except HeirloomError:
                raise
            except Exception as e:
                raise StorageError(
                    severity=ErrorSeverity.ERROR,
                    code="ENCRYPTION_FAILED",
                    user_message="Your voice samples could not be encrypted",
                    technical_details=str(e),
                    suggested_action="Nothing was saved. Please try again."
                ) from e
        return blobs

    async def clone_voice(self, name: str, samples: Sequence[Any], passphrase: Optional[str] = None) -> str:
        """
        Create a voice model from recorded samples.

        Args:
            name: Display name; cleaned and required to be non-empty
            samples: At least ``required_samples`` VoiceSample objects or byte buffers
            passphrase: Optional passphrase for sealing the stored samples

        Returns:
            str: Id of the stored model, remote voice id or a ``local_`` id

        Raises:
            ValidationError: Empty name or invalid samples
            StorageError: The model could not be stored
        """
        clean_name = sanitize_voice_name(name)
        if not clean_name:
            raise ValidationError("Voice name is required for cloning", field="name")

        samples = list(samples or [])
        self.validate_samples(samples).raise_if_invalid()
        voice_samples = [VoiceSample.coerce(s, i) for i, s in enumerate(samples)]

        async def remote_clone() -> VoiceModel:
            voice_id = await self._in_executor(self.client.clone_voice, clean_name, voice_samples)
            return VoiceModel(id=voice_id, name=clean_name, origin_tier=OriginTier.REMOTE,
                              quality_tier=QualityTier.HIGH)

        def local_model() -> VoiceModel:
            return VoiceModel(id=generate_local_model_id(), name=clean_name, origin_tier=OriginTier.LOCAL,
                              quality_tier=QualityTier.MEDIUM)

        result = await self.policy.execute(
            remote_clone if self.features.enable_voice else None,
            local_model,
            operation="clone_voice"
        )
        model: VoiceModel = result.value
        if result.is_degraded:
            self.logger.warning(f"Remote cloning unavailable; stored '{clean_name}' as local model {model.id}")

        model.sample_refs = [sample.name for sample in voice_samples]
        model.sample_sizes = [sample.size for sample in voice_samples]
        model.encrypted_samples = await self._seal_samples(voice_samples, passphrase)
        model.is_active = True
        record = model.to_dict()

        def add_as_active(records: Dict[str, Dict[str, Any]]) -> None:
            for existing in records.values():
                existing["isActive"] = False
            records[model.id] = record

        await self.store.update(VOICE_MODELS, add_as_active)

        self.logger.info(f"Voice model {model.id} created ({model.origin_tier.value}, {model.quality_tier.value})")
        return model.id

    # Synthesis

    async def synthesize_speech(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """
        Generate speech audio with a remote-origin voice model.

        Args:
            text: 1..max_text_length characters
            voice_id: Model id; the active model when omitted

        Returns:
            bytes: Audio payload (MPEG)

        Raises:
            ValidationError: Empty or too-long text, or unknown model
            UnsupportedOperation: Local-origin model or voice features disabled
            RemoteServiceError: The service failed or returned no audio
        """
        if not text or not text.strip():
            raise ValidationError("Text is required for speech generation", field="text")
        if len(text) > self.config.max_text_length:
            raise ValidationError(
                f"Text is too long for speech generation (max {self.config.max_text_length} characters)",
                field="text",
                code="TEXT_TOO_LONG"
            )

        model = await self.get_model(voice_id) if voice_id else await self.get_active_model()
        if model is None:
            raise ValidationError("Voice model not found", field="voice_id", code="VOICE_NOT_FOUND")

        if not model.origin_tier.can_synthesize:
            raise UnsupportedOperation(
                "Local voice synthesis is not yet available. "
                "Please use a cloned voice from the voice service for speech generation.",
                technical_details=f"model={model.id} origin={model.origin_tier.value}",
                code="VOICE_SYNTHESIS_UNSUPPORTED"
            )
        if not self.features.enable_voice:
            raise UnsupportedOperation("Voice features are disabled", technical_details="features.enable_voice=False")

        try:
            audio = await self._in_executor(self.client.generate_speech, text, model.id)
        except Exception as e:
            self.logger.error(f"Speech synthesis failed for model {model.id}: {e}")
            raise RemoteServiceError(
                severity=ErrorSeverity.ERROR,
                code="VOICE_SYNTHESIS_FAILED",
                user_message="Voice synthesis service is temporarily unavailable",
                technical_details=str(e),
                suggested_action="Please try again later"
            ) from e

        if not audio:
            raise RemoteServiceError(
                severity=ErrorSeverity.ERROR,
                code="VOICE_SYNTHESIS_FAILED",
                user_message="ElevenLabs returned empty audio",
                suggested_action="Please try again later"
            )
        return audio

    # Model management

    async def _load_models(self) -> Dict[str, VoiceModel]:
        records = await self.store.list(VOICE_MODELS)
        models = {}
        for record in records:
            try:
                model = VoiceModel.from_dict(record)
            except (KeyError, ValueError, TypeError) as e:
                self.logger.warning(f"Skipping unreadable voice model record: {e}")
                continue
            models[model.id] = model
        return models

    async def get_model(self, model_id: str) -> Optional[VoiceModel]:
        record = await self.store.get(VOICE_MODELS, model_id)
        return VoiceModel.from_dict(record) if record else None

    async def get_available_models(self) -> List[VoiceModel]:
        """All stored voice models, oldest first."""
        models = await self._load_models()
        return sorted(models.values(), key=lambda m: m.created_at)

    async def get_active_model(self) -> Optional[VoiceModel]:
        for model in await self.get_available_models():
            if model.is_active:
                return model
        return None

    async def set_active_model(self, model_id: str) -> VoiceModel:
        """
        Make one model the current selection and deactivate the others.

        Raises:
            ValidationError: If the model does not exist
        """
        def select(records: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
            if model_id not in records:
                raise ValidationError("Voice model not found", field="voice_id", code="VOICE_NOT_FOUND")
            for record_id, record in records.items():
                record["isActive"] = record_id == model_id
            return records[model_id]

        selected = await self.store.update(VOICE_MODELS, select)
        self.logger.info(f"Active voice model set to {model_id}")
        return VoiceModel.from_dict(selected)

    async def get_best_available_model(self) -> Optional[VoiceModel]:
        """Prefer remote high quality, then remote medium, then any remote, then any local model."""
        models = await self.get_available_models()
        if not models:
            return None

        remote = [m for m in models if m.is_remote]
        for quality in (QualityTier.HIGH, QualityTier.MEDIUM):
            for model in remote:
                if model.quality_tier == quality:
                    return model
        if remote:
            return remote[0]
        return models[0]

    async def get_sample_audio(self, model_id: str, index: int, passphrase: Optional[str] = None) -> Optional[bytes]:
        """Decrypted audio of one stored sample, or None if unavailable."""
        model = await self.get_model(model_id)
        if model is None or not 0 <= index < len(model.encrypted_samples):
            return None
        return await self._in_executor(self.encrypted_store.decrypt_bytes, model.encrypted_samples[index], passphrase)

    async def validate_model(self, model_id: str) -> ValidationResult:
        """
        Check a stored model's integrity.

        Remote-origin models are also looked up on the service; an outage there
        is reported as a warning, not an issue.
        """
        model = await self.get_model(model_id)
        if model is None:
            return ValidationResult.invalid("voice_id", "Voice model not found", "VOICE_NOT_FOUND")

        issues: List[ValidationIssue] = []
        warnings: List[ValidationIssue] = []

        def _issue(message: str, code: str):
            issues.append(ValidationIssue(field="model", message=message, code=code))

        if not model.name or not model.name.strip():
            _issue("Voice model has no name", "NO_NAME")

        if model.sample_count == 0:
            _issue("Voice model has no samples", "NO_SAMPLES")
        elif model.sample_count < self.config.required_samples:
            _issue(
                f"Voice model has insufficient samples (minimum {self.config.required_samples} required)",
                "INSUFFICIENT_SAMPLES"
            )

        for index, size in enumerate(model.sample_sizes, start=1):
            if size <= 0:
                _issue(f"Sample {index} is empty or corrupted", "SAMPLE_CORRUPTED")
            elif size < self.config.min_file_size:
                _issue(f"Sample {index} is too short (less than 1KB)", "SAMPLE_TOO_SHORT")

        if model.is_remote:
            if not self.client.is_configured:
                warnings.append(ValidationIssue(
                    field="model",
                    message="Unable to verify remote voice model (no API key configured)",
                    code="REMOTE_UNVERIFIED",
                    severity=ValidationStatus.WARNING
                ))
            else:
                try:
                    exists = await self._in_executor(self.client.voice_exists, model.id)
                    if not exists:
                        _issue("Remote voice model no longer exists on the service", "VOICE_MISSING_REMOTE")
                except Exception as e:
                    self.logger.warning(f"Could not verify remote voice {model.id}: {e}")
                    warnings.append(ValidationIssue(
                        field="model",
                        message="Unable to verify remote voice model (service may be unavailable)",
                        code="REMOTE_UNVERIFIED",
                        severity=ValidationStatus.WARNING
                    ))

        return ValidationResult.from_issues(issues, warnings)

    async def delete_model(self, model_id: str) -> bool:
        """
        Delete a model record; remote voices are also removed from the service when possible.

        Returns:
            bool: False if no such model was stored
        """
        model = await self.get_model(model_id)
        if model is None:
            return False

        if model.is_remote and self.client.is_configured:
            try:
                await self._in_executor(self.client.delete_voice, model.id)
            except Exception as e:
                self.logger.warning(f"Remote delete of voice {model.id} failed; removing local record anyway: {e}")

        return await self.store.delete(VOICE_MODELS, model_id)

    async def cleanup_models(self) -> Dict[str, Any]:
        """
        Delete models with critical integrity issues.

        Returns:
            Dict[str, Any]: ``cleaned`` count and per-model ``errors``
        """
        cleaned = 0
        errors: List[str] = []

        for model in await self.get_available_models():
            try:
                validation = await self.validate_model(model.id)
                if any(issue.code in CRITICAL_MODEL_ISSUES for issue in validation.issues):
                    await self.store.delete(VOICE_MODELS, model.id)
                    cleaned += 1
                    self.logger.info(f"Cleaned up corrupted voice model: {model.name}")
            except HeirloomError as e:
                errors.append(f"Failed to clean up model {model.name}: {e.user_message}")

        return {"cleaned": cleaned, "errors": errors}

    async def get_model_stats(self) -> Dict[str, Any]:
        models = await self.get_available_models()
        distribution: Dict[str, int] = {}
        for model in models:
            distribution[model.quality_tier.value] = distribution.get(model.quality_tier.value, 0) + 1
        return {
            "total": len(models),
            "active": sum(1 for m in models if m.is_active),
            "remote_models": sum(1 for m in models if m.is_remote),
            "local_models": sum(1 for m in models if not m.is_remote),
            "quality_distribution": distribution,
        }

    # BaseService

    async def start(self) -> bool:
        await self._update_status(ServiceStatus.RUNNING)
        if self.features.enable_voice and not self.client.is_configured:
            self.logger.warning("No voice cloning API key configured; cloned voices will be local only")
        return True

    async def stop(self) -> bool:
        await self._update_status(ServiceStatus.STOPPING)
        self.client.close()
        self._executor.shutdown(wait=False, cancel_futures=True)
        await self._update_status(ServiceStatus.STOPPED)
        return True

    async def health_check(self) -> tuple[bool, Optional[HeirloomError]]:
        if not self.features.enable_voice:
            return True, None
        if not self.client.is_configured:
            return False, RemoteServiceError(
                severity=ErrorSeverity.WARNING,
                code="API_KEY_MISSING",
                user_message="ElevenLabs API key not configured",
                suggested_action="Set ELEVENLABS_API_KEY to enable voice cloning"
            )
        return True, None
