"""
Voice Models

This module contains the VoiceSample and VoiceModel data models used by voice
cloning. A VoiceModel is either remote-origin (created by the cloning service,
can synthesize speech) or local-origin (degraded substitute kept for sample
playback only).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from heirloom.models.capsule import EncryptedBlob


logger = logging.getLogger(__name__)


class OriginTier(Enum):
    """Where a voice model was created."""
    REMOTE = "remote"
    LOCAL = "local"

    @property
    def can_synthesize(self) -> bool:
        return self is OriginTier.REMOTE


class QualityTier(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class VoiceSample:
    """
    A recorded voice sample.

    Attributes:
        data: Raw audio bytes
        name: File name used when uploading the sample
        mime_type: Audio container type
        duration: Duration in seconds if it could be determined
    """
    data: bytes
    name: str = "sample.wav"
    mime_type: str = "audio/wav"
    duration: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self.data) if self.data else 0

    @classmethod
    def coerce(cls, value, index: int = 0) -> 'VoiceSample':
        """Wrap raw bytes in a VoiceSample; pass VoiceSample instances through."""
        if isinstance(value, VoiceSample):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(data=bytes(value), name=f"sample_{index}.wav")
        raise TypeError(f"Unsupported voice sample type: {type(value).__name__}")


@dataclass
class VoiceModel:
    """
    Persisted voice model record.

    Attributes:
        id: Remote voice id, or a generated ``local_`` id
        name: Display name
        origin_tier: REMOTE or LOCAL
        quality_tier: HIGH for remote clones, MEDIUM for local substitutes
        is_active: Whether this is the currently selected model
        created_at: Creation timestamp
        sample_refs: File names of the samples used for cloning
        encrypted_samples: Sample buffers sealed by the EncryptedStore
        sample_sizes: Byte size of each sample, kept for integrity checks
    """
    id: str
    name: str
    origin_tier: OriginTier
    quality_tier: QualityTier
    is_active: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    sample_refs: List[str] = field(default_factory=list)
    encrypted_samples: List[EncryptedBlob] = field(default_factory=list)
    sample_sizes: List[int] = field(default_factory=list)

    @property
    def is_remote(self) -> bool:
        return self.origin_tier is OriginTier.REMOTE

    @property
    def sample_count(self) -> int:
        return len(self.sample_refs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelId": self.id,
            "name": self.name,
            "originTier": self.origin_tier.value,
            "quality": self.quality_tier.value,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat(),
            "samples": list(self.sample_refs),
            "sampleBlobs": [blob.to_dict() for blob in self.encrypted_samples],
            "sampleSizes": list(self.sample_sizes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VoiceModel':
        return cls(
            id=data["modelId"],
            name=data.get("name", ""),
            origin_tier=OriginTier(data.get("originTier", OriginTier.LOCAL.value)),
            quality_tier=QualityTier(data.get("quality", QualityTier.MEDIUM.value)),
            is_active=bool(data.get("isActive", False)),
            created_at=datetime.fromisoformat(data["createdAt"]) if data.get("createdAt") else datetime.now(),
            sample_refs=list(data.get("samples") or []),
            encrypted_samples=[EncryptedBlob.from_dict(b) for b in data.get("sampleBlobs") or []],
            sample_sizes=[int(s) for s in data.get("sampleSizes") or []],
        )
