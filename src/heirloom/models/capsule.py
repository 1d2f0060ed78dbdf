"""
Capsule Models

Encrypted payload and content record models. A record flagged for encryption
never holds its plaintext next to its ciphertext once sealed.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


logger = logging.getLogger(__name__)

ENCRYPTED_SENTINEL = "[ENCRYPTED]"


@dataclass(frozen=True)
class EncryptedBlob:
    """
    Authenticated ciphertext with its key-derivation salt and nonce.

    All three parts are base64 text so each can be serialized independently.
    """
    ciphertext: str
    salt: str
    iv: str

    def to_dict(self) -> Dict[str, str]:
        return {"encryptedData": self.ciphertext, "salt": self.salt, "iv": self.iv}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EncryptedBlob':
        return cls(
            ciphertext=str(data["encryptedData"]),
            salt=str(data["salt"]),
            iv=str(data["iv"])
        )

    @classmethod
    def from_json(cls, raw: str) -> 'EncryptedBlob':
        return cls.from_dict(json.loads(raw))


class CapsuleStatus(Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    DELIVERED = "delivered"
    LOCKED = "locked"


class GenerationMethod(Enum):
    AI = "ai"
    TEMPLATE = "template"
    MANUAL = "manual"


@dataclass
class CapsuleRecord:
    """
    Written content record handed to the persistence collaborator.

    Attributes:
        title: Content title
        recipient: Who the content is addressed to
        content: Plaintext, or ENCRYPTED_SENTINEL once sealed
        encrypted_content: Serialized EncryptedBlob when sealed
        is_encrypted: Whether the record must be stored encrypted
        status: Draft/scheduled/delivered/locked
        voice_model_id: Voice model used for narration, if any
        generation_method: How the content was produced
        tone: Tone requested for the content
        ai_confidence: Confidence of the generation tier that produced it
    """
    title: str
    recipient: str = ""
    content: str = ""
    encrypted_content: Optional[str] = None
    is_encrypted: bool = True
    status: CapsuleStatus = CapsuleStatus.DRAFT
    record_id: Optional[str] = None
    voice_model_id: Optional[str] = None
    generation_method: GenerationMethod = GenerationMethod.MANUAL
    tone: str = "heartfelt"
    emotional_state: str = "reflective"
    ai_confidence: Optional[float] = None
    word_count: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    delivery_date: Optional[datetime] = None

    @property
    def is_sealed(self) -> bool:
        return self.encrypted_content is not None and self.content == ENCRYPTED_SENTINEL

    @property
    def is_ai_generated(self) -> bool:
        return self.generation_method == GenerationMethod.AI

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "title": self.title,
            "recipient": self.recipient,
            "content": self.content,
            "encryptedContent": self.encrypted_content,
            "isEncrypted": self.is_encrypted,
            "status": self.status.value,
            "voiceModelId": self.voice_model_id,
            "generationMethod": self.generation_method.value,
            "tone": self.tone,
            "emotionalState": self.emotional_state,
            "aiConfidence": self.ai_confidence,
            "wordCount": self.word_count,
            "createdAt": self.created_at.isoformat(),
            "deliveryDate": self.delivery_date.isoformat() if self.delivery_date else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CapsuleRecord':
        delivery = data.get("deliveryDate")
        return cls(
            record_id=data.get("id"),
            title=data.get("title", ""),
            recipient=data.get("recipient", ""),
            content=data.get("content", ""),
            encrypted_content=data.get("encryptedContent"),
            is_encrypted=bool(data.get("isEncrypted", False)),
            status=CapsuleStatus(data.get("status", CapsuleStatus.DRAFT.value)),
            voice_model_id=data.get("voiceModelId"),
            generation_method=GenerationMethod(data.get("generationMethod", GenerationMethod.MANUAL.value)),
            tone=data.get("tone", "heartfelt"),
            emotional_state=data.get("emotionalState", "reflective"),
            ai_confidence=data.get("aiConfidence"),
            word_count=int(data.get("wordCount", 0)),
            created_at=datetime.fromisoformat(data["createdAt"]) if data.get("createdAt") else datetime.now(),
            delivery_date=datetime.fromisoformat(delivery) if delivery else None,
        )
