"""
Generation Models

Request and result models for interview question generation, content
synthesis and emotion classification.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from heirloom.models.error import ValidationError
from heirloom.models.service_enums import FallbackTier


ALLOWED_EMOTIONS = (
    "joyful", "nostalgic", "melancholic", "hopeful", "grateful",
    "reflective", "loving", "peaceful", "excited", "contemplative",
    "vulnerable", "proud", "wistful", "serene", "passionate",
)

DEFAULT_EMOTION = "reflective"


class ContentLength(Enum):
    """Requested length of synthesized content with its approximate word target."""
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"

    @property
    def target_words(self) -> int:
        return {"short": 150, "medium": 300, "long": 500}[self.value]

    @classmethod
    def parse(cls, value) -> 'ContentLength':
        """Accept an enum member or its string value; unknown strings map to MEDIUM."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MEDIUM


@dataclass
class GenerationRequest:
    """
    Inputs for the next interview question.

    Attributes:
        responses: Prior interview responses as ordered question -> answer pairs
        emotional_state: Emotion label of the interviewee
        category: Question category tag (memories, wisdom, feelings, future, opening)
        index: Zero-based index of the question being generated
    """
    responses: Dict[str, str]
    emotional_state: str
    category: str
    index: int = 0

    def __post_init__(self):
        if self.responses is None:
            self.responses = {}
        if not isinstance(self.responses, dict):
            raise ValidationError("Interview responses must be a mapping of question to answer", field="responses")
        if self.index < 0:
            raise ValidationError("Question index cannot be negative", field="index")


@dataclass
class GenerationResult:
    """
    Generated text with its quality signal.

    ``text`` is never empty; for questions it always ends with ``?``.
    """
    text: str
    confidence: float
    emotional_tone: str
    tier: FallbackTier = FallbackTier.PRIMARY
    suggestions: List[str] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return self.tier.is_degraded


@dataclass
class ContentResult:
    """Synthesized written content."""
    content: str
    title: str
    emotional_tone: str
    word_count: int
    confidence: float = 1.0
    tier: FallbackTier = FallbackTier.PRIMARY

    @property
    def is_degraded(self) -> bool:
        return self.tier.is_degraded


@dataclass
class EmotionClassification:
    """Emotion label drawn from ALLOWED_EMOTIONS."""
    label: str
    confidence: float
    tier: FallbackTier = FallbackTier.PRIMARY
    raw_answer: Optional[str] = None
