"""
Generation Service

Interview question generation, written content synthesis and emotion
classification. Each operation tries the loaded model first and falls back to
deterministic templates through the FallbackPolicy, so callers always get a
result; only invalid input raises.
"""

import re
import random
import logging
from typing import Dict, Optional

from heirloom.models.app_config import AIConfig, FeatureFlags
from heirloom.models.error import ValidationError
from heirloom.models.generation import (
    ALLOWED_EMOTIONS, DEFAULT_EMOTION, ContentLength, ContentResult,
    EmotionClassification, GenerationRequest, GenerationResult
)
from heirloom.models.service_enums import FallbackTier
from heirloom.services import prompts
from heirloom.services.fallback_policy import FallbackPolicy
from heirloom.services.integrations.inference_runtime import ChatMessage
from heirloom.services.model_lifecycle_manager import ModelLifecycleManager
from heirloom.utils.sanitization import sanitize_interview_response


DEFAULT_TITLE = "A Message from the Heart"
MIN_QUESTION_LENGTH = 10
MAX_QUESTION_LENGTH = 300
MIN_CONTENT_LENGTH = 50

_TITLE_LINE = re.compile(r"(?:Title|TITLE):\s*(.+?)(?:\n|$)", re.IGNORECASE)
_EDGE_QUOTES = re.compile(r"^[\"']|[\"']$")

_LETTER_OPENING = (
    "My Dear One,\n\n"
    "I wanted to share some thoughts with you that I hope will stay with you always.\n\n"
)
_LETTER_CLOSING = (
    "These words come from my heart, carrying with them all the love and hope I have for you. "
    "May they serve as a reminder of the precious connection we share across time and generations.\n\n"
    "With endless love,\n"
    "[Your Name]"
)

# Question keywords -> sentence template; first match wins
_LETTER_SENTENCES = (
    (("moment", "memory"), "When I think about precious moments, {answer}"),
    (("wisdom", "advice"), "Something I've learned that I want to share with you: {answer}"),
    (("remember", "legacy"), "I hope you'll remember this about me: {answer}"),
    (("future", "hope"), "For your future, I hope: {answer}"),
)

_TONE_TITLES = {
    "wise": "Wisdom for Tomorrow",
    "thoughtful": "Wisdom for Tomorrow",
    "poetic": "A Legacy of Love",
    "inspiring": "A Legacy of Love",
    "conversational": "Thoughts to Share",
}


def clean_question(raw: Optional[str]) -> str:
    """
    Normalize a model-written question.

    Surrounding quotes are stripped and ``?`` appended when missing. Text over
    300 characters is cut with an ellipsis that still ends in ``?``.

    Raises:
        ValueError: If the answer is empty or shorter than 10 characters
    """
    if not raw or not raw.strip():
        raise ValueError("AI returned empty response")

    text = _EDGE_QUOTES.sub("", raw.strip()).strip()
    if not text.endswith("?"):
        text += "?"

    if len(text) < MIN_QUESTION_LENGTH:
        raise ValueError("Generated question is too short")

    if len(text) > MAX_QUESTION_LENGTH:
        text = text[:MAX_QUESTION_LENGTH - 4].rstrip() + "...?"

    return text


def parse_generated_content(full_response: str) -> tuple[str, str]:
    """Split a ``Title:`` line out of the model answer. Returns (content, title)."""
    match = _TITLE_LINE.search(full_response)
    title = match.group(1).strip() if match else ""
    content = _TITLE_LINE.sub("", full_response, count=1).strip()
    return content, title or DEFAULT_TITLE


def count_words(text: str) -> int:
    return len(text.split())


def score_emotion(text: Optional[str]) -> str:
    """
    Keyword-scoring emotion heuristic.

    Each emotion scores one point per keyword found in the text; the highest
    score wins, ties go to the earlier emotion and no match gives ``reflective``.
    """
    lowered = (text or "").lower()
    best_label, best_score = DEFAULT_EMOTION, 0
    for label, keywords in prompts.EMOTION_KEYWORDS:
        score = sum(1 for keyword in keywords if keyword in lowered)
        if score > best_score:
            best_label, best_score = label, score
    return best_label


def fallback_title(tone: str) -> str:
    return _TONE_TITLES.get((tone or "").lower(), DEFAULT_TITLE)


def compose_fallback_letter(responses: Dict[str, str]) -> str:
    """Build a letter from the answered questions, one paragraph per answer."""
    paragraphs = []
    for question, answer in responses.items():
        answer = (answer or "").strip()
        if not answer:
            continue
        lowered = (question or "").lower()
        for keywords, template in _LETTER_SENTENCES:
            if any(keyword in lowered for keyword in keywords):
                paragraphs.append(template.format(answer=answer))
                break
        else:
            paragraphs.append(answer)

    body = "".join(f"{paragraph}\n\n" for paragraph in paragraphs)
    return _LETTER_OPENING + body + _LETTER_CLOSING


class GenerationService:
    """
    Question, content and emotion generation with template fallbacks.

    The model tier is skipped entirely when AI is disabled; otherwise each call
    makes sure the model is loaded (sharing any in-flight load) before using it.
    """

    def __init__(
        self,
        model_manager: ModelLifecycleManager,
        ai_config: Optional[AIConfig] = None,
        features: Optional[FeatureFlags] = None,
        policy: Optional[FallbackPolicy] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the service.

        Args:
            model_manager: Owner of the inference runtime
            ai_config: Token budget defaults
            features: Feature switches (enable_ai)
            policy: Tiered executor; a default one is created when omitted
            rng: Random source for template selection
        """
        self.model_manager = model_manager
        self.ai_config = ai_config or AIConfig()
        self.features = features or FeatureFlags()
        self.rng = rng or random.Random()
        self.logger = logging.getLogger(self.__class__.__name__)

        base_policy = policy or FallbackPolicy("generation")
        self.question_policy = base_policy.with_confidences(primary=0.8, tertiary=0.3)
        self.content_policy = base_policy
        self.emotion_policy = base_policy

    @property
    def ai_enabled(self) -> bool:
        return self.features.enable_ai

    async def _complete(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        await self.model_manager.initialize()
        return await self.model_manager.complete(
            [ChatMessage.system(system_prompt), ChatMessage.user(user_prompt)],
            temperature=temperature,
            max_tokens=min(max_tokens, self.ai_config.max_tokens)
        )

    async def generate_question(
        self,
        responses: Optional[Dict[str, str]],
        emotional_state: str,
        category: str,
        index: int = 0
    ) -> GenerationResult:
        """
        Produce the next interview question.

        Args:
            responses: Prior question -> answer pairs, oldest first
            emotional_state: Current emotion label
            category: Question category (opening, memories, wisdom, feelings, future)
            index: Zero-based number of the question being asked

        Returns:
            GenerationResult: Question text ending in ``?``; confidence 0.8 from
            the model, 0.3 from templates

        Raises:
            ValidationError: If responses is not a mapping or index is negative
        """
        request = GenerationRequest(
            responses=responses, emotional_state=emotional_state, category=category, index=index
        )
        cleaned = {q: sanitize_interview_response(a) for q, a in request.responses.items()}

        async def from_model() -> str:
            if not request.emotional_state or not request.category:
                raise ValueError("Missing required parameters for question generation")
            context = prompts.build_interview_context(cleaned, request.emotional_state, request.category)
            raw = await self._complete(
                prompts.INTERVIEW_CONDUCTOR,
                prompts.question_prompt(context, request.emotional_state, request.category, request.index),
                temperature=0.7,
                max_tokens=150
            )
            return clean_question(raw)

        result = await self.question_policy.execute(
            from_model if self.ai_enabled else None,
            lambda: prompts.pick_question(request.category, self.rng),
            operation="generate_question"
        )

        suggestions = []
        if result.tier is FallbackTier.PRIMARY:
            suggestions = prompts.follow_up_suggestions(request.emotional_state)

        return GenerationResult(
            text=result.value,
            confidence=result.confidence,
            emotional_tone=request.emotional_state,
            tier=result.tier,
            suggestions=suggestions
        )

    async def generate_content(
        self,
        responses: Optional[Dict[str, str]],
        tone: str = "heartfelt",
        length="medium"
    ) -> ContentResult:
        """
        Turn interview answers into a titled letter.

        Args:
            responses: Question -> answer pairs
            tone: Writing tone (heartfelt, wise, poetic, conversational, inspirational)
            length: "short", "medium", "long" or a ContentLength

        Returns:
            ContentResult: Non-empty content and title

        Raises:
            ValidationError: If no response has a non-empty answer
        """
        if responses is not None and not isinstance(responses, dict):
            raise ValidationError("Interview responses must be a mapping of question to answer", field="responses")

        answered = {
            q: sanitize_interview_response(a)
            for q, a in (responses or {}).items()
            if q and isinstance(a, str) and a.strip()
        }
        answered = {q: a for q, a in answered.items() if a}
        if not answered:
            raise ValidationError("At least one interview response is required", field="responses",
                                  code="NO_RESPONSES")

        tone = (tone or "heartfelt").strip().lower()
        content_length = ContentLength.parse(length)
        target_words = content_length.target_words

        async def from_model() -> ContentResult:
            response_text = "\n\n".join(f"Q: {q}\nA: {a}" for q, a in answered.items())
            raw = await self._complete(
                prompts.MESSAGE_WRITER,
                prompts.content_prompt(response_text, tone, content_length.value, target_words),
                temperature=0.8,
                max_tokens=min(1000, target_words * 2)
            )
            if not raw or not raw.strip():
                raise ValueError("AI returned empty content")

            content, title = parse_generated_content(raw)
            if len(content) < MIN_CONTENT_LENGTH:
                raise ValueError("Generated content is too short")

            return ContentResult(content=content, title=title, emotional_tone=tone,
                                 word_count=count_words(content))

        def from_template() -> ContentResult:
            content = compose_fallback_letter(answered)
            return ContentResult(content=content, title=fallback_title(tone), emotional_tone=tone,
                                 word_count=count_words(content))

        result = await self.content_policy.execute(
            from_model if self.ai_enabled else None,
            from_template,
            operation="generate_content"
        )

        content = result.value
        content.confidence = result.confidence
        content.tier = result.tier
        return content

    async def classify_emotion(self, text: Optional[str]) -> EmotionClassification:
        """
        Label the emotion expressed in ``text``.

        The model answer is accepted only if it is one of ALLOWED_EMOTIONS;
        otherwise the keyword heuristic decides.

        Args:
            text: Free text, may be empty

        Returns:
            EmotionClassification: Label drawn from ALLOWED_EMOTIONS
        """
        text = text if isinstance(text, str) else ""
        raw_answers = []

        async def from_model() -> str:
            if not text.strip():
                raise ValueError("Nothing to classify")
            raw = await self._complete(
                prompts.EMOTIONAL_ANALYST,
                prompts.emotion_prompt(sanitize_interview_response(text), ALLOWED_EMOTIONS),
                temperature=0.3,
                max_tokens=10
            )
            raw_answers.append(raw)
            words = re.findall(r"[a-zA-Z]+", raw or "")
            label = words[0].lower() if words else ""
            if label not in ALLOWED_EMOTIONS:
                raise ValueError(f"Emotion '{label}' is not an allowed label")
            return label

        result = await self.emotion_policy.execute(
            from_model if self.ai_enabled else None,
            lambda: score_emotion(text),
            operation="classify_emotion"
        )

        return EmotionClassification(
            label=result.value,
            confidence=result.confidence,
            tier=result.tier,
            raw_answer=raw_answers[-1] if raw_answers else None
        )
