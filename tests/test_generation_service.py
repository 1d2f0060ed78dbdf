"""Tests for GenerationService."""

import random

import pytest

from heirloom.models.app_config import AIConfig, FeatureFlags
from heirloom.models.error import ValidationError
from heirloom.models.generation import ALLOWED_EMOTIONS
from heirloom.models.service_enums import FallbackTier
from heirloom.services import prompts
from heirloom.services.generation_service import (
    DEFAULT_TITLE, GenerationService, clean_question, compose_fallback_letter, parse_generated_content,
    score_emotion
)
from heirloom.services.model_lifecycle_manager import ModelLifecycleManager

from conftest import FakeEngine, FakeRuntime


LETTER = (
    "Title: For My Daughter\n\n"
    "My dearest Anna, I have watched you grow into someone kind and brave, "
    "and I want you to carry these words with you wherever you go."
)

RESPONSES = {
    "What's a moment from your life that still makes you smile?": "The day you were born.",
    "What advice would you pass on?": "Be patient with yourself.",
}


def _service(answers=None, runtime_error=None, enable_ai=True, ai_config=None):
    engine = FakeEngine(answers or [])
    runtime = FakeRuntime(engine=engine, error=runtime_error)
    config = ai_config or AIConfig(warmup_enabled=False)
    manager = ModelLifecycleManager(runtime, config)
    service = GenerationService(manager, config, FeatureFlags(enable_ai=enable_ai), rng=random.Random(7))
    return service, engine, runtime


# ---------------------------------------------------------------
# Questions
# ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_question_from_model_is_cleaned():
    service, engine, _ = _service(['"What is a song that reminds you of home"'])

    result = await service.generate_question(RESPONSES, "joyful", "memories", index=2)

    assert result.text == "What is a song that reminds you of home?"
    assert result.tier is FallbackTier.PRIMARY
    assert result.confidence == 0.8
    assert result.emotional_tone == "joyful"
    assert result.suggestions == [prompts.EMOTIONAL_RESPONSES["joyful"]["follow_up"]]
    assert engine.calls[0]["max_tokens"] == 150


@pytest.mark.asyncio
async def test_short_model_question_falls_back_to_template():
    service, _, _ = _service(["Why?"])

    result = await service.generate_question(RESPONSES, "hopeful", "future")

    assert result.tier is FallbackTier.TERTIARY
    assert result.confidence == 0.3
    assert result.text in prompts.question_pool("future")
    assert result.text.endswith("?")


@pytest.mark.asyncio
async def test_model_load_failure_falls_back_to_template():
    service, _, _ = _service(runtime_error=RuntimeError("weights missing"))

    result = await service.generate_question({}, "reflective", "wisdom")

    assert result.tier is FallbackTier.TERTIARY
    assert result.text in prompts.question_pool("wisdom")


@pytest.mark.asyncio
async def test_disabled_ai_never_loads_model():
    service, engine, runtime = _service(["What do you treasure most today?"], enable_ai=False)

    result = await service.generate_question(RESPONSES, "joyful", "opening")

    assert result.tier is FallbackTier.TERTIARY
    assert runtime.load_count == 0
    assert engine.calls == []


@pytest.mark.asyncio
async def test_template_questions_all_end_with_question_mark():
    service, _, _ = _service(enable_ai=False)
    for category in ("opening", "memories", "wisdom", "feelings", "future", "unknown"):
        for _ in range(10):
            result = await service.generate_question({}, "reflective", category)
            assert result.text.endswith("?")


@pytest.mark.asyncio
async def test_negative_index_is_rejected():
    service, _, _ = _service()

    with pytest.raises(ValidationError):
        await service.generate_question({}, "joyful", "opening", index=-1)


def test_clean_question_truncates_long_text():
    text = clean_question("Tell me " + "about that summer " * 30)

    assert len(text) <= 300
    assert text.endswith("...?")


def test_clean_question_rejects_empty_and_short():
    with pytest.raises(ValueError):
        clean_question("   ")
    with pytest.raises(ValueError):
        clean_question("Why")


# ---------------------------------------------------------------
# Content
# ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_content_from_model_extracts_title():
    service, engine, _ = _service([LETTER])

    result = await service.generate_content(RESPONSES, tone="heartfelt", length="short")

    assert result.title == "For My Daughter"
    assert "Title:" not in result.content
    assert result.content.startswith("My dearest Anna")
    assert result.tier is FallbackTier.PRIMARY
    assert result.confidence == 1.0
    assert result.word_count == len(result.content.split())
    assert engine.calls[0]["max_tokens"] <= 300


@pytest.mark.asyncio
async def test_content_token_budget_is_capped_by_config():
    service, engine, _ = _service([LETTER], ai_config=AIConfig(warmup_enabled=False, max_tokens=120))

    await service.generate_content(RESPONSES, length="long")

    assert engine.calls[0]["max_tokens"] == 120


@pytest.mark.asyncio
async def test_content_survives_failing_completion():
    service, _, _ = _service([RuntimeError("inference crashed")])

    result = await service.generate_content(RESPONSES, tone="wise")

    assert result.content
    assert result.title == "Wisdom for Tomorrow"
    assert "The day you were born." in result.content
    assert result.tier is FallbackTier.TERTIARY
    assert result.confidence == 0.3


@pytest.mark.asyncio
async def test_too_short_model_content_uses_template():
    service, _, _ = _service(["Title: Hi\n\nShort."])

    result = await service.generate_content(RESPONSES)

    assert result.tier is FallbackTier.TERTIARY
    assert result.content.startswith("My Dear One,")


@pytest.mark.asyncio
@pytest.mark.parametrize("responses", [None, {}, {"Question?": "   "}, {"Question?": ""}])
async def test_content_requires_an_answer(responses):
    service, _, _ = _service([LETTER])

    with pytest.raises(ValidationError):
        await service.generate_content(responses)


def test_parse_generated_content_without_title_uses_default():
    content, title = parse_generated_content("Just a letter body.")
    assert content == "Just a letter body."
    assert title == DEFAULT_TITLE


def test_fallback_letter_uses_question_keywords():
    letter = compose_fallback_letter({
        "What wisdom do you want to share?": "Kindness first.",
        "Anything else?": "Call your grandmother.",
    })

    assert "Something I've learned that I want to share with you: Kindness first." in letter
    assert "Call your grandmother." in letter
    assert letter.endswith("[Your Name]")


# ---------------------------------------------------------------
# Emotion
# ---------------------------------------------------------------

@pytest.mark.asyncio
async def test_emotion_from_model():
    service, _, _ = _service(["Nostalgic."])

    result = await service.classify_emotion("I remember the old house by the lake.")

    assert result.label == "nostalgic"
    assert result.tier is FallbackTier.PRIMARY
    assert result.raw_answer == "Nostalgic."


@pytest.mark.asyncio
async def test_unknown_model_label_uses_keywords():
    service, _, _ = _service(["confused"])

    result = await service.classify_emotion("I am so thankful and blessed.")

    assert result.label == "grateful"
    assert result.tier is FallbackTier.TERTIARY


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "asdf qwerty", "I miss you", "x" * 6000, None])
async def test_emotion_label_is_always_allowed(text):
    service, _, _ = _service(["banana"])

    result = await service.classify_emotion(text)

    assert result.label in ALLOWED_EMOTIONS


def test_score_emotion_ties_go_to_earlier_emotion():
    assert score_emotion("happy but sad") == "joyful"
    assert score_emotion("") == "reflective"
    assert score_emotion("I hope and dream and wish") == "hopeful"
