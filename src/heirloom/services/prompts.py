"""
Prompt Library

System prompts, question template pools, tone styles and per-emotion
follow-ups used by the GenerationService.
"""

import random
from typing import Dict, List, Optional, Tuple

INTERVIEW_CONDUCTOR = """You are an empathetic AI interviewer specializing in helping people create meaningful time capsule messages. Your role is to conduct gentle, thoughtful interviews that draw out the most important stories, wisdom, and emotions people want to preserve.

Core Principles:
- Show genuine empathy and emotional intelligence
- Ask one thoughtful question at a time
- Build naturally on previous responses
- Recognize and respond to emotional cues
- Help people feel safe to be vulnerable
- Guide them toward meaningful revelations
- Use warm, caring, human-like language

Your questions should feel like they come from someone who truly cares about preserving their story."""

MESSAGE_WRITER = """You are a master writer specializing in creating deeply meaningful, emotionally resonant time capsule messages. You transform raw interview responses into beautiful, heartfelt messages that preserve the person's authentic voice while elevating their words with eloquence and emotional depth.

Core Principles:
- Preserve the person's authentic voice and personality
- Create emotional resonance without being overly sentimental
- Use elegant, timeless language that will age beautifully
- Structure messages with natural, flowing narrative
- Include specific memories and details that make it personal
- End with hope, love, and forward-looking sentiment
- Make every word count and carry emotional weight

The final message should feel like it truly came from the person's heart, just expressed more beautifully than they could have managed alone."""

EMOTIONAL_ANALYST = """You are an emotional intelligence expert who can read between the lines of what people write to understand their deeper emotional state. You help identify the underlying feelings, needs, and emotional context that inform how to best support someone in their journey of creating a time capsule message.

Your analysis helps determine:
- Current emotional state and needs
- Level of vulnerability and openness
- What kind of support or encouragement they need
- How to adapt the conversation to their emotional state
- When to go deeper vs. when to provide comfort

Respond with nuanced emotional insights that help create a more empathetic experience."""

QUESTION_TEMPLATES: Dict[str, Tuple[str, ...]] = {
    "OPENING": (
        "What's a moment from your life that still makes you smile when you think about it?",
        "If you could sit down with someone you love and share one story, what would it be?",
        "What's something about yourself that you hope people will always remember?",
    ),
    "MEMORIES": (
        "Can you tell me about a time when you felt most proud of yourself?",
        "What's a small, everyday moment that meant more to you than it might have seemed?",
        "Who has had the biggest impact on your life, and what did they teach you?",
        "What's a tradition or ritual that's been important to your family?",
    ),
    "WISDOM": (
        "What's one piece of advice you wish someone had given you when you were younger?",
        "What have you learned about love that you'd want to pass on?",
        "What mistake taught you the most valuable lesson?",
        "What do you know now that you wish you could tell your younger self?",
    ),
    "FEELINGS": (
        "How do you want to be remembered by the people you love most?",
        "What do you hope people will say about the kind of person you were?",
        "What's something you've always wanted to tell someone but never found the right moment?",
        "What does it mean to you to live a meaningful life?",
    ),
    "FUTURE": (
        "What dreams do you have for the people you love?",
        "What kind of world do you hope future generations will create?",
        "What values do you most want to pass down?",
        "What would you want someone to know if they were facing a difficult time?",
    ),
}

TONE_STYLES: Dict[str, Dict[str, object]] = {
    "heartfelt": {
        "description": "Warm, personal, and emotionally direct",
        "characteristics": ["intimate", "sincere", "emotionally open", "conversational"],
    },
    "wise": {
        "description": "Thoughtful, reflective, and guidance-focused",
        "characteristics": ["contemplative", "insightful", "measured", "profound"],
    },
    "poetic": {
        "description": "Lyrical, metaphorical, and beautifully crafted",
        "characteristics": ["artistic", "metaphorical", "flowing", "evocative"],
    },
    "conversational": {
        "description": "Natural, casual, and approachable",
        "characteristics": ["relaxed", "friendly", "accessible", "warm"],
    },
    "inspirational": {
        "description": "Uplifting, motivational, and forward-looking",
        "characteristics": ["encouraging", "optimistic", "empowering", "hopeful"],
    },
}

EMOTIONAL_RESPONSES: Dict[str, Dict[str, str]] = {
    "joyful": {
        "encouragement": "Your joy is infectious! Tell me more about what brings you such happiness.",
        "follow_up": "What other moments have filled you with this same kind of joy?",
    },
    "nostalgic": {
        "encouragement": "These memories are precious treasures. Thank you for sharing them with me.",
        "follow_up": "What made this memory so special that it stayed with you all this time?",
    },
    "melancholic": {
        "encouragement": "I can feel the depth of emotion in your words. These feelings are important too.",
        "follow_up": ("Sometimes our most meaningful memories carry both joy and sadness. "
                      "What would you want someone to understand about this?"),
    },
    "grateful": {
        "encouragement": "Your gratitude is beautiful and speaks to the richness of your relationships.",
        "follow_up": "How has this gratitude shaped the way you see the world?",
    },
    "vulnerable": {
        "encouragement": "Thank you for trusting me with something so personal. Your openness is a gift.",
        "follow_up": "What would you want someone to know if they were going through something similar?",
    },
    "hopeful": {
        "encouragement": ("Your hope is inspiring and will surely touch the hearts of those "
                          "who receive this message."),
        "follow_up": "What keeps this hope alive in your heart?",
    },
}

# Ordered; ties in keyword scoring go to the earlier emotion
EMOTION_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("joyful", ("happy", "joy", "excited", "wonderful", "amazing", "love")),
    ("nostalgic", ("remember", "used to", "back then", "childhood", "past")),
    ("grateful", ("thankful", "blessed", "appreciate", "grateful", "lucky")),
    ("melancholic", ("sad", "miss", "lost", "gone", "difficult", "hard")),
    ("hopeful", ("hope", "future", "dream", "wish", "believe", "will")),
)


def question_pool(category: Optional[str]) -> Tuple[str, ...]:
    """Template pool for a category; unknown categories use OPENING."""
    key = (category or "").strip().upper()
    return QUESTION_TEMPLATES.get(key, QUESTION_TEMPLATES["OPENING"])


def pick_question(category: Optional[str], rng: Optional[random.Random] = None) -> str:
    """Pick a template question uniformly from the category pool."""
    return (rng or random).choice(question_pool(category))


def follow_up_suggestions(emotion: str) -> List[str]:
    entry = EMOTIONAL_RESPONSES.get(emotion)
    return [entry["follow_up"]] if entry else []


def build_interview_context(responses: Dict[str, str], emotion: str, category: str) -> str:
    """Summarize the interview so far: answer count, the last two answers, emotion and focus."""
    recent = list(responses.items())[-2:]
    recent_text = ", ".join(f'"{answer}"' for _, answer in recent)
    return (
        f"Interview progress: {len(responses)} questions answered\n"
        f"Recent responses: {recent_text}\n"
        f"Current emotional state: {emotion}\n"
        f"Focus area: {category}"
    )


def question_prompt(context: str, emotion: str, category: str, index: int) -> str:
    return f"""Based on our conversation so far, generate the next thoughtful question for this person's living heirloom interview.

Context: {context}
Current emotional state: {emotion}
Question category: {category}
Question number: {index + 1}

Generate a single, empathetic question that builds naturally on their previous responses. The question should feel personal and help them share something meaningful for their family legacy.

Requirements:
- One question only
- 10-50 words
- Emotionally appropriate
- Builds on previous responses
- Helps preserve family memories"""


def content_prompt(response_text: str, tone: str, length: str, target_words: int) -> str:
    style = TONE_STYLES.get(tone)
    style_line = f"\nStyle: {style['description']}\n" if style else ""
    return f"""Transform these interview responses into a beautiful, {tone} living heirloom message of {length} length (approximately {target_words} words):

{response_text}
{style_line}
Create a message that:
- Preserves their authentic voice and personality
- Flows naturally and emotionally
- Includes specific memories and details they shared
- Ends with hope and love for future generations
- Feels timeless and meaningful as a family legacy
- Uses warm, personal language appropriate for family

Format:
Title: [Meaningful title]

[Message content]

Requirements:
- Target {target_words} words
- Include specific details from their responses
- Maintain {tone} tone throughout
- End with love and hope"""


def emotion_prompt(text: str, allowed: Tuple[str, ...]) -> str:
    return f"""Analyze the emotional state of this person based on their response. Respond with a single word that best describes their current emotional state:

"{text}"

Choose from: {", ".join(allowed)}"""
