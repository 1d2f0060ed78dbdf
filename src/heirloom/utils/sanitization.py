"""
Input Sanitization Utilities

Cleans user-provided text before it reaches prompts, voice services or storage
while preserving the emotional content of interview answers.
"""

import re
from typing import Optional

_HTML_ENTITIES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_TAG = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)

MAX_NAME_LENGTH = 100
MAX_VOICE_NAME_LENGTH = 50
MAX_RESPONSE_LENGTH = 5000
MAX_FILE_NAME_LENGTH = 100


def _normalize_whitespace(text: str) -> str:
    # Collapse runs of spaces/tabs and cap blank lines at one
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def sanitize_text(value: Optional[str]) -> str:
    """
    HTML-escape text and normalize its whitespace.

    Args:
        value: Raw text

    Returns:
        str: Escaped text, empty for non-string input
    """
    if not value or not isinstance(value, str):
        return ""
    escaped = re.sub(r"[&<>\"'/]", lambda m: _HTML_ENTITIES[m.group(0)], value)
    return _normalize_whitespace(escaped)


def sanitize_name(value: Optional[str]) -> str:
    """Keep word characters, spaces, hyphens and apostrophes."""
    if not value or not isinstance(value, str):
        return ""
    cleaned = re.sub(r"[^\w\s'-]", "", value.strip())
    return re.sub(r"\s+", " ", cleaned)[:MAX_NAME_LENGTH]


def sanitize_voice_name(value: Optional[str]) -> str:
    """
    Clean a voice model name.

    Only ASCII letters, digits, spaces, hyphens and apostrophes survive, and the
    result is limited to 50 characters.
    """
    if not value or not isinstance(value, str):
        return ""
    cleaned = re.sub(r"[^a-zA-Z0-9\s'-]", "", value.strip())
    return re.sub(r"\s+", " ", cleaned).strip()[:MAX_VOICE_NAME_LENGTH]


def sanitize_interview_response(value: Optional[str]) -> str:
    """
    Lenient cleaning for interview answers.

    Punctuation is kept; script/iframe blocks, ``javascript:`` protocols and
    inline event handlers are removed.

    Args:
        value: Raw answer text

    Returns:
        str: Cleaned answer of at most 5000 characters
    """
    if not value or not isinstance(value, str):
        return ""
    cleaned = _normalize_whitespace(value)
    cleaned = _SCRIPT_TAG.sub("", cleaned)
    cleaned = _IFRAME_TAG.sub("", cleaned)
    cleaned = _JS_PROTOCOL.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    return cleaned.strip()[:MAX_RESPONSE_LENGTH]


def sanitize_file_name(value: Optional[str]) -> str:
    """Replace characters unsafe in file names with underscores."""
    if not value or not isinstance(value, str):
        return "untitled"
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", value.strip())
    cleaned = re.sub(r"_{2,}", "_", cleaned)[:MAX_FILE_NAME_LENGTH]
    return cleaned or "untitled"


def sanitize_error_message(error: object) -> str:
    """Strip paths, addresses and token-like strings from an error message."""
    if not error:
        return "An unknown error occurred"
    message = str(error)
    message = re.sub(r"/[^\s]+", "[path]", message)
    message = re.sub(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b", "[ip]", message)
    message = re.sub(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", "[email]", message)
    message = re.sub(r"\b[A-Za-z0-9]{20,}\b", "[token]", message)
    return message[:200]
