"""
Living Heirloom - Orchestration Core

Interview-driven message generation with an on-device language model,
voice cloning over a remote service with local fallback, and encrypted
storage of time capsules.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

__title__ = "Living Heirloom"
__description__ = "Orchestration core for AI-written, voice-cloned time capsules"

__all__ = [
    "__version__",
    "__title__",
    "__description__"
]
