"""
Error Handler Utility

Centralized error formatting with user-friendly messages.

Provides:
- ErrorMessageFormatter: Formats errors with "[What happened] + [What to do]" pattern
- get_recovery_options: Maps an error to the recovery choices a caller can offer
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, List
from enum import Enum

from heirloom.models.error import HeirloomError, ErrorKind, ErrorSeverity


class ErrorCode(Enum):
    """Standard error codes for consistent error handling."""

    # Inference errors
    MODEL_LOAD_FAILED = "MODEL_LOAD_FAILED"
    MODEL_LOAD_TIMEOUT = "MODEL_LOAD_TIMEOUT"
    MODEL_MEMORY_ERROR = "MODEL_MEMORY_ERROR"
    MODEL_NOT_READY = "MODEL_NOT_READY"

    # Voice errors
    VOICE_NOT_FOUND = "VOICE_NOT_FOUND"
    VOICE_CLONE_FAILED = "VOICE_CLONE_FAILED"
    VOICE_SYNTHESIS_FAILED = "VOICE_SYNTHESIS_FAILED"
    VOICE_SYNTHESIS_UNSUPPORTED = "VOICE_SYNTHESIS_UNSUPPORTED"
    MICROPHONE_UNAVAILABLE = "MICROPHONE_UNAVAILABLE"
    RECORDING_TOO_SHORT = "RECORDING_TOO_SHORT"

    # Storage errors
    STORAGE_QUOTA_EXCEEDED = "STORAGE_QUOTA_EXCEEDED"
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"

    # Settings errors
    SETTINGS_SAVE_FAILED = "SETTINGS_SAVE_FAILED"

    # General errors
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"


# Format: "what" (what happened) + "action" (what to do)
ERROR_MESSAGE_TEMPLATES: Dict[str, Dict[str, object]] = {
    ErrorCode.MODEL_LOAD_FAILED.value: {
        "what": "AI unavailable",
        "action": "Templates will be used instead. You can retry loading the AI later.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.MODEL_LOAD_TIMEOUT.value: {
        "what": "AI initialization timed out",
        "action": "Check your connection and try again.",
        "severity": ErrorSeverity.WARNING
    },
    ErrorCode.MODEL_MEMORY_ERROR.value: {
        "what": "Insufficient memory for AI",
        "action": "Close other tabs or applications and try again.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.MODEL_NOT_READY.value: {
        "what": "The AI model is not ready",
        "action": "Wait for loading to finish or continue with templates.",
        "severity": ErrorSeverity.INFO
    },
    ErrorCode.VOICE_NOT_FOUND.value: {
        "what": "Voice '{voice}' was not found",
        "action": "The voice may have been deleted. Please select a different voice.",
        "severity": ErrorSeverity.WARNING
    },
    ErrorCode.VOICE_CLONE_FAILED.value: {
        "what": "Voice cloning failed",
        "action": "Try recording clearer samples with less background noise.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.VOICE_SYNTHESIS_FAILED.value: {
        "what": "Voice synthesis service is temporarily unavailable",
        "action": "Please try again later.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.VOICE_SYNTHESIS_UNSUPPORTED.value: {
        "what": "Local voice synthesis is not yet available",
        "action": "Please use a cloned voice from the voice service for speech generation.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.MICROPHONE_UNAVAILABLE.value: {
        "what": "No microphone detected",
        "action": "Please ensure your microphone is connected and try again.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.RECORDING_TOO_SHORT.value: {
        "what": "Recording is too short",
        "action": "Please record for at least {seconds} seconds.",
        "severity": ErrorSeverity.WARNING
    },
    ErrorCode.STORAGE_QUOTA_EXCEEDED.value: {
        "what": "Storage space full",
        "action": "Remove old drafts or unused voice models to free up space.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.STORAGE_WRITE_FAILED.value: {
        "what": "There was a problem saving your data",
        "action": "Please try again.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.ENCRYPTION_FAILED.value: {
        "what": "Your content could not be encrypted",
        "action": "Nothing was saved. Please try again.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.SETTINGS_SAVE_FAILED.value: {
        "what": "Could not save your settings",
        "action": "Check that the settings folder is writable.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.UNEXPECTED_ERROR.value: {
        "what": "An unexpected error occurred",
        "action": "Please try again.",
        "severity": ErrorSeverity.ERROR
    },
    ErrorCode.NETWORK_ERROR.value: {
        "what": "Network connection failed",
        "action": "Check your internet connection and try again.",
        "severity": ErrorSeverity.ERROR
    },
}


class ErrorMessageFormatter:
    """
    Formats error messages with user-friendly patterns.

    All errors follow the pattern "[What happened] + [What to do]".
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._templates = ERROR_MESSAGE_TEMPLATES.copy()

    def _render(self, error_code: str, **kwargs) -> Dict[str, object]:
        template = self._templates.get(error_code)
        if not template:
            template = self._templates[ErrorCode.UNEXPECTED_ERROR.value]
            self.logger.warning(f"Unknown error code: {error_code}")

        what = str(template["what"])
        action = str(template["action"])
        try:
            what = what.format(**kwargs)
            action = action.format(**kwargs)
        except KeyError as e:
            self.logger.warning(f"Missing variable in error message: {e}")

        return {"what": what, "action": action, "severity": template.get("severity", ErrorSeverity.ERROR)}

    def format_error(self, error_code: str, **kwargs) -> str:
        """
        Format an error message using the standard template.

        Args:
            error_code: Error code from ErrorCode enum
            **kwargs: Variables to substitute in the message (e.g., voice="Mom")

        Returns:
            Formatted user-friendly error message
        """
        rendered = self._render(error_code, **kwargs)
        return f"{rendered['what']}. {rendered['action']}"

    def format_heirloom_error(self, error: HeirloomError) -> str:
        """Format a HeirloomError into a user-friendly message."""
        if error.suggested_action:
            return f"{error.user_message}. {error.suggested_action}"
        return error.user_message

    def get_severity(self, error_code: str) -> ErrorSeverity:
        template = self._templates.get(error_code)
        if template and "severity" in template:
            return template["severity"]
        return ErrorSeverity.ERROR

    def create_error(
        self,
        error_code: str,
        technical_details: Optional[str] = None,
        error_cls: type = HeirloomError,
        **kwargs
    ) -> HeirloomError:
        """
        Create a complete HeirloomError from an error code.

        Args:
            error_code: Error code from ErrorCode enum
            technical_details: Optional technical details for logging
            error_cls: HeirloomError subclass to instantiate
            **kwargs: Variables to substitute in the message

        Returns:
            HeirloomError with formatted message
        """
        rendered = self._render(error_code, **kwargs)
        return error_cls(
            severity=rendered["severity"],
            code=error_code,
            user_message=rendered["what"],
            suggested_action=rendered["action"],
            technical_details=technical_details
        )


@dataclass
class RecoveryOptions:
    """
    Recovery choices a caller can present after a failure.

    Attributes:
        title: Short headline
        message: Explanation of what went wrong
        actions: Action labels, primary first
        can_retry: Whether retrying the same operation may succeed
        fallback_message: What still works without the failed capability
    """
    title: str
    message: str
    actions: List[str] = field(default_factory=list)
    can_retry: bool = True
    fallback_message: Optional[str] = None


def _ai_recovery(error: Exception) -> RecoveryOptions:
    text = str(error).lower()
    kind = getattr(error, "kind", None)

    if kind is ErrorKind.INSUFFICIENT_RESOURCES or "memory" in text or "insufficient" in text:
        return RecoveryOptions(
            title="Memory Limitation",
            message="Your device may not have enough memory to run AI features.",
            actions=["Close Other Tabs", "Use Template Mode"],
            can_retry=False,
            fallback_message="Template mode provides pre-written messages you can customize."
        )

    if kind in (ErrorKind.TIMEOUT, ErrorKind.NETWORK) or "timeout" in text or "network" in text:
        return RecoveryOptions(
            title="AI Connection Issue",
            message="The AI is taking longer than expected to respond.",
            actions=["Retry AI Features", "Continue Without AI"],
            can_retry=True,
            fallback_message="You can still create heirlooms using templates."
        )

    return RecoveryOptions(
        title="AI Features Unavailable",
        message="AI features are temporarily unavailable.",
        actions=["Try Again", "Continue Without AI"],
        can_retry=True,
        fallback_message="Templates help you create messages without AI assistance."
    )


def _voice_recovery(error: Exception) -> RecoveryOptions:
    text = str(error).lower()
    kind = getattr(error, "kind", None)

    if kind is ErrorKind.UNSUPPORTED_OPERATION:
        return RecoveryOptions(
            title="Voice Synthesis Unavailable",
            message="This voice was saved locally and cannot generate speech.",
            actions=["Choose Another Voice", "Create Text Heirloom"],
            can_retry=False,
            fallback_message="Your recorded samples are still saved with the voice."
        )

    if "permission" in text or "notallowed" in text:
        return RecoveryOptions(
            title="Microphone Permission Required",
            message="Voice cloning requires microphone access to record your voice samples.",
            actions=["Grant Permission", "Skip Voice Features"],
            can_retry=True,
            fallback_message="You can still create written heirlooms without voice features."
        )

    if "no microphone" in text or "notfound" in text:
        return RecoveryOptions(
            title="No Microphone Detected",
            message="Voice cloning requires a working microphone.",
            actions=["Check Microphone", "Continue Without Voice"],
            can_retry=False,
            fallback_message="Written heirlooms are just as meaningful."
        )

    if kind in (ErrorKind.NETWORK, ErrorKind.REMOTE_SERVICE) or "api" in text:
        return RecoveryOptions(
            title="Voice Service Unavailable",
            message="The voice cloning service is temporarily unavailable.",
            actions=["Try Again Later", "Create Text Heirloom"],
            can_retry=True,
            fallback_message="Your written words will be just as precious to your loved ones."
        )

    return RecoveryOptions(
        title="Voice Features Unavailable",
        message="Voice cloning encountered an issue.",
        actions=["Try Again", "Continue Without Voice"],
        can_retry=True,
        fallback_message="Written messages can be just as powerful and meaningful."
    )


def _storage_recovery(error: Exception) -> RecoveryOptions:
    text = str(error).lower()
    if getattr(error, "code", None) == ErrorCode.STORAGE_QUOTA_EXCEEDED.value or "quota" in text:
        return RecoveryOptions(
            title="Storage Space Full",
            message="Storage is full. This can happen with many heirlooms or large voice recordings.",
            actions=["Clear Old Data", "Export Heirlooms"],
            can_retry=False,
            fallback_message="Export your heirlooms and clear old drafts to free up space."
        )

    return RecoveryOptions(
        title="Storage Issue",
        message="There was a problem saving your data.",
        actions=["Try Again", "Export Current Work"],
        can_retry=True,
        fallback_message="Consider exporting your work as a backup."
    )


def get_recovery_options(error: Exception, context: Optional[str] = None) -> RecoveryOptions:
    """
    Determine recovery options for an error.

    Args:
        error: The failure to recover from
        context: "ai", "voice" or "storage"; inferred from the error when omitted

    Returns:
        RecoveryOptions: Choices to present to the user
    """
    kind = getattr(error, "kind", None)
    text = str(error).lower()

    if context == "ai" or kind in (ErrorKind.TIMEOUT, ErrorKind.INSUFFICIENT_RESOURCES) \
            or any(word in text for word in ("ai ", "llm", "model load")):
        return _ai_recovery(error)

    if context == "voice" or kind is ErrorKind.UNSUPPORTED_OPERATION \
            or any(word in text for word in ("voice", "microphone", "audio")):
        return _voice_recovery(error)

    if context == "storage" or kind is ErrorKind.STORAGE \
            or any(word in text for word in ("storage", "database", "quota")):
        return _storage_recovery(error)

    return RecoveryOptions(
        title="Something Went Wrong",
        message="An unexpected error occurred, but your memories are safe.",
        actions=["Try Again", "View My Heirlooms"],
        can_retry=True,
        fallback_message="If the problem persists, restart the application."
    )


def format_error(error_code: str, **kwargs) -> str:
    """Convenience function to format an error message."""
    return ErrorMessageFormatter().format_error(error_code, **kwargs)


def create_error(error_code: str, technical_details: Optional[str] = None, **kwargs) -> HeirloomError:
    """Convenience function to create a HeirloomError."""
    return ErrorMessageFormatter().create_error(error_code, technical_details, **kwargs)
