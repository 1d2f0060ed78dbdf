"""
Heirloom Error Models

This module contains the standardized error format for the Living Heirloom core
and the typed error kinds callers are expected to handle.
"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorKind(Enum):
    """Error taxonomy surfaced by the orchestration core."""
    VALIDATION = "validation_error"
    TIMEOUT = "timeout"
    NETWORK = "network_error"
    REMOTE_SERVICE = "remote_service_error"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    INSUFFICIENT_RESOURCES = "insufficient_resources"
    STORAGE = "storage_error"
    UNKNOWN = "unknown"


@dataclass(eq=False)
class HeirloomError(Exception):
    """Standardized error response format that can be raised as an exception"""
    severity: ErrorSeverity
    code: str
    user_message: str
    technical_details: Optional[str] = None
    suggested_action: Optional[str] = None
    timestamp: Optional[str] = None

    kind = ErrorKind.UNKNOWN
    is_retryable = True

    def __post_init__(self):
        if self.timestamp is None:
            from datetime import datetime
            self.timestamp = datetime.now().isoformat()

        # Initialize the Exception base class with the user message
        super().__init__(self.user_message)

    @classmethod
    def from_exception(cls, exception: Exception, user_message: str = None) -> 'HeirloomError':
        """
        Create a HeirloomError from an exception.

        Args:
            exception: The exception to convert
            user_message: Optional user-friendly message

        Returns:
            HeirloomError: Standardized error object
        """
        if isinstance(exception, HeirloomError):
            return exception

        if user_message is None:
            user_message = "An unexpected error occurred"

        from requests.exceptions import ConnectionError, Timeout, HTTPError

        if isinstance(exception, (ConnectionError, Timeout)):
            return NetworkError(
                severity=ErrorSeverity.ERROR,
                code="NETWORK_ERROR",
                user_message=user_message,
                technical_details=str(exception),
                suggested_action="Check your internet connection and try again"
            )
        if isinstance(exception, HTTPError):
            return RemoteServiceError(
                severity=ErrorSeverity.ERROR,
                code="REMOTE_SERVICE_ERROR",
                user_message=user_message,
                technical_details=str(exception),
                suggested_action="Check the service status and try again"
            )
        if isinstance(exception, MemoryError):
            return InsufficientResources(
                severity=ErrorSeverity.ERROR,
                code="INSUFFICIENT_RESOURCES",
                user_message=user_message,
                technical_details=str(exception) or "MemoryError",
                suggested_action="Close other applications and try again"
            )

        severity = ErrorSeverity.ERROR
        suggested_action = "Try again later or contact support if the problem persists"
        if isinstance(exception, (ValueError, TypeError)):
            suggested_action = "Check your input parameters and try again"

        return cls(
            severity=severity,
            code=exception.__class__.__name__.upper(),
            user_message=user_message,
            technical_details=str(exception),
            suggested_action=suggested_action
        )


class ValidationError(HeirloomError):
    """Bad caller input. Surfaced immediately and never retried silently."""
    kind = ErrorKind.VALIDATION
    is_retryable = False

    def __init__(self, user_message: str, field: Optional[str] = None, code: str = "VALIDATION_ERROR"):
        self.field = field
        super().__init__(
            severity=ErrorSeverity.WARNING,
            code=code,
            user_message=user_message,
            technical_details=f"field={field}" if field else None,
            suggested_action="Correct the input and try again"
        )


class ModelTimeoutError(HeirloomError):
    """Model load exceeded its time bound. Retryable."""
    kind = ErrorKind.TIMEOUT


class NetworkError(HeirloomError):
    """External service unreachable."""
    kind = ErrorKind.NETWORK


class RemoteServiceError(HeirloomError):
    """External service reachable but returned an error or an unusable payload."""
    kind = ErrorKind.REMOTE_SERVICE


class UnsupportedOperation(HeirloomError):
    """Permanent capability gap, e.g. speech synthesis on a local-origin voice model."""
    kind = ErrorKind.UNSUPPORTED_OPERATION
    is_retryable = False

    def __init__(self, user_message: str, technical_details: Optional[str] = None,
                 code: str = "UNSUPPORTED_OPERATION"):
        super().__init__(
            severity=ErrorSeverity.ERROR,
            code=code,
            user_message=user_message,
            technical_details=technical_details,
            suggested_action="Use a voice model created by the cloning service"
        )


class InsufficientResources(HeirloomError):
    """Model load failed because of memory or device constraints."""
    kind = ErrorKind.INSUFFICIENT_RESOURCES
    is_retryable = False


class StorageError(HeirloomError):
    """Persistence collaborator failed, including quota exhaustion."""
    kind = ErrorKind.STORAGE
