"""
Retry Configuration Models

Backoff settings for HTTP calls to the voice service and the local inference
server, and the classification that decides which failures are worth another
attempt.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Callable
from enum import Enum
import time
import random
from requests.exceptions import ConnectionError, Timeout, HTTPError

from heirloom.models.error import HeirloomError, ErrorSeverity, NetworkError, RemoteServiceError


class FailureKind(Enum):
    """What went wrong with an HTTP call, as far as retrying is concerned."""
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    PERMANENT = "permanent"

    @property
    def is_transient(self) -> bool:
        return self is not FailureKind.PERMANENT

    @property
    def is_connectivity(self) -> bool:
        return self in (FailureKind.CONNECTION, FailureKind.TIMEOUT)


_FAILURE_DESCRIPTIONS = {
    FailureKind.CONNECTION: "connection issue",
    FailureKind.TIMEOUT: "timeout",
    FailureKind.SERVICE_UNAVAILABLE: "service temporarily unavailable",
    FailureKind.RATE_LIMITED: "rate limit exceeded",
    FailureKind.SERVER_ERROR: "temporary server error",
    FailureKind.PERMANENT: "request rejected",
}


def classify_failure(error: Exception) -> FailureKind:
    """
    Classify an exception raised by a ``requests`` call.

    HTTP 429 and 5xx responses are transient; other statuses, and anything
    that is not a ``requests`` error, are permanent.
    """
    if isinstance(error, Timeout):
        return FailureKind.TIMEOUT
    if isinstance(error, ConnectionError):
        return FailureKind.CONNECTION
    if isinstance(error, HTTPError):
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None) if response is not None else None
        if status == 503:
            return FailureKind.SERVICE_UNAVAILABLE
        if status == 429:
            return FailureKind.RATE_LIMITED
        if status is not None and 500 <= status <= 599:
            return FailureKind.SERVER_ERROR
    return FailureKind.PERMANENT


@dataclass
class RetryAttempt:
    """A failed attempt and the wait scheduled after it."""
    attempt_number: int
    error: Exception
    delay_seconds: float
    timestamp: float = field(default_factory=time.time)

    @property
    def kind(self) -> FailureKind:
        return classify_failure(self.error)


@dataclass
class RetryConfig:
    """
    Exponential backoff settings.

    Attributes:
        max_attempts: Total attempts including the first
        initial_delay: Wait after the first failure, in seconds
        max_delay: Upper bound for any single wait
        exponential_base: Growth factor between consecutive waits
        jitter: Randomize each wait by +/-10%
        request_timeout: Per-request timeout the caller uses, in seconds
        total_timeout: No new attempt starts after this many seconds
        on_retry_callback: Called with each RetryAttempt before waiting
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    request_timeout: float = 30.0
    total_timeout: float = 300.0
    on_retry_callback: Optional[Callable[[RetryAttempt], None]] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not 0 <= self.initial_delay <= self.max_delay:
            raise ValueError("delays must satisfy 0 <= initial_delay <= max_delay")
        if self.exponential_base <= 1:
            raise ValueError("exponential_base must be > 1")
        if self.request_timeout <= 0 or self.total_timeout < self.request_timeout:
            raise ValueError("timeouts must satisfy 0 < request_timeout <= total_timeout")

    def calculate_delay(self, attempt_number: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        if attempt_number <= 0:
            return 0.0
        delay = min(self.initial_delay * self.exponential_base ** (attempt_number - 1), self.max_delay)
        if self.jitter:
            delay += random.uniform(-0.1 * delay, 0.1 * delay)
        return max(0.0, delay)

    def is_retryable_error(self, error: Exception) -> bool:
        return classify_failure(error).is_transient

    def describe_retry(self, attempt: RetryAttempt) -> str:
        reason = _FAILURE_DESCRIPTIONS[attempt.kind]
        return (f"Retrying due to {reason} "
                f"(attempt {attempt.attempt_number}/{self.max_attempts}, waiting {attempt.delay_seconds:.1f}s)")

    def create_retry_error(self, attempts: List[RetryAttempt]) -> HeirloomError:
        """
        Error raised once every attempt has failed.

        Connectivity failures become NetworkError; failures reported by the
        service become RemoteServiceError.
        """
        if not attempts:
            return RemoteServiceError(
                severity=ErrorSeverity.ERROR,
                code="RETRY_FAILED",
                user_message="Operation failed",
                suggested_action="Try again later"
            )

        count = len(attempts)
        kinds = {attempt.kind for attempt in attempts}
        details = f"Last error: {attempts[-1].error}"

        if FailureKind.CONNECTION in kinds:
            return NetworkError(
                severity=ErrorSeverity.ERROR,
                code="RETRY_EXHAUSTED",
                user_message=f"Network connectivity issues (failed after {count} attempts)",
                technical_details=details,
                suggested_action="Check your internet connection and try again"
            )
        if FailureKind.TIMEOUT in kinds:
            return NetworkError(
                severity=ErrorSeverity.WARNING,
                code="RETRY_EXHAUSTED",
                user_message=f"Request timeout (failed after {count} attempts)",
                technical_details=details,
                suggested_action="Check your connection and try again"
            )

        if FailureKind.SERVICE_UNAVAILABLE in kinds:
            headline, action = "Service temporarily unavailable", "The service may be overloaded. Try again in a few minutes"
        elif FailureKind.RATE_LIMITED in kinds:
            headline, action = "Rate limit exceeded", "Wait a moment before trying again"
        else:
            headline, action = "Service error", "Try again later"

        return RemoteServiceError(
            severity=ErrorSeverity.ERROR,
            code="RETRY_EXHAUSTED",
            user_message=f"{headline} (failed after {count} attempts)",
            technical_details=details,
            suggested_action=action
        )


# Remote voice service: uploads can be slow, so waits are generous
VOICE_SERVICE_RETRY = RetryConfig(max_attempts=3, initial_delay=1.0, max_delay=60.0)

# Local inference server: fail fast so generation can fall back to templates
LOCAL_SERVER_RETRY = RetryConfig(
    max_attempts=2,
    initial_delay=0.5,
    max_delay=5.0,
    jitter=False,
    request_timeout=10.0,
    total_timeout=30.0
)
