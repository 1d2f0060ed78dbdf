"""
Timeout Utilities

Bounds awaitables with ``asyncio.wait_for`` and reports expiry as a typed,
retryable ModelTimeoutError.
"""

import asyncio
from typing import Awaitable, TypeVar

from heirloom.models.error import ModelTimeoutError, ErrorSeverity

T = TypeVar('T')


async def run_with_timeout(awaitable: Awaitable[T], timeout_seconds: float,
                           message: str = "Operation timed out") -> T:
    """
    Await ``awaitable`` for at most ``timeout_seconds``.

    The awaitable is cancelled on expiry.

    Args:
        awaitable: Coroutine or future to await
        timeout_seconds: Upper bound in seconds
        message: User message for the raised error

    Returns:
        T: The awaitable's result

    Raises:
        ModelTimeoutError: If the bound is exceeded
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        raise ModelTimeoutError(
            severity=ErrorSeverity.WARNING,
            code="MODEL_LOAD_TIMEOUT",
            user_message=message,
            technical_details=f"Exceeded {timeout_seconds:.1f}s",
            suggested_action="Check your connection and try again"
        ) from e
