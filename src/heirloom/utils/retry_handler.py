"""
Retry Handler

Runs a blocking HTTP call with exponential backoff. Both service clients call
it from a worker thread, so waiting between attempts blocks that thread only.
"""

import time
import logging
from typing import Callable, List, Optional, TypeVar

from heirloom.models.retry_config import RetryConfig, RetryAttempt
from heirloom.models.error import HeirloomError

T = TypeVar('T')


class RetryHandler:
    """
    Applies a RetryConfig to a callable.

    HeirloomErrors and permanent failures are raised at once (the latter
    converted with ``HeirloomError.from_exception``); transient failures are
    retried until attempts or ``total_timeout`` run out.
    """

    def __init__(self, config: RetryConfig, logger: Optional[logging.Logger] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._sleep = sleep

    def _notify(self, attempt: RetryAttempt) -> None:
        if self.config.on_retry_callback is None:
            return
        try:
            self.config.on_retry_callback(attempt)
        except Exception as e:
            self.logger.warning(f"Retry callback failed: {e}")

    def execute(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Call ``func(*args, **kwargs)`` until it succeeds.

        Returns:
            T: The first successful result

        Raises:
            HeirloomError: Permanent failure, or every attempt failed
        """
        attempts: List[RetryAttempt] = []
        deadline = time.time() + self.config.total_timeout

        for attempt_number in range(1, self.config.max_attempts + 1):
            try:
                result = func(*args, **kwargs)
            except HeirloomError:
                raise
            except Exception as e:
                if not self.config.is_retryable_error(e):
                    self.logger.error(f"Non-retryable error: {e}")
                    raise HeirloomError.from_exception(e, "Operation failed with non-retryable error") from e

                attempt = RetryAttempt(attempt_number, e, self.config.calculate_delay(attempt_number))
                attempts.append(attempt)
                self.logger.debug(f"Attempt {attempt_number}/{self.config.max_attempts} failed: {e}")
                self._notify(attempt)

                if attempt_number == self.config.max_attempts:
                    break
                if time.time() + attempt.delay_seconds >= deadline:
                    self.logger.warning("Next retry would exceed the total timeout, giving up")
                    break
                if attempt.delay_seconds > 0:
                    self.logger.info(self.config.describe_retry(attempt))
                    self._sleep(attempt.delay_seconds)
                continue

            if attempts:
                self.logger.info(f"Succeeded on attempt {attempt_number} after {len(attempts)} failure(s)")
            return result

        self.logger.error(f"All {len(attempts)} attempts failed")
        raise self.config.create_retry_error(attempts)
