"""Retry handler with exponential backoff for transient failures."""

import logging
import random
import time
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar


T = TypeVar('T')


class RetryHandler:
    """
    Handles retry logic with exponential backoff and jitter.

    A call is retried when it raises one of ``exceptions`` or when
    ``retry_if`` says its result is a failure. Collection steps report
    failures as result objects, so most callers use ``retry_if``.
    """

    @staticmethod
    def call(
        func: Callable[[], T],
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exceptions: Tuple[type, ...] = (),
        retry_if: Optional[Callable[[T], bool]] = None,
        before_retry: Optional[Callable[[int], None]] = None,
        logger: Optional[logging.Logger] = None,
        extra: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], None] = time.sleep
    ) -> T:
        """
        Execute function with exponential backoff retry.

        Args:
            func: Callable to execute
            max_attempts: Maximum attempts including the first one
            base_delay: Initial delay in seconds; 0 retries immediately
            max_delay: Maximum delay in seconds
            exceptions: Exception types that trigger a retry
            retry_if: Predicate on the result that triggers a retry
            before_retry: Called with the failed attempt number before retrying
            logger: Optional logger for retry events
            extra: Logging context attached to every retry record
            sleep: Sleep function (injectable for tests)

        Returns:
            Result of the last attempt

        Raises:
            Exception: Last exception if all attempts raised
        """
        logger = logger or logging.getLogger(__name__)

        for attempt in range(1, max_attempts + 1):
            try:
                result = func()
            except exceptions as e:
                if attempt == max_attempts:
                    logger.error(f"All {max_attempts} attempts exhausted: {e}", extra=extra)
                    raise
                reason = str(e)
            else:
                if retry_if is None or not retry_if(result) or attempt == max_attempts:
                    return result
                reason = "result reported failure"

            if before_retry is not None:
                before_retry(attempt)

            if base_delay > 0:
                # Exponential backoff with 0-10% jitter
                delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
                total_delay = delay + random.uniform(0, delay * 0.1)
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} failed: {reason}. "
                    f"Retrying in {total_delay:.2f}s...",
                    extra=extra
                )
                sleep(total_delay)
            else:
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} failed: {reason}. Retrying",
                    extra=extra
                )

        raise RuntimeError("max_attempts must be at least 1")
