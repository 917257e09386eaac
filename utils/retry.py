# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Retry Utilities - Linear backoff matching the upstream throttle windows
"""
import time
import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

# Canvas answers 403 (and sometimes 429) when a token is throttled. A plain 403 is a
# permission error and must not be retried.
RATE_LIMIT_MESSAGE = 'rate limit exceeded'
RATE_LIMIT_REMAINING_HEADER = 'X-Rate-Limit-Remaining'


def is_throttled(response: requests.Response) -> bool:
    """True for 429, and for a 403 that Canvas sent because the rate limit ran out"""
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    if RATE_LIMIT_MESSAGE in (response.text or '').lower():
        return True
    remaining = response.headers.get(RATE_LIMIT_REMAINING_HEADER)
    if remaining is None:
        return False
    try:
        return float(remaining) <= 0
    except ValueError:
        return False


def should_retry(
    attempt: int,
    response: Optional[requests.Response] = None,
    exception: Optional[Exception] = None,
    max_retries: int = 5
) -> bool:
    """
    Decide if a request should be attempted again

    Args:
        attempt: Number of retries already performed
        response: The response received, if any
        exception: The connection-level exception raised, if any
        max_retries: Maximum number of retry attempts

    Returns:
        True if another attempt should be made
    """
    if attempt >= max_retries:
        return False

    if isinstance(exception, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True

    if response is not None:
        if response.status_code >= 500:
            return True
        if is_throttled(response):
            return True

    return False


def retry_delay(attempt: int, base_delay: float = 3.0) -> float:
    """Seconds to wait before retry number `attempt` (1-based)"""
    return base_delay * attempt


class RetryContext:
    """
    Context manager for retry logic, useful for retrying blocks of code

    Example:
        with RetryContext(max_retries=5) as retry:
            while True:
                response = send()
                if not retry.record(response=response):
                    break
    """

    def __init__(self, max_retries: int = 5, base_delay: float = 3.0, sleep=time.sleep):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.attempt = 0
        self._sleep = sleep

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def record(self, response: Optional[requests.Response] = None,
               exception: Optional[Exception] = None, label: str = '') -> bool:
        """Record an outcome; sleep and return True if the caller should try again"""
        if not should_retry(self.attempt, response, exception, self.max_retries):
            return False

        self.attempt += 1
        delay = retry_delay(self.attempt, self.base_delay)
        reason = f"status {response.status_code}" if response is not None else type(exception).__name__
        logger.warning(
            f"Retry attempt {self.attempt}/{self.max_retries} for {label} "
            f"({reason}). Retrying in {delay:.1f} seconds..."
        )
        self._sleep(delay)
        return True
