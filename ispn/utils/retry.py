"""Retry policy for Kubernetes API calls.

Only transient API errors (conflicts, throttling, server and connection
errors) are retried; anything else is raised on the first attempt.
"""

import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ispn.utils.errors import transient_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Exponential backoff over transient Kubernetes API errors."""

    def __init__(
        self,
        max_attempts: int = 5,
        min_wait: float = 0.5,
        max_wait: float = 10.0,
        multiplier: float = 1.0,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.multiplier = multiplier

    @classmethod
    def from_settings(cls, conf) -> "RetryPolicy":
        return cls(
            max_attempts=conf.resource_retry_attempts,
            min_wait=conf.resource_retry_min_wait_seconds,
            max_wait=conf.resource_retry_max_wait_seconds,
        )

    def _create_retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.multiplier,
                min=self.min_wait,
                max=self.max_wait,
            ),
            retry=retry_if_exception(transient_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def execute(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Await `func(*args, **kwargs)`, repeating it on transient errors."""
        async for attempt in self._create_retrying():
            with attempt:
                return await func(*args, **kwargs)


#: Policy used when a resource is built without operator settings
DEFAULT_RETRY_POLICY = RetryPolicy()

#: Single attempt, no waiting
NO_RETRY = RetryPolicy(max_attempts=1, min_wait=0, max_wait=0)
