"""Retry and error-recording policies shared by the pipeline stages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple, Type, TypeVar

from .errors import ErrorCategory, ErrorRecord, ErrorTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempts, backoff, timeouts and courtesy delays for remote calls.

    ``call`` is the only place the pipeline sleeps before a retry; backends
    receive the policy from the runner instead of carrying their own sleeps.
    """

    max_attempts: int = 2
    backoff_seconds: float = 2.0
    timeout_seconds: float = 10.0
    retry_timeout_seconds: float = 15.0
    segment_retry_delay: float = 0.5
    batch_delay: float = 0.3

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")

    def timeout_for(self, attempt: int) -> float:
        """Timeout applied to the given 1-based attempt."""

        return self.timeout_seconds if attempt <= 1 else self.retry_timeout_seconds

    async def call(
        self,
        operation: Callable[[float], Awaitable[T]],
        *,
        retry_on: Tuple[Type[BaseException], ...] = (),
        label: str = "remote call",
    ) -> T:
        """Run ``operation(timeout)`` under a timeout, retrying listed errors.

        Timeouts count as retryable whenever ``retry_on`` is non-empty.
        """

        retryable = retry_on + (asyncio.TimeoutError,) if retry_on else ()
        attempt = 0
        while True:
            attempt += 1
            timeout = self.timeout_for(attempt)
            try:
                return await asyncio.wait_for(operation(timeout), timeout=timeout)
            except retryable as exc:
                if attempt >= self.max_attempts:
                    raise
                logger.warning(
                    "%s failed (attempt %d of %d: %s). Retrying in %.1fs.",
                    label,
                    attempt,
                    self.max_attempts,
                    str(exc) or type(exc).__name__,
                    self.backoff_seconds,
                )
                await asyncio.sleep(self.backoff_seconds)

    async def pause_between_batches(self) -> None:
        if self.batch_delay > 0:
            await asyncio.sleep(self.batch_delay)

    async def pause_before_segment_retry(self) -> None:
        if self.segment_retry_delay > 0:
            await asyncio.sleep(self.segment_retry_delay)


NO_DELAY = RetryPolicy(
    backoff_seconds=0.0,
    segment_retry_delay=0.0,
    batch_delay=0.0,
)


class ErrorPolicy:
    """Records recovered failures; a run never aborts on them."""

    def __init__(self) -> None:
        self.records: List[ErrorRecord] = []
        self.tracker = ErrorTracker()

    def record_success(self) -> None:
        """Reset consecutive counters after successful work."""

        self.tracker.reset_consecutive()

    def handle_error(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> ErrorRecord:
        """Store the failure and log it with its running counters."""

        record = ErrorRecord(category=category, message=message, details=details)
        self.records.append(record)
        consecutive, total = self.tracker.register(category)
        logger.warning(
            "%s (%s, %d in a row, %d total)",
            message,
            category.name.lower(),
            consecutive,
            total,
        )
        return record

    @property
    def messages(self) -> List[str]:
        return [record.message for record in self.records]

    def count(self, category: ErrorCategory) -> int:
        return sum(1 for record in self.records if record.category == category)
