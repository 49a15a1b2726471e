"""Retry controller: bounded-duration retries with exponential backoff and jitter.

Decides, from one cycle's aggregated DispatchResult and the alert's age,
whether the alert is delivered, should be retried after a delay, or is
abandoned. The delay is carried by the queue's delayed visibility, not by
a timer.

Example:
    >>> from courier.execution.retry import ExponentialBackoff
    >>>
    >>> backoff = ExponentialBackoff(min_delay=30, max_delay=300)
    >>> delay = 0.0
    >>> for attempt in range(5):
    ...     delay = backoff.next_delay(attempt, previous=delay)
    ...     print(f"Retry {attempt}: wait {delay:.0f}s")
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from courier.core.logging import get_logger
from courier.core.timestamps import utc_now
from courier.execution.models import Decision, DeliveryTask, DispatchResult

logger = get_logger(__name__)


@dataclass
class ExponentialBackoff:
    """Exponential backoff with upward jitter.

    Delay = min(min_delay * (multiplier ** attempt) + jitter, max_delay)

    Jitter is drawn from ``[0, jitter_ratio * (base - min_delay)]``, so the
    first retry waits exactly ``min_delay`` and later retries spread out
    across alerts. Delays never decrease: each one is at least ``previous``.

    Attributes:
        min_delay: Delay before the first retry, in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter_ratio: Share of the growth above min_delay to randomise (0.0-1.0)
    """

    min_delay: float = 30.0
    max_delay: float = 300.0
    multiplier: float = 2.0
    jitter_ratio: float = 0.25
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self) -> None:
        if self.min_delay <= 0 or self.max_delay < self.min_delay:
            raise ValueError(
                f"Backoff requires 0 < min_delay <= max_delay, got {self.min_delay}/{self.max_delay}"
            )
        if not 0.0 <= self.jitter_ratio <= 1.0:
            raise ValueError(f"jitter_ratio must be within [0, 1], got {self.jitter_ratio}")

    def next_delay(self, attempt: int, previous: float = 0.0) -> float:
        """Calculate the delay before retry number ``attempt`` (0 = first retry)."""
        base = self.min_delay * (self.multiplier ** max(0, attempt))
        if base >= self.max_delay:
            return self.max_delay

        delay = base
        if self.jitter_ratio:
            delay += self.rng.uniform(0.0, self.jitter_ratio * (base - self.min_delay))

        return min(max(delay, previous), self.max_delay)


class RetryController:
    """
    Decides Delivered / RetryAfter / Abandoned for one dispatch cycle.

    Retry scheduling never extends past ``first_seen + max_retry_duration``:
    delays are clipped to the time left in the window, and once the window
    has elapsed any still-retryable destinations abandon the alert.
    """

    def __init__(
        self,
        backoff: ExponentialBackoff,
        max_retry_duration_seconds: float,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._backoff = backoff
        self._max_retry_duration = max_retry_duration_seconds
        self._clock = clock

    @property
    def backoff(self) -> ExponentialBackoff:
        return self._backoff

    @property
    def max_retry_duration_seconds(self) -> float:
        return self._max_retry_duration

    def decide(self, task: DeliveryTask, result: DispatchResult) -> Decision:
        """Decide what happens to the alert after this cycle."""
        permanent = frozenset(task.permanent_destination_ids) | frozenset(result.permanent)
        pending = frozenset(result.retryable)

        if not pending:
            decision = Decision.delivered(
                permanent=permanent,
                reason=f"{len(permanent)} destination(s) failed permanently" if permanent else None,
            )
            self._log(task, decision)
            return decision

        now = self._clock()
        deadline = task.retry_deadline(self._max_retry_duration)
        if now >= deadline:
            decision = Decision.abandoned(
                pending=pending,
                permanent=permanent,
                reason=(
                    f"Retry window of {self._max_retry_duration:.0f}s elapsed with "
                    f"{len(pending)} destination(s) still failing"
                ),
            )
            self._log(task, decision)
            return decision

        delay = self._backoff.next_delay(task.attempt, previous=task.last_delay_seconds)
        if result.retry_after_hint:
            delay = min(max(delay, float(result.retry_after_hint)), self._backoff.max_delay)
        delay = min(delay, (deadline - now).total_seconds())

        decision = Decision.retry_after(delay, pending=pending, permanent=permanent)
        self._log(task, decision)
        return decision

    def advance(self, task: DeliveryTask, result: DispatchResult, decision: Decision) -> DeliveryTask:
        """Build the task to re-enqueue for the next cycle."""
        return replace(
            task,
            attempt=task.attempt + 1,
            pending_destination_ids=tuple(sorted(result.retryable)),
            succeeded_destination_ids=task.succeeded_destination_ids | frozenset(result.succeeded),
            permanent_destination_ids=task.permanent_destination_ids | frozenset(result.permanent),
            last_delay_seconds=decision.delay_seconds,
            next_retry_at=self._clock() + timedelta(seconds=decision.delay_seconds),
        )

    def _log(self, task: DeliveryTask, decision: Decision) -> None:
        logger.info(
            "retry.decision",
            alert_id=task.alert_id,
            cycle=task.attempt + 1,
            decision=decision.kind.value,
            delay_seconds=round(decision.delay_seconds, 3),
            pending=sorted(decision.pending),
            permanent=sorted(decision.permanent),
        )


__all__ = ["ExponentialBackoff", "RetryController"]
