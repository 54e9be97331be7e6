"""Apply graded submissions to the stored Leitner schedule of a module."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Sequence

from noggin.review.errors import ConcurrentModification
from noggin.review.grading import ResponseVerdict, aggregate_grades
from noggin.review.leitner import (
    AnomalyHandler,
    ReviewState,
    is_session_passed,
    next_state,
    record_quiz_attempt,
)
from noggin.review.ports import Clock, ReviewStateStore


LOGGER = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class SystemClock:
    """Clock backed by the system time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many read-compute-write cycles to try before giving up."""

    max_attempts: int = 3

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")


@dataclass(frozen=True, slots=True)
class ReviewPolicy:
    """Rules for turning a graded submission into a schedule update."""

    pass_threshold_percent: int = 100
    skip_stale_submissions: bool = False


class ReviewOrchestrator:
    """Coordinates grade aggregation, scheduling and persistence for reviews."""

    def __init__(
        self,
        store: ReviewStateStore,
        clock: Optional[Clock] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        review_policy: Optional[ReviewPolicy] = None,
        on_anomaly: Optional[AnomalyHandler] = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._retry_policy = retry_policy or RetryPolicy()
        self._review_policy = review_policy or ReviewPolicy()
        self._on_anomaly = on_anomaly

    async def complete_review(
        self,
        submission_id: str,
        module_id: str,
        responses: Sequence[ResponseVerdict],
        *,
        user_id: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> ReviewState:
        """Update the module's review state from a graded submission.

        Each attempt reads the stored state once and writes it once with the
        version that was read. A conflicting write restarts the cycle; after
        ``RetryPolicy.max_attempts`` conflicts ``ConcurrentModification`` is
        raised. Storage failures propagate unchanged.

        ``user_id`` owns the state created for a module that has never been
        reviewed, and is recorded on a stored state that has no owner yet.
        A naive ``completed_at`` is taken to be UTC.
        """
        aggregate = aggregate_grades(responses)
        completed_at = _as_utc(completed_at)
        passed = is_session_passed(aggregate, self._review_policy.pass_threshold_percent)

        for attempt in range(1, self._retry_policy.max_attempts + 1):
            stored = await self._store.get_review_state(module_id)
            current = stored if stored is not None else ReviewState.initial(module_id, user_id)
            if current.user_id is None and user_id is not None:
                current = replace(current, user_id=user_id)

            if self._is_stale(current, completed_at):
                LOGGER.info(
                    "Skipping submission %s for module %s: completed before the last review.",
                    submission_id,
                    module_id,
                )
                return stored

            now = self._clock.now()
            updated = next_state(
                record_quiz_attempt(current, aggregate),
                passed,
                now,
                on_anomaly=self._on_anomaly,
            )
            expected_version = stored.version if stored is not None else None

            try:
                version = await self._store.put_review_state(module_id, updated, expected_version)
            except ConcurrentModification:
                LOGGER.info(
                    "Review state for module %s changed during submission %s (attempt %s of %s).",
                    module_id,
                    submission_id,
                    attempt,
                    self._retry_policy.max_attempts,
                )
                continue

            LOGGER.info(
                "Updated review schedule for module %s from submission %s: grade %s%%, passed: %s, box %s.",
                module_id,
                submission_id,
                aggregate.grade_percent,
                passed,
                updated.current_box,
            )
            return replace(updated, version=version)

        raise ConcurrentModification(module_id, attempts=self._retry_policy.max_attempts)

    def _is_stale(self, current: ReviewState, completed_at: Optional[datetime]) -> bool:
        if not self._review_policy.skip_stale_submissions:
            return False
        if completed_at is None or current.last_reviewed_at is None:
            return False
        return completed_at <= current.last_reviewed_at
