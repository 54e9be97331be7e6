"""Leitner-box scheduling for module reviews."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from noggin.review.errors import DataIntegrityAnomaly
from noggin.review.grading import GradeAggregate


MIN_BOX = 1
MAX_BOX = 5

# Review interval in days for each box.
LEITNER_INTERVALS = {
    1: 1,
    2: 2,
    3: 7,
    4: 14,
    5: 30,
}

AnomalyHandler = Callable[[DataIntegrityAnomaly], None]


@dataclass(frozen=True, slots=True)
class ReviewState:
    """Scheduling state of a single module for its owner."""

    module_id: str
    user_id: Optional[str] = None
    current_box: int = MIN_BOX
    last_reviewed_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None
    review_count: int = 0
    quiz_attempts: int = 0
    average_score: Optional[float] = None
    version: int = 0

    @classmethod
    def initial(cls, module_id: str, user_id: Optional[str] = None) -> "ReviewState":
        """Return the state of a module that has never been reviewed."""
        return cls(module_id=module_id, user_id=user_id)


def clamp_box(box: int) -> int:
    return max(MIN_BOX, min(MAX_BOX, box))


def calculate_next_review_date(box: int, reviewed_at: datetime) -> datetime:
    """Return when a module in ``box`` reviewed at ``reviewed_at`` is due again."""
    return reviewed_at + timedelta(days=LEITNER_INTERVALS[box])


def next_state(
    state: ReviewState,
    passed: bool,
    now: datetime,
    *,
    on_anomaly: Optional[AnomalyHandler] = None,
) -> ReviewState:
    """Return the review state after a session with the given outcome.

    A pass promotes the module by one box up to ``MAX_BOX``; a failure sends it
    back to the first box. A stored box outside the valid range is clamped and
    reported through ``on_anomaly`` instead of failing the review.
    """
    current_box = clamp_box(state.current_box)
    if current_box != state.current_box and on_anomaly is not None:
        on_anomaly(
            DataIntegrityAnomaly(
                module_id=state.module_id,
                field="current_box",
                observed=state.current_box,
                corrected=current_box,
            )
        )

    new_box = min(current_box + 1, MAX_BOX) if passed else MIN_BOX

    return replace(
        state,
        current_box=new_box,
        last_reviewed_at=now,
        next_review_at=calculate_next_review_date(new_box, now),
        review_count=state.review_count + 1,
    )


def record_quiz_attempt(state: ReviewState, aggregate: GradeAggregate) -> ReviewState:
    """Count a graded attempt and fold its grade into the running average."""
    attempts = max(0, state.quiz_attempts)
    if state.average_score is None or attempts == 0:
        average = float(aggregate.grade_percent)
    else:
        average = (state.average_score * attempts + aggregate.grade_percent) / (attempts + 1)
    return replace(state, quiz_attempts=attempts + 1, average_score=average)


def is_session_passed(aggregate: GradeAggregate, threshold_percent: int = 100) -> bool:
    """Decide whether a graded submission promotes the module.

    With the default threshold only a perfect submission counts as a pass.
    """
    if threshold_percent >= 100:
        return aggregate.passed_all
    return aggregate.grade_percent >= threshold_percent
