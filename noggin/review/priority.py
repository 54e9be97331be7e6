"""Ranking of modules for the practice feed."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator

from noggin.review.leitner import MAX_BOX, ReviewState, clamp_box


SECONDS_PER_DAY = 60 * 60 * 24


@dataclass(frozen=True, slots=True)
class PriorityWeights:
    """Scaling applied to overdue days and to the box bonus."""

    overdue_scale: float = 10.0
    box_scale: float = 0.1


DEFAULT_WEIGHTS = PriorityWeights()


@dataclass(frozen=True, slots=True)
class DueEntry:
    """A module in the review queue together with its priority."""

    module_id: str
    priority: float


def days_between(later: datetime, earlier: datetime) -> float:
    """Return the fractional number of days from ``earlier`` to ``later``."""
    return (later - earlier).total_seconds() / SECONDS_PER_DAY


def is_due(state: ReviewState, now: datetime) -> bool:
    return state.next_review_at is not None and state.next_review_at <= now


def calculate_priority(
    state: ReviewState,
    now: datetime,
    weights: PriorityWeights = DEFAULT_WEIGHTS,
) -> float:
    """Score a module; overdue modules and lower boxes score higher.

    A module that has never been scheduled is treated as due exactly at ``now``.
    """
    due_at = state.next_review_at if state.next_review_at is not None else now
    days_overdue = days_between(now, due_at)
    overdue_penalty = days_overdue * weights.overdue_scale if days_overdue > 0 else days_overdue
    box_bonus = (MAX_BOX + 1 - clamp_box(state.current_box)) * weights.box_scale
    return overdue_penalty + box_bonus


def prioritize(
    states: Iterable[ReviewState],
    now: datetime,
    weights: PriorityWeights = DEFAULT_WEIGHTS,
) -> Iterator[DueEntry]:
    """Yield entries for ``states`` from highest to lowest priority.

    Ties are broken by ``module_id`` so repeated calls with the same input and
    ``now`` produce the same order. No filtering is applied.
    """
    entries = [
        DueEntry(module_id=state.module_id, priority=calculate_priority(state, now, weights))
        for state in states
    ]
    entries.sort(key=lambda entry: (-entry.priority, entry.module_id))
    yield from entries


def build_due_queue(
    states: Iterable[ReviewState],
    now: datetime,
    *,
    include_unscheduled: bool = False,
    weights: PriorityWeights = DEFAULT_WEIGHTS,
) -> Iterator[DueEntry]:
    """Prioritize only the modules that are due at ``now``."""
    selected = (
        state
        for state in states
        if is_due(state, now) or (include_unscheduled and state.next_review_at is None)
    )
    return prioritize(selected, now, weights)
