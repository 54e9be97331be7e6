"""Grading aggregation, Leitner scheduling and review orchestration."""

from .errors import ConcurrentModification, DataIntegrityAnomaly, InvalidInput, ReviewError, StorageUnavailable
from .grading import GradeAggregate, ResponseVerdict, Verdict, aggregate_grades, parse_graded_responses
from .leitner import ReviewState, next_state
from .orchestrator import ReviewOrchestrator, ReviewPolicy, RetryPolicy, SystemClock
from .priority import DueEntry, PriorityWeights, build_due_queue, prioritize

__all__ = [
    "ConcurrentModification",
    "DataIntegrityAnomaly",
    "DueEntry",
    "GradeAggregate",
    "InvalidInput",
    "PriorityWeights",
    "ResponseVerdict",
    "ReviewError",
    "ReviewOrchestrator",
    "ReviewPolicy",
    "ReviewState",
    "RetryPolicy",
    "StorageUnavailable",
    "SystemClock",
    "Verdict",
    "aggregate_grades",
    "build_due_queue",
    "next_state",
    "parse_graded_responses",
    "prioritize",
]
