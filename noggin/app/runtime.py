"""Bootstrap logic for the review services."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from noggin.app.settings import AppSettings
from noggin.db import get_session_factory, run_migrations_if_needed
from noggin.db.review_states import SqlReviewStateStore
from noggin.review.errors import DataIntegrityAnomaly
from noggin.review.leitner import ReviewState
from noggin.review.orchestrator import ReviewOrchestrator, SystemClock
from noggin.review.ports import Clock
from noggin.review.priority import DEFAULT_WEIGHTS, DueEntry, PriorityWeights, build_due_queue
from noggin.services import QuestionResponse, ResponseGrader, build_openai_client


LOGGER = logging.getLogger(__name__)


def _configure_logging(log_level: str) -> None:
    """Set up project-wide logging configuration."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        level=log_level,
    )


def log_anomaly(anomaly: DataIntegrityAnomaly) -> None:
    """Default sink for review data that had to be corrected."""
    LOGGER.warning("Data integrity anomaly: %s", anomaly.describe())


def build_orchestrator(
    settings: AppSettings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    clock: Optional[Clock] = None,
) -> ReviewOrchestrator:
    """Wire a review orchestrator to the SQL review state store."""
    store = SqlReviewStateStore(session_factory or get_session_factory())
    return ReviewOrchestrator(
        store,
        clock or SystemClock(),
        retry_policy=settings.retry_policy(),
        review_policy=settings.review_policy(),
        on_anomaly=log_anomaly,
    )


def build_grader(settings: AppSettings) -> ResponseGrader:
    """Create the OpenAI-backed response grader."""
    if not settings.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable is required to grade responses.")
    return ResponseGrader(build_openai_client(settings.openai_api_key), settings.grading_model)


async def review_submission(
    grader: ResponseGrader,
    orchestrator: ReviewOrchestrator,
    submission_id: str,
    module_id: str,
    user_id: str,
    source_text: str,
    questions: Sequence[QuestionResponse],
    completed_at: Optional[datetime] = None,
) -> ReviewState:
    """Grade a submitted quiz and apply the result to the module's schedule."""
    verdicts = await grader.grade(source_text, questions)
    LOGGER.info("Graded submission %s with %s responses.", submission_id, len(verdicts))
    return await orchestrator.complete_review(
        submission_id,
        module_id,
        verdicts,
        user_id=user_id,
        completed_at=completed_at,
    )


async def load_practice_feed(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
    clock: Optional[Clock] = None,
    weights: PriorityWeights = DEFAULT_WEIGHTS,
    include_unscheduled: bool = False,
) -> List[DueEntry]:
    """Return the user's modules that are due, most urgent first."""
    store = SqlReviewStateStore(session_factory)
    states = await store.list_review_states(user_id)
    now = (clock or SystemClock()).now()
    return list(
        build_due_queue(states, now, include_unscheduled=include_unscheduled, weights=weights)
    )


def run_practice_feed(settings: AppSettings, user_id: str, include_unscheduled: bool = False) -> List[DueEntry]:
    """Print the practice feed for ``user_id`` using the provided settings."""
    _configure_logging(settings.log_level)

    try:
        run_migrations_if_needed()
    except Exception:
        LOGGER.exception("Database migrations failed. Aborting startup.")
        raise

    entries = asyncio.run(
        load_practice_feed(
            get_session_factory(),
            user_id,
            weights=settings.priority_weights(),
            include_unscheduled=include_unscheduled,
        )
    )
    LOGGER.info("Found %s due modules for user %s.", len(entries), user_id)

    if not entries:
        print("Nothing is due for review.")
    for position, entry in enumerate(entries, start=1):
        print(f"{position:>3}. {entry.module_id}  priority {entry.priority:.2f}")
    return entries
