"""Configuration helpers for the Noggin review runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from noggin.review.orchestrator import ReviewPolicy, RetryPolicy
from noggin.review.priority import PriorityWeights


DEFAULT_GRADING_MODEL = "gpt-5-mini"
_TRUE_VALUES = {"1", "true", "yes", "on"}


def _read_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer.") from exc


def _read_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number.") from exc


@dataclass(frozen=True)
class AppSettings:
    """Strongly typed application settings loaded from environment variables."""

    app_name: str
    app_env: str
    log_level: str
    review_max_attempts: int
    review_pass_threshold: int
    review_skip_stale_submissions: bool
    priority_overdue_scale: float
    priority_box_scale: float
    openai_api_key: Optional[str]
    grading_model: str

    @classmethod
    def from_env(cls) -> AppSettings:
        """Construct settings directly from environment variables."""
        review_max_attempts = _read_int("REVIEW_MAX_ATTEMPTS", 3)
        if review_max_attempts < 1:
            raise RuntimeError("REVIEW_MAX_ATTEMPTS must be a positive integer.")

        review_pass_threshold = _read_int("REVIEW_PASS_THRESHOLD", 100)
        if review_pass_threshold < 0 or review_pass_threshold > 100:
            raise RuntimeError("REVIEW_PASS_THRESHOLD must be between 0 and 100.")

        skip_stale = os.getenv("REVIEW_SKIP_STALE_SUBMISSIONS", "false").lower() in _TRUE_VALUES

        return cls(
            app_name=os.getenv("APP_NAME", "Noggin"),
            app_env=os.getenv("APP_ENV", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            review_max_attempts=review_max_attempts,
            review_pass_threshold=review_pass_threshold,
            review_skip_stale_submissions=skip_stale,
            priority_overdue_scale=_read_float("PRIORITY_OVERDUE_SCALE", 10.0),
            priority_box_scale=_read_float("PRIORITY_BOX_SCALE", 0.1),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            grading_model=os.getenv("GRADING_MODEL", DEFAULT_GRADING_MODEL),
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.review_max_attempts)

    def review_policy(self) -> ReviewPolicy:
        return ReviewPolicy(
            pass_threshold_percent=self.review_pass_threshold,
            skip_stale_submissions=self.review_skip_stale_submissions,
        )

    def priority_weights(self) -> PriorityWeights:
        return PriorityWeights(
            overdue_scale=self.priority_overdue_scale,
            box_scale=self.priority_box_scale,
        )
