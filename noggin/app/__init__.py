"""Application bootstrap helpers for the Noggin review service."""

from .runtime import build_grader, build_orchestrator, review_submission, run_practice_feed
from .settings import AppSettings

__all__ = ["build_grader", "build_orchestrator", "review_submission", "run_practice_feed", "AppSettings"]
