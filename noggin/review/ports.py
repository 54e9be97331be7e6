"""Interfaces of the collaborators used by the review orchestrator."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from noggin.review.leitner import ReviewState


class ReviewStateStore(Protocol):
    """Persistence for per-module review state with optimistic concurrency."""

    async def get_review_state(self, module_id: str) -> Optional[ReviewState]:
        """Return the stored state, or ``None`` when the module has none yet."""

    async def put_review_state(
        self,
        module_id: str,
        state: ReviewState,
        expected_version: Optional[int] = None,
    ) -> int:
        """Store ``state`` and return its new version.

        ``expected_version`` of ``None`` means the state must not exist yet.
        Raises ``ConcurrentModification`` when the stored version differs.
        """


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current timezone-aware time."""
