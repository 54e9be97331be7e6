"""Helpers for persisting module review state."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from noggin.review.errors import ConcurrentModification, StorageUnavailable
from noggin.review.leitner import ReviewState

from . import ModuleStats


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_review_state(record: ModuleStats) -> ReviewState:
    return ReviewState(
        module_id=record.module_id,
        user_id=record.user_id,
        current_box=record.current_box,
        last_reviewed_at=_as_utc(record.last_reviewed_at),
        next_review_at=_as_utc(record.next_review_at),
        review_count=record.review_count,
        quiz_attempts=record.quiz_attempts,
        average_score=record.average_score,
        version=record.version,
    )


def _state_values(state: ReviewState) -> dict:
    return {
        "user_id": state.user_id,
        "current_box": state.current_box,
        "last_reviewed_at": state.last_reviewed_at,
        "next_review_at": state.next_review_at,
        "review_count": state.review_count,
        "quiz_attempts": state.quiz_attempts,
        "average_score": state.average_score,
    }


class SqlReviewStateStore:
    """Review state store backed by the ``module_stats`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_review_state(self, module_id: str) -> Optional[ReviewState]:
        try:
            async with self._session_factory() as session:
                record = await session.get(ModuleStats, module_id)
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Failed to read review state for module {module_id}.") from exc
        if record is None:
            return None
        return _to_review_state(record)

    async def put_review_state(
        self,
        module_id: str,
        state: ReviewState,
        expected_version: Optional[int] = None,
    ) -> int:
        """Write ``state`` if the stored version still equals ``expected_version``."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if expected_version is None:
                        session.add(
                            ModuleStats(
                                module_id=module_id,
                                version=1,
                                **_state_values(state),
                            )
                        )
                        await session.flush()
                        return 1

                    new_version = expected_version + 1
                    stmt = (
                        update(ModuleStats)
                        .where(
                            ModuleStats.module_id == module_id,
                            ModuleStats.version == expected_version,
                        )
                        .values(version=new_version, **_state_values(state))
                        .execution_options(synchronize_session=False)
                    )
                    result = await session.execute(stmt)
                    if result.rowcount != 1:
                        raise ConcurrentModification(module_id)
                    return new_version
        except IntegrityError as exc:
            raise ConcurrentModification(
                module_id, message=f"Review state for module {module_id} already exists."
            ) from exc
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Failed to write review state for module {module_id}.") from exc

    async def create_review_state(self, module_id: str, user_id: Optional[str] = None) -> ReviewState:
        """Ensure a freshly created module has its initial review state."""
        existing = await self.get_review_state(module_id)
        if existing is not None:
            return existing

        initial = ReviewState.initial(module_id, user_id)
        try:
            version = await self.put_review_state(module_id, initial)
        except ConcurrentModification:
            created = await self.get_review_state(module_id)
            if created is None:
                raise
            return created
        return replace(initial, version=version)

    async def list_review_states(self, user_id: str) -> List[ReviewState]:
        """Return every review state owned by ``user_id``."""
        stmt = (
            select(ModuleStats)
            .where(ModuleStats.user_id == user_id)
            .order_by(ModuleStats.module_id)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StorageUnavailable(f"Failed to list review states for user {user_id}.") from exc
        return [_to_review_state(record) for record in records]
