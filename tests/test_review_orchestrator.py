from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from noggin.review.errors import (
    ConcurrentModification,
    DataIntegrityAnomaly,
    InvalidInput,
    StorageUnavailable,
)
from noggin.review.grading import ResponseVerdict, Verdict
from noggin.review.leitner import ReviewState
from noggin.review.orchestrator import ReviewOrchestrator, ReviewPolicy, RetryPolicy


NOW = datetime(2026, 4, 2, 8, 0, tzinfo=timezone.utc)


class _FixedClock:
    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


class _StubStore:
    def __init__(self, states: Optional[Dict[str, ReviewState]] = None) -> None:
        self._states = dict(states or {})
        self.reads = 0
        self.writes: List[ReviewState] = []

    async def get_review_state(self, module_id: str) -> Optional[ReviewState]:
        self.reads += 1
        return self._states.get(module_id)

    async def put_review_state(
        self,
        module_id: str,
        state: ReviewState,
        expected_version: Optional[int] = None,
    ) -> int:
        stored = self._states.get(module_id)
        stored_version = stored.version if stored is not None else None
        if stored_version != expected_version:
            raise ConcurrentModification(module_id)
        version = (expected_version or 0) + 1
        self._states[module_id] = replace(state, version=version)
        self.writes.append(state)
        return version

    def stored(self, module_id: str) -> ReviewState:
        return self._states[module_id]


class _RacingStore(_StubStore):
    """Holds readers back until ``readers`` calls have all read the same version."""

    def __init__(self, states: Dict[str, ReviewState], readers: int = 2) -> None:
        super().__init__(states)
        self._readers = readers
        self._waiting = 0
        self._gate = asyncio.Event()
        self.conflicts = 0

    async def get_review_state(self, module_id: str) -> Optional[ReviewState]:
        state = await super().get_review_state(module_id)
        if not self._gate.is_set():
            self._waiting += 1
            if self._waiting >= self._readers:
                self._gate.set()
            else:
                await self._gate.wait()
        return state

    async def put_review_state(self, module_id, state, expected_version=None) -> int:
        try:
            return await super().put_review_state(module_id, state, expected_version)
        except ConcurrentModification:
            self.conflicts += 1
            raise


class _BrokenStore(_StubStore):
    async def put_review_state(self, module_id, state, expected_version=None) -> int:
        raise StorageUnavailable("database is down")


def _all_pass(count: int = 3) -> List[ResponseVerdict]:
    return [ResponseVerdict(f"q{index}", Verdict.PASS) for index in range(count)]


def _stored_state(box: int = 1, **overrides) -> ReviewState:
    return replace(ReviewState.initial("module-1", "user-1"), current_box=box, version=1, **overrides)


@pytest.mark.asyncio
async def test_perfect_submission_promotes_module() -> None:
    store = _StubStore({"module-1": _stored_state(box=2)})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW))

    result = await orchestrator.complete_review("sub-1", "module-1", _all_pass())

    assert result.current_box == 3
    assert result.last_reviewed_at == NOW
    assert result.next_review_at == NOW + timedelta(days=7)
    assert result.review_count == 1
    assert result.quiz_attempts == 1
    assert result.average_score == 100.0
    assert result.version == 2
    assert store.reads == 1
    assert len(store.writes) == 1
    assert store.stored("module-1").current_box == 3


@pytest.mark.asyncio
async def test_partial_credit_resets_to_first_box() -> None:
    store = _StubStore({"module-1": _stored_state(box=4)})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW))
    responses = _all_pass(9) + [ResponseVerdict("q9", Verdict.FAIL)]

    result = await orchestrator.complete_review("sub-1", "module-1", responses)

    assert result.current_box == 1
    assert result.next_review_at == NOW + timedelta(days=1)
    assert result.average_score == 90.0


@pytest.mark.asyncio
async def test_pass_threshold_policy_allows_partial_credit() -> None:
    store = _StubStore({"module-1": _stored_state(box=2)})
    orchestrator = ReviewOrchestrator(
        store,
        _FixedClock(NOW),
        review_policy=ReviewPolicy(pass_threshold_percent=70),
    )
    responses = _all_pass(3) + [ResponseVerdict("q3", Verdict.FAIL)]

    result = await orchestrator.complete_review("sub-1", "module-1", responses)

    assert result.current_box == 3


@pytest.mark.asyncio
async def test_missing_state_is_created_on_first_review() -> None:
    store = _StubStore()
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW))

    result = await orchestrator.complete_review("sub-1", "module-new", _all_pass())

    assert result.module_id == "module-new"
    assert result.current_box == 2
    assert result.version == 1
    assert store.stored("module-new").next_review_at == NOW + timedelta(days=2)


@pytest.mark.asyncio
async def test_invalid_input_is_rejected_before_any_io() -> None:
    store = _StubStore({"module-1": _stored_state()})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW))

    with pytest.raises(InvalidInput):
        await orchestrator.complete_review("sub-1", "module-1", [])

    assert store.reads == 0
    assert store.writes == []


@pytest.mark.asyncio
async def test_storage_failure_propagates_without_retry() -> None:
    store = _BrokenStore({"module-1": _stored_state()})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW), retry_policy=RetryPolicy(max_attempts=5))

    with pytest.raises(StorageUnavailable):
        await orchestrator.complete_review("sub-1", "module-1", _all_pass())

    assert store.reads == 1


@pytest.mark.asyncio
async def test_corrupted_box_is_clamped_and_reported() -> None:
    anomalies: List[DataIntegrityAnomaly] = []
    store = _StubStore({"module-1": _stored_state(box=11)})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW), on_anomaly=anomalies.append)

    result = await orchestrator.complete_review("sub-1", "module-1", _all_pass())

    assert result.current_box == 5
    assert [(item.module_id, item.observed, item.corrected) for item in anomalies] == [("module-1", 11, 5)]


@pytest.mark.asyncio
async def test_regrading_same_submission_is_a_new_scheduling_event() -> None:
    store = _StubStore({"module-1": _stored_state(box=1)})
    clock = _FixedClock(NOW)
    orchestrator = ReviewOrchestrator(store, clock)

    await orchestrator.complete_review("sub-1", "module-1", _all_pass())
    clock.current = NOW + timedelta(minutes=5)
    regraded = await orchestrator.complete_review("sub-1", "module-1", _all_pass())

    assert regraded.current_box == 3
    assert regraded.review_count == 2
    assert regraded.quiz_attempts == 2
    assert len(store.writes) == 2


@pytest.mark.asyncio
async def test_stale_submission_is_skipped_when_policy_enabled() -> None:
    last_review = NOW - timedelta(hours=1)
    stored = _stored_state(box=3, last_reviewed_at=last_review, next_review_at=last_review + timedelta(days=7))
    store = _StubStore({"module-1": stored})
    orchestrator = ReviewOrchestrator(
        store,
        _FixedClock(NOW),
        review_policy=ReviewPolicy(skip_stale_submissions=True),
    )

    skipped = await orchestrator.complete_review(
        "sub-old", "module-1", _all_pass(), completed_at=last_review - timedelta(minutes=10)
    )
    applied = await orchestrator.complete_review(
        "sub-new", "module-1", _all_pass(), completed_at=NOW - timedelta(minutes=1)
    )

    assert skipped == stored
    assert applied.current_box == 4
    assert len(store.writes) == 1


@pytest.mark.asyncio
async def test_concurrent_reviews_retry_and_apply_both_transitions() -> None:
    store = _RacingStore({"module-1": _stored_state(box=1)})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW), retry_policy=RetryPolicy(max_attempts=3))

    first, second = await asyncio.gather(
        orchestrator.complete_review("sub-1", "module-1", _all_pass()),
        orchestrator.complete_review("sub-2", "module-1", _all_pass()),
    )

    final = store.stored("module-1")
    assert store.conflicts == 1
    assert len(store.writes) == 2
    assert final.current_box == 3
    assert final.review_count == 2
    assert final.quiz_attempts == 2
    assert final.version == 3
    assert sorted([first.version, second.version]) == [2, 3]


@pytest.mark.asyncio
async def test_concurrent_reviews_without_retries_fail_cleanly() -> None:
    store = _RacingStore({"module-1": _stored_state(box=2)})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW), retry_policy=RetryPolicy(max_attempts=1))

    results = await asyncio.gather(
        orchestrator.complete_review("sub-1", "module-1", _all_pass()),
        orchestrator.complete_review("sub-2", "module-1", _all_pass()),
        return_exceptions=True,
    )

    errors = [item for item in results if isinstance(item, Exception)]
    successes = [item for item in results if isinstance(item, ReviewState)]
    assert len(errors) == 1
    assert isinstance(errors[0], ConcurrentModification)
    assert errors[0].attempts == 1
    assert len(successes) == 1
    assert store.stored("module-1") == successes[0]
    assert store.stored("module-1").review_count == 1


@pytest.mark.asyncio
async def test_reviews_of_different_modules_do_not_conflict() -> None:
    store = _RacingStore(
        {
            "module-1": _stored_state(box=1),
            "module-2": replace(_stored_state(box=4), module_id="module-2"),
        }
    )
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW), retry_policy=RetryPolicy(max_attempts=1))

    first, second = await asyncio.gather(
        orchestrator.complete_review("sub-1", "module-1", _all_pass()),
        orchestrator.complete_review("sub-2", "module-2", _all_pass()),
    )

    assert store.conflicts == 0
    assert first.current_box == 2
    assert second.current_box == 5


def test_retry_policy_requires_an_attempt() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


class _UnreadableStore(_StubStore):
    async def get_review_state(self, module_id: str) -> Optional[ReviewState]:
        self.reads += 1
        raise StorageUnavailable("database is down")


@pytest.mark.asyncio
async def test_read_failure_propagates_without_retry() -> None:
    store = _UnreadableStore({"module-1": _stored_state()})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW), retry_policy=RetryPolicy(max_attempts=5))

    with pytest.raises(StorageUnavailable):
        await orchestrator.complete_review("sub-1", "module-1", _all_pass())

    assert store.reads == 1
    assert store.writes == []


@pytest.mark.asyncio
async def test_first_review_records_the_owner() -> None:
    store = _StubStore()
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW))

    result = await orchestrator.complete_review("sub-1", "module-new", _all_pass(), user_id="user-7")

    assert result.user_id == "user-7"
    assert store.stored("module-new").user_id == "user-7"


@pytest.mark.asyncio
async def test_owner_is_filled_in_but_never_replaced() -> None:
    ownerless = replace(_stored_state(box=2), user_id=None)
    store = _StubStore({"module-1": ownerless, "module-2": replace(_stored_state(), module_id="module-2")})
    orchestrator = ReviewOrchestrator(store, _FixedClock(NOW))

    adopted = await orchestrator.complete_review("sub-1", "module-1", _all_pass(), user_id="user-7")
    kept = await orchestrator.complete_review("sub-2", "module-2", _all_pass(), user_id="user-7")

    assert adopted.user_id == "user-7"
    assert kept.user_id == "user-1"


@pytest.mark.asyncio
async def test_naive_completion_time_is_treated_as_utc() -> None:
    last_review = NOW - timedelta(hours=1)
    stored = _stored_state(box=2, last_reviewed_at=last_review, next_review_at=last_review + timedelta(days=2))
    store = _StubStore({"module-1": stored})
    orchestrator = ReviewOrchestrator(
        store,
        _FixedClock(NOW),
        review_policy=ReviewPolicy(skip_stale_submissions=True),
    )

    skipped = await orchestrator.complete_review(
        "sub-old", "module-1", _all_pass(), completed_at=datetime(2026, 4, 2, 6, 30)
    )
    applied = await orchestrator.complete_review(
        "sub-new", "module-1", _all_pass(), completed_at=datetime(2026, 4, 2, 7, 59)
    )

    assert skipped == stored
    assert applied.current_box == 3
    assert len(store.writes) == 1
