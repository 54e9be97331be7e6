"""Aggregation of per-question grading verdicts into a submission grade."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping, Optional, Sequence

from noggin.review.errors import InvalidInput


LETTER_GRADE_THRESHOLDS = (
    (90, "A"),
    (80, "B"),
    (70, "C"),
    (60, "D"),
)
FAILING_LETTER_GRADE = "F"


class Verdict(str, Enum):
    """Outcome assigned to a single response by the grading service."""

    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True, slots=True)
class ResponseVerdict:
    """Graded result for one question of a submission."""

    question_id: str
    verdict: Verdict
    feedback: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.verdict is Verdict.PASS


@dataclass(frozen=True, slots=True)
class GradeAggregate:
    """Grade summary for a whole submission."""

    correct_count: int
    total_count: int
    grade_percent: int
    letter_grade: str

    @property
    def passed_all(self) -> bool:
        return self.correct_count == self.total_count


def letter_grade(percent: int) -> str:
    """Map a percentage grade to a letter grade."""
    for threshold, letter in LETTER_GRADE_THRESHOLDS:
        if percent >= threshold:
            return letter
    return FAILING_LETTER_GRADE


def _round_half_up_percent(correct: int, total: int) -> int:
    # floor(100 * correct / total + 0.5) without going through floats
    return (200 * correct + total) // (2 * total)


def aggregate_grades(responses: Sequence[ResponseVerdict]) -> GradeAggregate:
    """Reduce graded responses into a percentage and letter grade.

    Raises ``InvalidInput`` for an empty submission or for any response that
    has not been graded with a ``Verdict``.
    """
    verdicts = list(responses)
    if not verdicts:
        raise InvalidInput("A submission must contain at least one graded response.")

    correct = 0
    for index, response in enumerate(verdicts, start=1):
        if not isinstance(response, ResponseVerdict) or not isinstance(response.verdict, Verdict):
            raise InvalidInput(f"Response #{index} has not been graded.")
        if response.passed:
            correct += 1

    total = len(verdicts)
    percent = _round_half_up_percent(correct, total)
    return GradeAggregate(
        correct_count=correct,
        total_count=total,
        grade_percent=percent,
        letter_grade=letter_grade(percent),
    )


def _coerce_verdict(raw_entry: Mapping[str, object]) -> Optional[Verdict]:
    value = raw_entry.get("verdict")
    if value is None:
        value = raw_entry.get("is_correct")
    if isinstance(value, bool):
        return Verdict.PASS if value else Verdict.FAIL
    if isinstance(value, str):
        try:
            return Verdict(value.strip().lower())
        except ValueError:
            return None
    return None


def _sanitize_text(value: object) -> Optional[str]:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None


def parse_graded_responses(
    payload: object,
    expected_question_ids: Optional[Iterable[str]] = None,
) -> List[ResponseVerdict]:
    """Validate raw grading output and convert it into ``ResponseVerdict`` values.

    ``payload`` is the decoded JSON object returned by the grading service. It
    must contain a ``responses`` list whose entries carry a ``question_id`` and
    either a ``verdict`` ("pass"/"fail" or a boolean) or an ``is_correct`` flag.
    When ``expected_question_ids`` is given, every id must be graded exactly once.
    """
    if not isinstance(payload, Mapping):
        raise InvalidInput("Grading result must be a JSON object.")

    raw_responses = payload.get("responses")
    if not isinstance(raw_responses, list):
        raise InvalidInput("Grading result is missing the 'responses' list.")

    verdicts: List[ResponseVerdict] = []
    seen: set[str] = set()
    for index, raw_entry in enumerate(raw_responses, start=1):
        if not isinstance(raw_entry, Mapping):
            raise InvalidInput(f"Graded response #{index} has an invalid format.")

        question_id = _sanitize_text(raw_entry.get("question_id"))
        if question_id is None:
            raise InvalidInput(f"Graded response #{index} is missing 'question_id'.")
        if question_id in seen:
            raise InvalidInput(f"Graded response #{index} repeats question {question_id}.")

        verdict = _coerce_verdict(raw_entry)
        if verdict is None:
            raise InvalidInput(f"Graded response #{index} has no valid verdict.")

        seen.add(question_id)
        verdicts.append(
            ResponseVerdict(
                question_id=question_id,
                verdict=verdict,
                feedback=_sanitize_text(raw_entry.get("feedback")),
            )
        )

    if expected_question_ids is not None:
        expected = set(expected_question_ids)
        missing = sorted(expected - seen)
        unknown = sorted(seen - expected)
        if missing:
            raise InvalidInput(f"Grading result is missing questions: {', '.join(missing)}.")
        if unknown:
            raise InvalidInput(f"Grading result contains unknown questions: {', '.join(unknown)}.")

    return verdicts
