from __future__ import annotations

import json
import types

import pytest

from noggin.review.errors import InvalidInput
from noggin.review.grading import Verdict, aggregate_grades
from noggin.services.grader import QuestionResponse, ResponseGrader


class _StubResponses:
    def __init__(self, payload: str) -> None:
        self._payload = payload
        self.calls = 0
        self.last_kwargs: dict | None = None

    async def create(self, *args, **kwargs):
        self.calls += 1
        self.last_kwargs = kwargs
        return types.SimpleNamespace(output_text=self._payload)


class _StubClient:
    def __init__(self, payload: str) -> None:
        self.responses = _StubResponses(payload)


QUESTIONS = [
    QuestionResponse("q1", "What does a Leitner box hold?", "Cards at the same review interval."),
    QuestionResponse("q2", "What happens after a wrong answer?", "The card moves up a box."),
]

GRADED_JSON = json.dumps(
    {
        "responses": [
            {"question_id": "q1", "verdict": "pass", "feedback": "Correct."},
            {"question_id": "q2", "verdict": "fail", "feedback": "It goes back to the first box."},
        ]
    }
)


@pytest.mark.asyncio
async def test_grade_returns_validated_verdicts() -> None:
    client = _StubClient(GRADED_JSON)
    grader = ResponseGrader(client, "test-model")

    verdicts = await grader.grade("Leitner boxes group cards by interval.", QUESTIONS)

    assert [item.verdict for item in verdicts] == [Verdict.PASS, Verdict.FAIL]
    assert verdicts[1].feedback == "It goes back to the first box."
    assert aggregate_grades(verdicts).grade_percent == 50
    assert client.responses.calls == 1
    assert client.responses.last_kwargs["model"] == "test-model"
    user_message = client.responses.last_kwargs["input"][1]["content"]
    assert "Leitner boxes group cards by interval." in user_message
    assert '"question_id": "q2"' in user_message


@pytest.mark.asyncio
async def test_grade_strips_code_fences() -> None:
    client = _StubClient(f"```json\n{GRADED_JSON}\n```")
    grader = ResponseGrader(client, "test-model")

    verdicts = await grader.grade("material", QUESTIONS)

    assert len(verdicts) == 2


@pytest.mark.asyncio
async def test_grade_rejects_malformed_json() -> None:
    grader = ResponseGrader(_StubClient("not json at all"), "test-model")

    with pytest.raises(InvalidInput, match="malformed JSON"):
        await grader.grade("material", QUESTIONS)


@pytest.mark.asyncio
async def test_grade_rejects_incomplete_results() -> None:
    partial = json.dumps({"responses": [{"question_id": "q1", "verdict": "pass"}]})
    grader = ResponseGrader(_StubClient(partial), "test-model")

    with pytest.raises(InvalidInput, match="q2"):
        await grader.grade("material", QUESTIONS)


@pytest.mark.asyncio
async def test_grade_without_questions_skips_the_model() -> None:
    client = _StubClient(GRADED_JSON)
    grader = ResponseGrader(client, "test-model")

    with pytest.raises(InvalidInput):
        await grader.grade("material", [])

    assert client.responses.calls == 0
