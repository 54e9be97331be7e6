"""Grade quiz responses with an OpenAI model."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import List, Sequence

from openai import AsyncOpenAI

from noggin.review.errors import InvalidInput
from noggin.review.grading import ResponseVerdict, parse_graded_responses
from noggin.services.openai_client import extract_output_text


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class QuestionResponse:
    """A quiz question together with the student's answer."""

    question_id: str
    question: str
    answer: str


class ResponseGrader:
    """Asks the grading model for a pass/fail verdict on each response."""

    def __init__(self, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    @staticmethod
    def _build_system_prompt() -> str:
        return (
            "You are a helpful professor grading a student's quiz. "
            "Judge every answer only against the study material provided. "
            "Respond with JSON {\"responses\": [{\"question_id\": \"<id>\", \"verdict\": \"pass\" or \"fail\", "
            "\"feedback\": \"<one or two sentences>\"}]} containing exactly one entry per question. "
            "Always produce valid JSON without commentary, Markdown, or code fences."
        )

    @staticmethod
    def _build_user_message(source_text: str, questions: Sequence[QuestionResponse]) -> str:
        items = [
            {"question_id": item.question_id, "question": item.question, "answer": item.answer}
            for item in questions
        ]
        return (
            f"Study material:\n{source_text.strip()}\n\n"
            f"Responses to grade:\n{json.dumps(items, ensure_ascii=False)}"
        )

    async def grade(
        self,
        source_text: str,
        questions: Sequence[QuestionResponse],
    ) -> List[ResponseVerdict]:
        """Return validated verdicts for ``questions``."""
        if not questions:
            raise InvalidInput("There are no responses to grade.")

        response = await self._client.responses.create(
            model=self._model,
            input=[
                {"role": "system", "content": self._build_system_prompt()},
                {"role": "user", "content": self._build_user_message(source_text, questions)},
            ],
        )
        cleaned = self._strip_code_fences(extract_output_text(response).strip())
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Failed to parse grading response: %s", cleaned)
            raise InvalidInput("Grading returned malformed JSON.") from exc

        return parse_graded_responses(payload, [item.question_id for item in questions])

    @staticmethod
    def _strip_code_fences(response_text: str) -> str:
        fenced = response_text.strip()
        if fenced.startswith("```") and fenced.endswith("```"):
            return fenced.split("\n", 1)[-1].rsplit("\n", 1)[0]
        return fenced
