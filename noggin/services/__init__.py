"""Clients for services outside the review pipeline."""

from .grader import QuestionResponse, ResponseGrader
from .openai_client import build_openai_client

__all__ = ["QuestionResponse", "ResponseGrader", "build_openai_client"]
