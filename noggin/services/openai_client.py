"""Helpers for configuring the OpenAI client."""

from openai import AsyncOpenAI


def build_openai_client(api_key: str) -> AsyncOpenAI:
    """Create a configured AsyncOpenAI client for grading requests."""
    return AsyncOpenAI(api_key=api_key)


def extract_output_text(response: object) -> str:
    """Best-effort extraction of text from an OpenAI Responses result."""
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text.strip():
        return output_text

    output = getattr(response, "output", None)
    if not isinstance(output, list):
        return ""

    collected = []
    for item in output:
        for part in getattr(item, "content", None) or []:
            if getattr(part, "type", None) == "output_text":
                value = getattr(part, "text", None)
                if value:
                    collected.append(str(value))
    return "\n".join(collected)
