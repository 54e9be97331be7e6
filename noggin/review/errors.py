"""Error types raised by the review pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class ReviewError(Exception):
    """Base class for review pipeline failures."""


class InvalidInput(ReviewError):
    """Raised when grading results cannot be aggregated."""


class ConcurrentModification(ReviewError):
    """Raised when an optimistic write loses against a concurrent update."""

    def __init__(self, module_id: str, attempts: int = 1, message: Optional[str] = None) -> None:
        self.module_id = module_id
        self.attempts = attempts
        super().__init__(
            message
            or f"Review state for module {module_id} changed concurrently ({attempts} attempt(s))."
        )


class StorageUnavailable(ReviewError):
    """Raised when the review state store cannot be read or written."""


@dataclass(frozen=True, slots=True)
class DataIntegrityAnomaly:
    """Diagnostic record for stored review data that had to be corrected."""

    module_id: str
    field: str
    observed: object
    corrected: object

    def describe(self) -> str:
        return (
            f"Module {self.module_id} had {self.field}={self.observed!r}; "
            f"using {self.corrected!r} instead."
        )
