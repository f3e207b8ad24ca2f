"""Error types raised by flows, prompt steps and collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class StudyFlowError(Exception):
    """Base class for study-flow errors."""


@dataclass(frozen=True)
class Violation:
    path: str
    message: str

    def __str__(self) -> str:
        location = self.path or "<root>"
        return f"{location}: {self.message}"


class ValidationError(StudyFlowError):
    """A value does not conform to a declared schema."""

    def __init__(self, violations: list[Violation], *, label: str = "value") -> None:
        self.violations: list[Violation] = list(violations)
        self.label = label
        details = "; ".join(str(v) for v in self.violations)
        super().__init__(f"Invalid {label}: {details}")

    @property
    def paths(self) -> list[str]:
        return [v.path for v in self.violations]


class ModelOutputError(StudyFlowError):
    """The model response could not be coerced into the output schema."""

    def __init__(
        self,
        message: str,
        *,
        raw_output: Any = None,
        violations: list[Violation] | None = None,
    ) -> None:
        self.raw_output = raw_output
        self.violations: list[Violation] = list(violations or [])
        super().__init__(message)


class ExternalServiceError(StudyFlowError):
    """The model or database collaborator failed at the transport level."""


class TemplateError(ValueError):
    """A prompt template could not be compiled."""
