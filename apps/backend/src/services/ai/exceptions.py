"""Domain exceptions for the pipeline generation loop.

Gateway failures are classified once, where the remote call fails, so that
the retry policy and the orchestrator branch on a `kind` rather than on
provider-specific error types. Each exception carries a stable
`error_code` for analytics and for the terminal progress event.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from services.ai.models import GenerationAttempt


@dataclass(slots=True)
class PipelineGenerationError(Exception):
    """Base class for pipeline generation domain errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class GenerationFailureKind(StrEnum):
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self is not GenerationFailureKind.FATAL


class GenerationFailure(PipelineGenerationError):
    """A text-generation call failed.

    `suggested_delay_ms` is the server's "retry in Ns" hint when one was
    present in the error text. `attempts` holds every call made before the
    gateway gave up, failed ones included.
    """

    def __init__(
        self,
        kind: GenerationFailureKind,
        message: str = "Text generation failed",
        *,
        status_code: int | None = None,
        model: str | None = None,
        suggested_delay_ms: int | None = None,
        attempts: list[GenerationAttempt] | None = None,
    ) -> None:
        super().__init__(message=message, error_code=f"generation_{kind.value}")
        self.kind = kind
        self.status_code = status_code
        self.model = model
        self.suggested_delay_ms = suggested_delay_ms
        self.attempts: list[GenerationAttempt] = list(attempts or [])


class ProgressStreamClosed(PipelineGenerationError):
    def __init__(self, message: str = "Progress stream is closed") -> None:
        super().__init__(message=message, error_code="stream_closed")
