"""Typed records exchanged inside one generation run.

* GenerationAttempt - one call to the text-generation capability.
* GenerationResult  - the text a gateway call produced plus its attempt log.
* FallbackPolicy    - what the orchestrator does once every model failed.
* RunOutcome        - terminal state of an orchestration run.

None of these are persisted; they live for the duration of a single run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from services.ai.exceptions import GenerationFailureKind


@dataclass(slots=True, frozen=True)
class GenerationAttempt:
    """Outcome of a single call to one model."""

    model_used: str
    attempt_number: int
    prompt_length: int
    raw_output: str | None = None
    failure_reason: GenerationFailureKind | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure_reason is None


@dataclass(slots=True)
class GenerationResult:
    """Text produced by the gateway.

    `model_used` is None when the text is the placeholder artifact rather
    than model output.
    """

    text: str
    model_used: str | None
    attempts: list[GenerationAttempt] = field(default_factory=list)
    used_placeholder: bool = False


class FallbackPolicy(StrEnum):
    """Behaviour when the gateway reports every model as failed."""

    FAIL_CLOSED = "fail_closed"
    RETURN_PLACEHOLDER = "return_placeholder"


class RunStatus(StrEnum):
    ACCEPTED = "accepted"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


@dataclass(slots=True)
class RunOutcome:
    """Terminal state of one generate-validate-repair run."""

    status: RunStatus
    iterations: int
    artifact: str | None = None
    used_placeholder: bool = False
    error: str | None = None
    attempts: list[GenerationAttempt] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is RunStatus.ACCEPTED
