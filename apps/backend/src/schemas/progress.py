"""Progress events streamed while a pipeline is generated.

Each variant carries a ``type`` tag matching its name so a client can
dispatch on one field. ``to_sse`` renders the Server-Sent Events wire form
in one place for every variant.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from schemas.pipeline import FindingSeverity, ValidationFinding


RunPhase = Literal[
    "started",
    "generating",
    "validating",
    "repairing",
    "complete",
    "incomplete",
    "failed",
]

DetailIcon = Literal[
    "agent", "loading", "doc", "fix", "retry", "success", "error", "warning"
]


class _ProgressEventBase(BaseModel):
    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"


class StatusEvent(_ProgressEventBase):
    type: Literal["status"] = "status"
    phase: RunPhase
    iteration: int = Field(..., ge=0)
    message: str


class DetailEvent(_ProgressEventBase):
    type: Literal["detail"] = "detail"
    icon: DetailIcon
    title: str
    message: str
    severity: FindingSeverity | None = None
    suggestion: str | None = None

    @classmethod
    def for_finding(cls, finding: ValidationFinding) -> DetailEvent:
        return cls(
            icon="warning" if finding.severity == FindingSeverity.WARNING else "error",
            title=f"Problem: {finding.category.value}",
            message=finding.message,
            severity=finding.severity,
            suggestion=finding.suggestion,
        )


class CompleteEvent(_ProgressEventBase):
    """Terminal event; exactly one per run, always last."""

    type: Literal["complete"] = "complete"
    success: bool
    iterations: int = Field(..., ge=0)
    message: str
    artifact: str | None = None
    remaining_findings: list[ValidationFinding] | None = None
    error: str | None = None
    used_placeholder: bool = False


ProgressEvent = Annotated[
    StatusEvent | DetailEvent | CompleteEvent, Field(discriminator="type")
]
