"""Request, finding and response models for pipeline generation."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.metadata import DomainMetadata, TableSchema


ConversationRole = Literal["user", "assistant"]

# Older clients tag assistant turns as {"type": "ai"}
_LEGACY_ROLE_TAGS: dict[str, ConversationRole] = {
    "ai": "assistant",
    "assistant": "assistant",
    "user": "user",
}


class ConversationMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: ConversationRole
    content: str

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_shape(cls, data: Any) -> Any:
        if isinstance(data, dict) and "role" not in data and "type" in data:
            role = _LEGACY_ROLE_TAGS.get(str(data["type"]).lower())
            if role is None:
                raise ValueError(f"Unknown conversation message type: {data['type']}")
            return {"role": role, "content": data.get("content", "")}
        return data


class GenerationRequest(BaseModel):
    """Everything one orchestration run needs; immutable once submitted."""

    model_config = ConfigDict(frozen=True)

    original_prompt: str
    conversation_context: tuple[ConversationMessage, ...] = ()
    domain_metadata: DomainMetadata = Field(default_factory=DomainMetadata)


class GeneratePipelineRequest(BaseModel):
    """Body of the generate and validate-stream endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., min_length=1, max_length=20_000)
    conversation_history: list[ConversationMessage] = Field(default_factory=list)
    table_schemas: list[TableSchema] | None = Field(default=None, alias="tableSchemas")


class ValidateArtifactRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    artifact: str = Field(..., description="Raw generation artifact text")
    table_schemas: list[TableSchema] | None = Field(default=None, alias="tableSchemas")


class FindingCategory(StrEnum):
    SYNTAX = "syntax"
    MISSING_FIELD = "missing-field"
    ACTIVITY_ERROR = "activity-error"
    RESOURCE_REFERENCE = "resource-reference"
    SCHEMA_VIOLATION = "schema-violation"


class FindingSeverity(StrEnum):
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"

    @property
    def blocking(self) -> bool:
        return self is not FindingSeverity.WARNING


class ValidationFinding(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: FindingCategory
    message: str
    severity: FindingSeverity
    suggestion: str | None = None


class ValidationResult(BaseModel):
    """Findings of one validation pass.

    Valid means no finding is critical or error; warnings never block.
    """

    is_valid: bool
    findings: list[ValidationFinding] = Field(default_factory=list)

    @classmethod
    def from_findings(cls, findings: list[ValidationFinding]) -> ValidationResult:
        return cls(
            is_valid=not any(f.severity.blocking for f in findings),
            findings=findings,
        )

    @property
    def blocking_findings(self) -> list[ValidationFinding]:
        return [f for f in self.findings if f.severity.blocking]


class NotebookPayload(BaseModel):
    notebook_id: str
    code: str


class UsageSummary(BaseModel):
    tokens_used: int
    remaining: int | None = Field(
        None, description="Tokens left today; null when the caller is unlimited"
    )


class GeneratePipelineResponse(BaseModel):
    result: str
    notebooks: list[NotebookPayload] = Field(default_factory=list)
    model_used: str | None = None
    used_placeholder: bool = False
    usage: UsageSummary


class ValidateArtifactResponse(BaseModel):
    validation: ValidationResult
    notebooks: list[NotebookPayload] = Field(default_factory=list)
