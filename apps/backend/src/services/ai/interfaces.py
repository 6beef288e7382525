"""Service interfaces for pipeline generation.

The orchestrator only depends on these protocols, so tests and alternate
providers can plug in without patching module globals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Sequence
from typing import Protocol

from schemas.metadata import DomainMetadata
from schemas.pipeline import GenerationRequest, ValidationFinding, ValidationResult
from schemas.progress import ProgressEvent
from services.ai.models import GenerationResult, RunOutcome


class TextGenerationClientProtocol(Protocol):
    """Black-box text generation: prompt in, text out, or an exception."""

    async def generate_content(self, model_id: str, prompt: str) -> str: ...


class TextGenerationGatewayProtocol(Protocol):
    async def generate(self, prompt: str) -> GenerationResult:
        """Return generated text, raising GenerationFailure(FATAL) when every
        model candidate has failed."""
        ...


class SchemaValidatorProtocol(Protocol):
    def validate(
        self, artifact_text: str, metadata: DomainMetadata | None = None
    ) -> ValidationResult: ...


class RepairPromptBuilderProtocol(Protocol):
    def build(
        self,
        original_prompt: str,
        last_artifact: str,
        findings: Sequence[ValidationFinding],
    ) -> str: ...


class ProgressSinkProtocol(Protocol):
    """Append-only, ordered channel of progress events."""

    @property
    def writable(self) -> bool: ...

    async def emit(self, event: ProgressEvent) -> None: ...


class PipelineGenerationService(ABC):
    """Coordinates generation, validation and repair for one request."""

    def __init__(
        self,
        gateway: TextGenerationGatewayProtocol,
        validator: SchemaValidatorProtocol,
        repair_builder: RepairPromptBuilderProtocol,
    ) -> None:
        self.gateway = gateway
        self.validator = validator
        self.repair_builder = repair_builder

    @abstractmethod
    async def run(
        self,
        request: GenerationRequest,
        sink: ProgressSinkProtocol,
        max_iterations: int | None = None,
    ) -> RunOutcome:
        """Drive the loop to a terminal state, emitting events into `sink`.

        Exactly one CompleteEvent is emitted, and it is the last event,
        unless the sink stops being writable first.
        """
        ...

    @abstractmethod
    def stream_events(
        self, request: GenerationRequest
    ) -> AsyncGenerator[ProgressEvent, None]:
        """Async generator yielding the events of one run in order.

        Closing the generator early cancels the run.
        """
        ...

    @abstractmethod
    async def generate_once(self, request: GenerationRequest) -> GenerationResult:
        """Single generation without the validate/repair loop."""
        ...
