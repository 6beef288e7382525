"""Generate-validate-repair loop for pipeline artifacts.

A run moves through Generating(i) -> Validating(i) -> either Accepted, or
Repairing(i) -> Generating(i + 1), until the iteration budget is spent
(Exhausted). Every step is reported as a progress event; the run always
ends with exactly one CompleteEvent unless the consumer went away first.
Validation findings are data, not exceptions: only unexpected errors reach
the boundary in `run`, where they become an unsuccessful CompleteEvent.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator

from core.config import get_settings
from schemas.pipeline import GenerationRequest, ValidationFinding
from schemas.progress import CompleteEvent, DetailEvent, ProgressEvent, StatusEvent
from services.ai.exceptions import (
    GenerationFailure,
    GenerationFailureKind,
    PipelineGenerationError,
    ProgressStreamClosed,
)
from services.ai.gateway import get_text_generation_gateway
from services.ai.interfaces import (
    PipelineGenerationService,
    ProgressSinkProtocol,
    RepairPromptBuilderProtocol,
    SchemaValidatorProtocol,
    TextGenerationGatewayProtocol,
)
from services.ai.models import (
    FallbackPolicy,
    GenerationAttempt,
    GenerationResult,
    RunOutcome,
    RunStatus,
)
from services.ai.progress import ProgressStream
from services.pipeline.prompts import PLACEHOLDER_ARTIFACT, compose_generation_prompt
from services.pipeline.repair import RepairPromptBuilder
from services.pipeline.validator import SchemaValidator


logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5


def _blocking_count(findings: list[ValidationFinding]) -> int:
    return sum(1 for f in findings if f.severity.blocking)


class GenerationOrchestrator(PipelineGenerationService):
    def __init__(
        self,
        gateway: TextGenerationGatewayProtocol,
        validator: SchemaValidatorProtocol,
        repair_builder: RepairPromptBuilderProtocol,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        fallback_policy: FallbackPolicy = FallbackPolicy.RETURN_PLACEHOLDER,
    ) -> None:
        super().__init__(gateway, validator, repair_builder)
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.max_iterations = max_iterations
        self.fallback_policy = fallback_policy

    async def _generate(
        self,
        prompt: str,
        sink: ProgressSinkProtocol,
        attempts: list[GenerationAttempt],
    ) -> GenerationResult:
        try:
            result = await self.gateway.generate(prompt)
        except GenerationFailure as failure:
            attempts.extend(failure.attempts)
            if (
                self.fallback_policy is FallbackPolicy.FAIL_CLOSED
                or failure.kind is not GenerationFailureKind.FATAL
            ):
                raise
            logger.warning("All models failed, using placeholder: %s", failure.message)
            await sink.emit(
                DetailEvent(
                    icon="warning",
                    title="Fallback Pipeline",
                    message=(
                        "All AI models failed. A placeholder pipeline is shown; "
                        "review it before deploying."
                    ),
                )
            )
            return GenerationResult(
                text=PLACEHOLDER_ARTIFACT, model_used=None, used_placeholder=True
            )
        attempts.extend(result.attempts)
        return result

    async def run(
        self,
        request: GenerationRequest,
        sink: ProgressSinkProtocol,
        max_iterations: int | None = None,
    ) -> RunOutcome:
        budget = self.max_iterations if max_iterations is None else max_iterations
        if budget < 1:
            raise ValueError("max_iterations must be at least 1")
        attempts: list[GenerationAttempt] = []
        iteration = 0
        artifact: str | None = None
        used_placeholder = False

        try:
            await sink.emit(
                StatusEvent(
                    phase="started",
                    iteration=0,
                    message="Starting pipeline generation...",
                )
            )
            await sink.emit(
                DetailEvent(
                    icon="agent",
                    title="AI Agent",
                    message="Generating initial pipeline based on your request...",
                )
            )

            request_text = request.original_prompt
            findings: list[ValidationFinding] = []
            for iteration in range(1, budget + 1):
                await sink.emit(
                    StatusEvent(
                        phase="generating",
                        iteration=iteration,
                        message=f"Iteration {iteration}/{budget}",
                    )
                )
                if iteration > 1:
                    await sink.emit(
                        DetailEvent(
                            icon="fix",
                            title="Fixing Issues",
                            message=(
                                f"Attempting to fix {_blocking_count(findings)} "
                                "problem(s)..."
                            ),
                        )
                    )
                await sink.emit(
                    DetailEvent(
                        icon="loading",
                        title="AI Processing",
                        message="Waiting for AI response...",
                    )
                )

                prompt = compose_generation_prompt(
                    request_text,
                    request.domain_metadata,
                    request.conversation_context,
                )
                generated = await self._generate(prompt, sink, attempts)
                artifact = generated.text
                used_placeholder = used_placeholder or generated.used_placeholder

                await sink.emit(
                    DetailEvent(
                        icon="doc",
                        title="Pipeline Generated",
                        message=(
                            f"Received pipeline definition ({len(artifact)} characters)"
                        ),
                    )
                )
                await sink.emit(
                    StatusEvent(
                        phase="validating",
                        iteration=iteration,
                        message="Validating pipeline...",
                    )
                )

                result = self.validator.validate(artifact, request.domain_metadata)
                findings = result.findings

                if result.is_valid:
                    await sink.emit(
                        DetailEvent(
                            icon="success",
                            title="Validation Passed",
                            message="All checks passed. Pipeline is valid.",
                        )
                    )
                    await sink.emit(
                        StatusEvent(
                            phase="complete",
                            iteration=iteration,
                            message="Pipeline optimized and ready",
                        )
                    )
                    await sink.emit(
                        CompleteEvent(
                            success=True,
                            artifact=artifact,
                            iterations=iteration,
                            used_placeholder=used_placeholder,
                            message=(
                                "Pipeline validated successfully after "
                                f"{iteration} iteration(s)"
                            ),
                        )
                    )
                    return RunOutcome(
                        status=RunStatus.ACCEPTED,
                        iterations=iteration,
                        artifact=artifact,
                        used_placeholder=used_placeholder,
                        attempts=attempts,
                    )

                for finding in findings:
                    await sink.emit(DetailEvent.for_finding(finding))

                if iteration < budget:
                    await sink.emit(
                        DetailEvent(
                            icon="retry",
                            title="Retry",
                            message=(
                                f"Found {_blocking_count(findings)} issue(s). "
                                "Asking AI to fix..."
                            ),
                        )
                    )
                    await sink.emit(
                        StatusEvent(
                            phase="repairing",
                            iteration=iteration,
                            message="Building repair instructions...",
                        )
                    )
                    request_text = self.repair_builder.build(
                        request.original_prompt, artifact, findings
                    )

            await sink.emit(
                StatusEvent(
                    phase="incomplete",
                    iteration=iteration,
                    message="Max iterations reached",
                )
            )
            await sink.emit(
                CompleteEvent(
                    success=False,
                    artifact=artifact,
                    iterations=iteration,
                    remaining_findings=findings,
                    used_placeholder=used_placeholder,
                    message=(
                        f"Could not fully validate after {iteration} attempts. "
                        "Manual review recommended."
                    ),
                )
            )
            return RunOutcome(
                status=RunStatus.EXHAUSTED,
                iterations=iteration,
                artifact=artifact,
                used_placeholder=used_placeholder,
                attempts=attempts,
            )

        except ProgressStreamClosed:
            logger.info("Progress sink closed; stopping run at iteration %d", iteration)
            return RunOutcome(
                status=RunStatus.FAILED,
                iterations=iteration,
                artifact=artifact,
                error="progress sink closed",
                attempts=attempts,
            )
        except Exception as exc:
            logger.exception("Generation run failed at iteration %d", iteration)
            message = (
                exc.message if isinstance(exc, PipelineGenerationError) else str(exc)
            ) or exc.__class__.__name__
            with contextlib.suppress(ProgressStreamClosed):
                await sink.emit(
                    DetailEvent(icon="error", title="Error", message=message)
                )
                await sink.emit(
                    CompleteEvent(
                        success=False,
                        artifact=artifact,
                        iterations=iteration,
                        error=message,
                        used_placeholder=used_placeholder,
                        message="Pipeline generation failed",
                    )
                )
            return RunOutcome(
                status=RunStatus.FAILED,
                iterations=iteration,
                artifact=artifact,
                error=message,
                used_placeholder=used_placeholder,
                attempts=attempts,
            )

    async def _run_into(
        self, request: GenerationRequest, stream: ProgressStream
    ) -> None:
        try:
            await self.run(request, stream)
        finally:
            stream.finish()

    async def stream_events(
        self, request: GenerationRequest
    ) -> AsyncGenerator[ProgressEvent, None]:
        stream = ProgressStream()
        task = asyncio.create_task(self._run_into(request, stream))
        try:
            async for event in stream:
                yield event
            await task
        finally:
            stream.close()
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def generate_once(self, request: GenerationRequest) -> GenerationResult:
        prompt = compose_generation_prompt(
            request.original_prompt,
            request.domain_metadata,
            request.conversation_context,
        )
        try:
            return await self.gateway.generate(prompt)
        except GenerationFailure as failure:
            if self.fallback_policy is FallbackPolicy.FAIL_CLOSED:
                raise
            logger.warning("All models failed, using placeholder: %s", failure.message)
            return GenerationResult(
                text=PLACEHOLDER_ARTIFACT,
                model_used=None,
                attempts=failure.attempts,
                used_placeholder=True,
            )


# FastAPI DI provider (used by API layer via Depends)
def get_generation_orchestrator() -> GenerationOrchestrator:
    settings = get_settings()
    return GenerationOrchestrator(
        get_text_generation_gateway(),
        SchemaValidator(strict_resources=settings.STRICT_RESOURCE_VALIDATION),
        RepairPromptBuilder(),
        max_iterations=settings.GENERATION_MAX_ITERATIONS,
        fallback_policy=FallbackPolicy(settings.GENERATION_FALLBACK_POLICY),
    )
