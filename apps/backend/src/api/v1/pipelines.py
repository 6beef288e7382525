"""Pipeline generation and validation endpoints."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from core.config import Settings, get_settings
from core.ratelimit import check_rate_limit
from dependencies.context import RequestContext, RequestContextDep
from schemas.api import ApiResponse
from schemas.metadata import DomainMetadata, TableSchema
from schemas.pipeline import (
    GeneratePipelineRequest,
    GeneratePipelineResponse,
    GenerationRequest,
    NotebookPayload,
    ValidateArtifactRequest,
    ValidateArtifactResponse,
)
from schemas.progress import CompleteEvent
from services.ai.interfaces import PipelineGenerationService
from services.ai.orchestrator import get_generation_orchestrator
from services.metadata import MetadataService, get_metadata_service
from services.pipeline.artifact import PipelineArtifact, parse_artifact
from services.pipeline.validator import validate_pipeline
from services.usage import UsageMeterDep, check_usage_limit


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pipelines", tags=["pipelines"])

# Generation endpoints call the models; throttle and meter them
generation_deps = [Depends(check_rate_limit), Depends(check_usage_limit)]

OrchestratorDep = Annotated[
    PipelineGenerationService, Depends(get_generation_orchestrator)
]
MetadataServiceDep = Annotated[MetadataService, Depends(get_metadata_service)]


def _notebooks(artifact: PipelineArtifact) -> list[NotebookPayload]:
    return [
        NotebookPayload(notebook_id=nb.notebook_id, code=nb.code)
        for nb in artifact.notebooks
    ]


async def _load_metadata(
    table_schemas: list[TableSchema] | None,
    context: RequestContext,
    metadata_service: MetadataService,
) -> DomainMetadata:
    metadata = await metadata_service.get_metadata(context.access_token)
    if table_schemas:
        # Listed by the client through /metadata/tables for the chosen lakehouse
        metadata = metadata.model_copy(update={"table_schemas": table_schemas})
    return metadata


async def _build_request(
    payload: GeneratePipelineRequest,
    context: RequestContext,
    metadata_service: MetadataService,
) -> GenerationRequest:
    metadata = await _load_metadata(payload.table_schemas, context, metadata_service)
    return GenerationRequest(
        original_prompt=payload.prompt,
        conversation_context=tuple(payload.conversation_history),
        domain_metadata=metadata,
    )


@router.post(
    "/generate",
    response_model=ApiResponse[GeneratePipelineResponse],
    dependencies=generation_deps,
)
async def generate_pipeline(
    payload: GeneratePipelineRequest,
    context: RequestContextDep,
    orchestrator: OrchestratorDep,
    metadata_service: MetadataServiceDep,
    meter: UsageMeterDep,
) -> ApiResponse[GeneratePipelineResponse]:
    """Generate a pipeline in one shot, without the validate/repair loop."""
    request = await _build_request(payload, context, metadata_service)
    result = await orchestrator.generate_once(request)
    usage = meter.record_usage(context.user_id, payload.prompt, result.text)

    return ApiResponse(
        data=GeneratePipelineResponse(
            result=result.text,
            notebooks=_notebooks(parse_artifact(result.text)),
            model_used=result.model_used,
            used_placeholder=result.used_placeholder,
            usage=usage,
        ),
        message="Pipeline generated",
    )


@router.post("/validate", response_model=ApiResponse[ValidateArtifactResponse])
async def validate_artifact(
    payload: ValidateArtifactRequest,
    context: RequestContextDep,
    metadata_service: MetadataServiceDep,
    settings: Annotated[Settings, Depends(get_settings)],
) -> ApiResponse[ValidateArtifactResponse]:
    """Validate an existing artifact against the caller's metadata."""
    metadata = await _load_metadata(payload.table_schemas, context, metadata_service)
    artifact = parse_artifact(payload.artifact)
    result = validate_pipeline(
        artifact, metadata, strict_resources=settings.STRICT_RESOURCE_VALIDATION
    )
    return ApiResponse(
        data=ValidateArtifactResponse(
            validation=result, notebooks=_notebooks(artifact)
        ),
        message="Pipeline is valid" if result.is_valid else "Pipeline has problems",
    )


@router.post(
    "/validate-stream",
    response_class=StreamingResponse,
    dependencies=generation_deps,
)
async def generate_and_validate_stream(
    payload: GeneratePipelineRequest,
    context: RequestContextDep,
    orchestrator: OrchestratorDep,
    metadata_service: MetadataServiceDep,
    meter: UsageMeterDep,
) -> StreamingResponse:
    """Run the generate-validate-repair loop, streaming progress as SSE.

    Each ``data:`` line holds one event tagged ``status``, ``detail`` or
    ``complete``; ``complete`` is always the last one. When the client
    disconnects the stream is cancelled and the run stops with it.
    """
    request = await _build_request(payload, context, metadata_service)

    async def event_stream() -> AsyncGenerator[str, None]:
        final_artifact: str | None = None
        async with contextlib.aclosing(orchestrator.stream_events(request)) as events:
            async for event in events:
                if isinstance(event, CompleteEvent):
                    final_artifact = event.artifact
                yield event.to_sse()

        if final_artifact:
            meter.record_usage(context.user_id, payload.prompt, final_artifact)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
