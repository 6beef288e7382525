"""Shared test fixtures for pytest.

ENVIRONMENT is pinned to "test" before the app is imported so settings are
built from defaults only, without reading an env file. Real model requests
are blocked for the whole session; generation is exercised through fakes.
"""

import os
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient


os.environ.setdefault("ENVIRONMENT", "test")

import pydantic_ai.models  # noqa: E402

from main import app  # noqa: E402
from services.ai.models import FallbackPolicy  # noqa: E402
from services.ai.orchestrator import (  # noqa: E402
    GenerationOrchestrator,
    get_generation_orchestrator,
)
from services.metadata import MetadataService, get_metadata_service  # noqa: E402
from services.pipeline.repair import RepairPromptBuilder  # noqa: E402
from services.pipeline.validator import SchemaValidator  # noqa: E402
from services.usage import UsageMeter, get_usage_meter  # noqa: E402
from tests.fixtures.pipeline_fixtures import ScriptedGateway  # noqa: E402


pydantic_ai.models.ALLOW_MODEL_REQUESTS = False


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def scripted_gateway() -> ScriptedGateway:
    """Gateway returning queued outputs; tests push responses onto it."""
    return ScriptedGateway()


@pytest.fixture
def usage_meter() -> UsageMeter:
    return UsageMeter(daily_limit=100_000, tokens_per_char=100)


@pytest.fixture
def metadata_service(tmp_path: Path) -> MetadataService:
    """Metadata service with no manual file, so it serves mock metadata."""
    return MetadataService(
        base_url="https://fabric.test/v1",
        manual_path=tmp_path / "manual-metadata.json",
    )


@pytest.fixture
def api_overrides(
    scripted_gateway: ScriptedGateway,
    usage_meter: UsageMeter,
    metadata_service: MetadataService,
) -> Generator[None, None, None]:
    """Route the pipeline endpoints through fakes instead of real models."""

    def _orchestrator() -> GenerationOrchestrator:
        return GenerationOrchestrator(
            scripted_gateway,
            SchemaValidator(),
            RepairPromptBuilder(),
            max_iterations=3,
            fallback_policy=FallbackPolicy.RETURN_PLACEHOLDER,
        )

    app.dependency_overrides[get_generation_orchestrator] = _orchestrator
    app.dependency_overrides[get_usage_meter] = lambda: usage_meter
    app.dependency_overrides[get_metadata_service] = lambda: metadata_service
    yield
    app.dependency_overrides.pop(get_generation_orchestrator, None)
    app.dependency_overrides.pop(get_usage_meter, None)
    app.dependency_overrides.pop(get_metadata_service, None)


@pytest_asyncio.fixture
async def async_client(api_overrides: None) -> AsyncGenerator[AsyncClient, None]:
    """Async client with generation, metadata and usage overrides."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
