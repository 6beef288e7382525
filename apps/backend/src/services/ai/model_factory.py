"""Factory for the pydantic-ai models behind the generation gateway.

Model candidates are configured by name (``GENERATION_MODELS``). With
``LLM_PROVIDER=azure_openai`` the names are Azure deployment names;
otherwise they are Gemini model ids.

Usage:
    from services.ai.model_factory import get_generation_model

    model = get_generation_model("gemini-2.5-flash")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from core.config import get_settings


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)


def _normalize_azure_endpoint(endpoint: str) -> str:
    """Drop trailing slashes; Azure returns 404 for ``//openai/...`` paths."""
    return endpoint.rstrip("/")


def _is_azure_provider() -> bool:
    return get_settings().LLM_PROVIDER == "azure_openai"


def _validate_azure_credentials() -> bool:
    settings = get_settings()
    if (
        not settings.AZURE_OPENAI_ENDPOINT
        or not settings.AZURE_OPENAI_API_KEY
        or not settings.AZURE_OPENAI_API_VERSION
    ):
        logger.warning(
            "LLM_PROVIDER=azure_openai but credentials missing, falling back to Gemini"
        )
        return False
    return True


def _validate_gemini_credentials() -> bool:
    if not get_settings().GEMINI_API_KEY:
        logger.warning("Gemini API key not configured")
        return False
    return True


def _create_azure_model(
    model_name: str,
    http_client: AsyncClient | None = None,
) -> Model:
    from openai import AsyncAzureOpenAI

    settings = get_settings()
    azure_client = AsyncAzureOpenAI(
        azure_endpoint=_normalize_azure_endpoint(settings.AZURE_OPENAI_ENDPOINT or ""),
        api_key=settings.AZURE_OPENAI_API_KEY,
        api_version=settings.AZURE_OPENAI_API_VERSION,
        http_client=http_client,
    )
    provider = OpenAIProvider(openai_client=azure_client)
    return OpenAIChatModel(model_name, provider=provider)


def _create_gemini_model(
    model_name: str,
    http_client: AsyncClient | None = None,
) -> Model:
    provider = GoogleProvider(
        api_key=get_settings().GEMINI_API_KEY,
        http_client=http_client,
    )
    return cast(Model, GoogleModel(model_name, provider=provider))


def get_generation_model(
    model_name: str, http_client: AsyncClient | None = None
) -> Model:
    """Build the model for one generation candidate.

    Raises:
        ValueError: when neither Azure OpenAI nor Gemini credentials are set.
    """
    if _is_azure_provider() and _validate_azure_credentials():
        logger.info("Using Azure OpenAI generation deployment: %s", model_name)
        return _create_azure_model(model_name, http_client)

    if not _validate_gemini_credentials():
        raise ValueError(
            "No valid LLM provider configured. Either set Azure OpenAI "
            "credentials (AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY) "
            "or Gemini credentials (GEMINI_API_KEY)."
        )

    logger.info("Using Gemini generation model: %s", model_name)
    return _create_gemini_model(model_name, http_client)
