"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "PipelinePilot"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # AI / LLM provider configuration
    LLM_PROVIDER: Literal["gemini", "azure_openai"] = "gemini"
    GEMINI_API_KEY: str | None = None
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str | None = None

    # Generation loop. Models are tried in order, most preferred first.
    GENERATION_MODELS: Annotated[list[str], NoDecode] = [
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
    ]
    GENERATION_MAX_RETRIES: int = 3
    GENERATION_RETRY_DELAYS: Annotated[list[float], NoDecode] = [1.0, 2.0, 4.0]  # seconds
    GENERATION_MAX_SUGGESTED_DELAY_MS: int = 10_000
    GENERATION_MAX_ITERATIONS: int = 5
    GENERATION_FALLBACK_POLICY: Literal["return_placeholder", "fail_closed"] = (
        "return_placeholder"
    )
    STRICT_RESOURCE_VALIDATION: bool = False

    # Fabric metadata
    FABRIC_API_BASE_URL: str = "https://api.fabric.microsoft.com/v1"
    FABRIC_API_TIMEOUT_SECONDS: float = 15.0
    MANUAL_METADATA_PATH: str = "manual-metadata.json"

    # Usage metering (character based, 1 char = TOKENS_PER_CHAR tokens)
    DAILY_TOKEN_LIMIT: int = 100_000
    TOKENS_PER_CHAR: int = 100

    # Upstash Rate Limiting
    # REST URL and token for Upstash Redis; optional in development/test
    UPSTASH_REDIS_REST_URL: str | None = None
    UPSTASH_REDIS_REST_TOKEN: str | None = None

    # Rate limit settings (requests per window)
    RATE_LIMIT_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        return _parse_str_list(v, "CORS_ORIGINS")

    @field_validator("GENERATION_MODELS", mode="before")
    @classmethod
    def assemble_generation_models(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for model candidates."""
        models = _parse_str_list(v, "GENERATION_MODELS")
        if not models:
            raise ValueError("GENERATION_MODELS must name at least one model")
        return models

    @field_validator("GENERATION_RETRY_DELAYS", mode="before")
    @classmethod
    def assemble_retry_delays(cls, v: object) -> list[float]:
        delays = [float(d) for d in _parse_str_list(v, "GENERATION_RETRY_DELAYS")]
        if not delays or any(d < 0 for d in delays):
            raise ValueError("GENERATION_RETRY_DELAYS must be non-negative numbers")
        return delays

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        # Normalize in case the union allows a stray string at runtime
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        if self.GENERATION_MAX_ITERATIONS < 1:
            raise ValueError("GENERATION_MAX_ITERATIONS must be at least 1")
        if self.GENERATION_MAX_RETRIES < 0:
            raise ValueError("GENERATION_MAX_RETRIES must not be negative")
        return self


def _parse_str_list(v: object, field_name: str) -> list[str]:
    if isinstance(v, list):
        return [str(i).strip() for i in v]
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return []
        if s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError as e:
                raise ValueError(
                    f"{field_name} must be a CSV list or JSON array string"
                ) from e
            if not isinstance(parsed, list):
                raise ValueError(f"{field_name} JSON must be a list")
            return [str(i).strip() for i in parsed]
        # CSV fallback
        return [i.strip() for i in s.split(",") if i.strip()]
    raise ValueError(f"Invalid {field_name} type; expected str or list")


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""
    if env_file and not os.path.exists(env_file):
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    return Settings(_env_file=env_file or None)  # type: ignore[call-arg]
