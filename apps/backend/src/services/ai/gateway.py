"""Text generation with model fallback and rate-limit aware retries.

Model candidates are tried in order. Each model gets one call plus
``max_retries`` retries, separated by a fixed backoff schedule (delays past
the end of the schedule reuse its last value). Only rate-limit-class
failures (HTTP 429/503, "overloaded", "rate limit") are retried on the same
model; anything else advances to the next candidate at once.

A server hint such as "retry in 37.5s" longer than the configured
threshold abandons the model without waiting. The model is then marked as
cooling down until the hint expires, and later calls try it after the
models that are not cooling down. This cooldown map is the only state
shared between requests.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
import time
from collections.abc import Awaitable, Callable, Sequence
from functools import lru_cache

from pydantic_ai import Agent
from pydantic_ai.models import Model
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from core.config import get_settings
from core.observability import get_tracer
from services.ai.exceptions import GenerationFailure, GenerationFailureKind
from services.ai.interfaces import TextGenerationClientProtocol
from services.ai.model_factory import get_generation_model
from services.ai.models import GenerationAttempt, GenerationResult


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

SleepFn = Callable[[float], Awaitable[None]]

_RETRY_HINT_RE = re.compile(r"retry in ([0-9.]+)s", re.IGNORECASE)
_RATE_LIMIT_MARKERS = ("rate limit", "429", "resource_exhausted")
_OVERLOAD_MARKERS = ("overloaded", "503", "unavailable")


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def parse_suggested_delay_ms(message: str) -> int | None:
    """Extract a "retry in <seconds>s" hint, rounded up to milliseconds."""
    match = _RETRY_HINT_RE.search(message)
    if not match:
        return None
    try:
        return math.ceil(float(match.group(1)) * 1000)
    except ValueError:
        return None


def classify_failure(exc: Exception, model: str) -> GenerationFailure:
    """Map any client exception onto the gateway's failure taxonomy."""
    if isinstance(exc, GenerationFailure):
        if exc.model is None:
            exc.model = model
        return exc

    message = str(exc) or exc.__class__.__name__
    lowered = message.lower()
    status_code = _status_code(exc)

    if status_code == 429 or any(m in lowered for m in _RATE_LIMIT_MARKERS):
        kind = GenerationFailureKind.RATE_LIMITED
    elif status_code == 503 or any(m in lowered for m in _OVERLOAD_MARKERS):
        kind = GenerationFailureKind.TRANSIENT
    else:
        kind = GenerationFailureKind.FATAL

    suggested = parse_suggested_delay_ms(message) if kind.retryable else None
    return GenerationFailure(
        kind,
        message,
        status_code=status_code,
        model=model,
        suggested_delay_ms=suggested,
    )


class PydanticAITextClient:
    """Text generation through pydantic-ai, one cached agent per model."""

    def __init__(
        self, model_builder: Callable[[str], Model] = get_generation_model
    ) -> None:
        self._model_builder = model_builder
        self._agents: dict[str, Agent[None, str]] = {}

    def _agent_for(self, model_id: str) -> Agent[None, str]:
        agent = self._agents.get(model_id)
        if agent is None:
            # The composed prompt already carries the system instructions
            agent = Agent(self._model_builder(model_id), output_type=str)
            self._agents[model_id] = agent
        return agent

    async def generate_content(self, model_id: str, prompt: str) -> str:
        result = await self._agent_for(model_id).run(prompt)
        return result.output


class TextGenerationGateway:
    def __init__(
        self,
        client: TextGenerationClientProtocol,
        models: Sequence[str],
        *,
        max_retries: int = 3,
        retry_delays: Sequence[float] = (1.0, 2.0, 4.0),
        max_suggested_delay_ms: int = 10_000,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not models:
            raise ValueError("At least one model candidate is required")
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")
        self.client = client
        self.models = tuple(models)
        self.max_retries = max_retries
        self.retry_delays = tuple(retry_delays)
        self.max_suggested_delay_ms = max_suggested_delay_ms
        self._sleep = sleep
        self._clock = clock
        self._cooldown_until: dict[str, float] = {}

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before retry `retry_number` (1-based)."""
        index = min(retry_number, len(self.retry_delays)) - 1
        return self.retry_delays[index]

    def cooling_down(self, model: str) -> bool:
        return self._cooldown_until.get(model, 0.0) > self._clock()

    def ordered_models(self) -> list[str]:
        """Configured order, with models still cooling down moved last."""
        ready = [m for m in self.models if not self.cooling_down(m)]
        cooling = [m for m in self.models if self.cooling_down(m)]
        return ready + cooling

    def _should_retry(self, exc: BaseException) -> bool:
        if not isinstance(exc, GenerationFailure) or not exc.kind.retryable:
            return False
        delay = exc.suggested_delay_ms
        return delay is None or delay <= self.max_suggested_delay_ms

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.backoff_delay(retry_state.attempt_number)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        failure = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info(
            "Retrying %s (attempt %d/%d) after %.1fs: %s",
            getattr(failure, "model", "?"),
            retry_state.attempt_number + 1,
            self.max_retries + 1,
            self.backoff_delay(retry_state.attempt_number),
            getattr(failure, "kind", "unknown"),
        )

    async def _call(
        self,
        model: str,
        prompt: str,
        attempt_number: int,
        attempts: list[GenerationAttempt],
    ) -> str:
        with tracer.start_as_current_span("pipeline.generate_content") as span:
            span.set_attribute("generation.model", model)
            span.set_attribute("generation.attempt", attempt_number)
            try:
                text = await self.client.generate_content(model, prompt)
            except Exception as exc:
                failure = classify_failure(exc, model)
                span.set_attribute("generation.failure", failure.kind.value)
                attempts.append(
                    GenerationAttempt(
                        model_used=model,
                        attempt_number=attempt_number,
                        prompt_length=len(prompt),
                        failure_reason=failure.kind,
                    )
                )
                logger.warning(
                    "%s failed (attempt %d/%d, %s): %s",
                    model,
                    attempt_number,
                    self.max_retries + 1,
                    failure.kind.value,
                    failure.message,
                )
                if failure is exc:
                    raise
                raise failure from exc

        attempts.append(
            GenerationAttempt(
                model_used=model,
                attempt_number=attempt_number,
                prompt_length=len(prompt),
                raw_output=text,
            )
        )
        logger.info("%s succeeded on attempt %d", model, attempt_number)
        return text

    async def _generate_with_model(
        self, model: str, prompt: str, attempts: list[GenerationAttempt]
    ) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception(self._should_retry),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                text = await self._call(
                    model, prompt, attempt.retry_state.attempt_number, attempts
                )
        return text

    def _note_cooldown(self, failure: GenerationFailure) -> None:
        delay = failure.suggested_delay_ms
        if failure.model is None or delay is None:
            return
        if delay > self.max_suggested_delay_ms:
            self._cooldown_until[failure.model] = self._clock() + delay / 1000
            logger.warning(
                "%s asked to retry in %dms; switching model immediately",
                failure.model,
                delay,
            )

    async def generate(self, prompt: str) -> GenerationResult:
        attempts: list[GenerationAttempt] = []
        last_failure: GenerationFailure | None = None

        for model in self.ordered_models():
            try:
                text = await self._generate_with_model(model, prompt, attempts)
            except GenerationFailure as failure:
                last_failure = failure
                self._note_cooldown(failure)
                logger.warning("Model %s exhausted; trying next candidate", model)
                continue
            return GenerationResult(text=text, model_used=model, attempts=attempts)

        logger.error("All %d generation models failed", len(self.models))
        raise GenerationFailure(
            GenerationFailureKind.FATAL,
            "All generation models failed"
            + (f"; last error: {last_failure.message}" if last_failure else ""),
            status_code=last_failure.status_code if last_failure else None,
            model=last_failure.model if last_failure else None,
            attempts=attempts,
        )


@lru_cache
def get_text_generation_gateway() -> TextGenerationGateway:
    """Process-wide gateway, so cooldown hints outlive a single request."""
    settings = get_settings()
    return TextGenerationGateway(
        PydanticAITextClient(),
        settings.GENERATION_MODELS,
        max_retries=settings.GENERATION_MAX_RETRIES,
        retry_delays=settings.GENERATION_RETRY_DELAYS,
        max_suggested_delay_ms=settings.GENERATION_MAX_SUGGESTED_DELAY_MS,
    )
