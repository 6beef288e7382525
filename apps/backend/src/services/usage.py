"""Daily usage metering.

Usage is counted in characters, scaled by ``TOKENS_PER_CHAR``; these are
billing units, not model tokens. Totals are kept per user and UTC day in
process memory only.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from core.config import get_settings
from core.exceptions import UsageLimitExceededError
from dependencies.context import RequestContextDep
from schemas.pipeline import UsageSummary


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UsageStats:
    daily_used: int
    daily_limit: int
    daily_remaining: int | None
    total_used: int
    has_subscription: bool
    tokens_per_char: int


class UsageMeter:
    def __init__(
        self,
        daily_limit: int,
        tokens_per_char: int,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.daily_limit = daily_limit
        self.tokens_per_char = tokens_per_char
        self._clock = clock
        self._day: date | None = None
        self._daily: dict[str, int] = {}
        self._totals: dict[str, int] = {}
        self._subscriptions: dict[str, datetime] = {}

    def _today(self) -> date:
        return self._clock().astimezone(UTC).date()

    def _daily_totals(self) -> dict[str, int]:
        today = self._today()
        if today != self._day:
            # Only the current UTC day is ever read back
            self._day = today
            self._daily = {}
        return self._daily

    def calculate_tokens(self, text: str | None) -> int:
        return len(text) * self.tokens_per_char if text else 0

    def grant_subscription(self, user_id: str, expires_at: datetime) -> None:
        """Mark `user_id` as unlimited until `expires_at`.

        There is no purchase flow in this service, so no endpoint calls this;
        it is the seam for whatever grants subscriptions (an admin task, tests).
        """
        self._subscriptions[user_id] = expires_at

    def has_subscription(self, user_id: str) -> bool:
        expires_at = self._subscriptions.get(user_id)
        return expires_at is not None and expires_at > self._clock()

    def get_daily_usage(self, user_id: str) -> int:
        return self._daily_totals().get(user_id, 0)

    def get_remaining(self, user_id: str) -> int | None:
        """Tokens left today, or None for unlimited subscribers."""
        if self.has_subscription(user_id):
            return None
        return max(0, self.daily_limit - self.get_daily_usage(user_id))

    def ensure_within_limit(self, user_id: str) -> None:
        if self.get_remaining(user_id) == 0:
            raise UsageLimitExceededError(user_id, self.daily_limit)

    def record_usage(self, user_id: str, *texts: str | None) -> UsageSummary:
        tokens = sum(self.calculate_tokens(text) for text in texts)
        daily = self._daily_totals()
        daily[user_id] = daily.get(user_id, 0) + tokens
        self._totals[user_id] = self._totals.get(user_id, 0) + tokens
        logger.info("Recorded %d tokens for %s", tokens, user_id)
        return UsageSummary(tokens_used=tokens, remaining=self.get_remaining(user_id))

    def get_stats(self, user_id: str) -> UsageStats:
        return UsageStats(
            daily_used=self.get_daily_usage(user_id),
            daily_limit=self.daily_limit,
            daily_remaining=self.get_remaining(user_id),
            total_used=self._totals.get(user_id, 0),
            has_subscription=self.has_subscription(user_id),
            tokens_per_char=self.tokens_per_char,
        )


@lru_cache
def get_usage_meter() -> UsageMeter:
    settings = get_settings()
    return UsageMeter(settings.DAILY_TOKEN_LIMIT, settings.TOKENS_PER_CHAR)


UsageMeterDep = Annotated[UsageMeter, Depends(get_usage_meter)]


async def check_usage_limit(context: RequestContextDep, meter: UsageMeterDep) -> None:
    """FastAPI dependency rejecting callers whose daily budget is spent."""
    meter.ensure_within_limit(context.user_id)
