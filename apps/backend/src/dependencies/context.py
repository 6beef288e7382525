"""Per-request caller context.

Every request carries its own credential; nothing identity-related is held
at process level. The access token, when present, is forwarded to the
metadata provider and hashed into a stable user key for metering.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from core.error_handler import get_correlation_id


ANONYMOUS_USER_ID = "anonymous"
BEARER_PREFIX = "bearer "


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Identity and tracing data for one request."""

    user_id: str
    correlation_id: str
    access_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None


def bearer_token_from_header(header: str | None) -> str | None:
    """Return the token of an ``Authorization: Bearer <token>`` header."""
    if not header or not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX) :].strip()
    return token or None


def hash_user_token(token: str) -> str:
    """Stable, non-reversible key for a token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


def build_request_context(authorization: str | None) -> RequestContext:
    token = bearer_token_from_header(authorization)
    user_id = f"user_{hash_user_token(token)}" if token else ANONYMOUS_USER_ID
    return RequestContext(
        user_id=user_id,
        correlation_id=get_correlation_id(),
        access_token=token,
    )


async def get_request_context(request: Request) -> RequestContext:
    return build_request_context(request.headers.get("Authorization"))


RequestContextDep = Annotated[RequestContext, Depends(get_request_context)]
