"""Middleware: optional Bearer API key on every /api/v1 route."""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from scooterwatch.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def api_key_matches(expected: str, credentials: HTTPAuthorizationCredentials | None) -> bool:
    """Constant-time comparison of the presented Bearer token with the configured key."""
    if credentials is None:
        return False
    return secrets.compare_digest(credentials.credentials.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Reject the request unless it carries SCOOTERWATCH_API_KEY; no key configured means open access."""
    settings: Settings = request.app.state.settings
    if settings.api_key is None or api_key_matches(settings.api_key, credentials):
        return

    client = request.client.host if request.client is not None else "unknown"
    logger.warning("Rejected %s %s from %s: bad API key", request.method, request.url.path, client)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )
