"""
prodigyhub.api.deps — FastAPI dependency injection
===================================================

Services are built once per application in the lifespan hook and kept on
``app.state``; the dependencies below hand them to routes.  Authentication
is a bearer JWT whose ``sub`` is the caller's user id.
"""

from __future__ import annotations

import os
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from prodigyhub.config import ProdigyConfig
from prodigyhub.services.channel_adapter import ChannelAdapter
from prodigyhub.services.completion_service import CompletionOrchestrator
from prodigyhub.services.project_service import ProjectService
from prodigyhub.services.xp_service import XPLedger

_WEAK_SECRETS = frozenset({
    "prodigyhub-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


# ---------------------------------------------------------------------------
# Application-scoped objects
# ---------------------------------------------------------------------------
def get_engine(request: Request) -> Engine:
    return request.app.state.engine


def get_config(request: Request) -> ProdigyConfig:
    return request.app.state.config


def get_adapter(request: Request) -> ChannelAdapter:
    return request.app.state.adapter


def get_ledger(request: Request) -> XPLedger:
    return request.app.state.ledger


def get_project_service(request: Request) -> ProjectService:
    return request.app.state.projects


def get_orchestrator(request: Request) -> CompletionOrchestrator:
    return request.app.state.completion


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> int:
    """Validate the JWT and return the caller's user id. Raises 401 if invalid."""
    payload = _decode_bearer(authorization)
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token subject")


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401/403 if invalid."""
    payload = _decode_bearer(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload


CurrentUser = Annotated[int, Depends(get_current_user_id)]
