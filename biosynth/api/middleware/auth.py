"""Bearer-key authentication for the automation admin API"""

from __future__ import annotations

import os
import secrets

from fastapi import Header, HTTPException, Request, status

from biosynth.observability.logging import get_logger

logger = get_logger(__name__)


class APIKeyAuth:
    """
    Single shared admin key checked against "Authorization: Bearer {key}".

    The key comes from BIOSYNTH_ADMIN_API_KEY (ADMIN_API_KEY as fallback).
    With no key configured every request passes, which is only meant for
    local development.
    """

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("BIOSYNTH_ADMIN_API_KEY", os.getenv("ADMIN_API_KEY"))
        if not self.api_key:
            logger.warning("BIOSYNTH_ADMIN_API_KEY not set - admin endpoints are unprotected!")

    def verify_api_key(self, authorization: str | None) -> bool:
        if not self.api_key:
            return True

        if not authorization:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing authorization header",
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            scheme, token = authorization.split()
            if scheme.lower() != "bearer":
                raise ValueError("Invalid authentication scheme")
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authorization header format. Expected: Bearer {api_key}",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e

        # Timing-safe comparison
        if not secrets.compare_digest(token, self.api_key):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid API key",
            )

        return True


def require_admin_auth(request: Request, authorization: str | None = Header(None)) -> bool:
    """
    Dependency for admin routes. Uses the APIKeyAuth stored on app.state.

    Usage:
        router = APIRouter(dependencies=[Depends(require_admin_auth)])
    """
    auth = getattr(request.app.state, "admin_auth", None)
    if auth is None:
        auth = APIKeyAuth()
        request.app.state.admin_auth = auth
    return auth.verify_api_key(authorization)
