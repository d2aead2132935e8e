"""Bearer authentication against the hosted auth subsystem."""
from __future__ import annotations

import anyio
from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .directory import Directory
from .errors import AuthError
from .models import AuthUser


class BearerAuth:
    """Resolve the caller's identity from ``Authorization: Bearer <token>``."""

    def __init__(self, directory: Directory) -> None:
        self._directory = directory
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> AuthUser:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise AuthError("Unauthorized")

        token = credentials.credentials.strip()
        if not token:
            raise AuthError("Unauthorized")

        user = await anyio.to_thread.run_sync(self._directory.get_user, token)
        if user is None:
            raise AuthError("Unauthorized")
        return user


__all__ = ["BearerAuth"]
