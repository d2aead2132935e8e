"""Supabase-backed access to auth identities and the ``profiles`` table."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from .errors import UpstreamError
from .models import AuthUser, Profile

logger = logging.getLogger("orgadmin.directory")

PROFILES_TABLE = "profiles"
_LIST_PAGE_SIZE = 1000


def _status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status", None)
    if status is None:
        status = getattr(exc, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _message_of(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message.strip():
        return message.strip()
    return str(exc) or exc.__class__.__name__


def _to_auth_user(user: Any) -> AuthUser:
    metadata = getattr(user, "user_metadata", None) or {}
    return AuthUser(
        id=str(user.id),
        email=getattr(user, "email", None),
        user_metadata=dict(metadata),
    )


class Directory(Protocol):
    """Narrow interface the handlers need from the auth subsystem and profiles table."""

    def get_user(self, token: str) -> Optional[AuthUser]: ...

    def delete_identity(self, user_id: str) -> bool: ...

    def list_identity_ids(self) -> List[str]: ...

    def get_profile(self, user_id: str) -> Optional[Profile]: ...

    def insert_profile(self, payload: Dict[str, Any]) -> Profile: ...

    def activate_profile(self, user_id: str) -> None: ...

    def delete_profile(self, user_id: str) -> None: ...

    def list_profile_ids(self) -> List[str]: ...


class SupabaseDirectory:
    """Admin-privileged view of identities and profiles.

    Every call goes straight to the hosted database; nothing is cached.
    """

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, supabase_url: str, service_role_key: str) -> "SupabaseDirectory":
        return cls(create_client(supabase_url, service_role_key))

    # ------------------------------------------------------------------
    # Auth identities
    # ------------------------------------------------------------------
    def get_user(self, token: str) -> Optional[AuthUser]:
        """Return the identity behind ``token`` or ``None`` when it is rejected."""

        try:
            response = self._client.auth.get_user(token)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Auth subsystem unavailable: {exc}") from exc
        except Exception as exc:
            status = _status_of(exc)
            if status is None:
                raise
            if not 400 <= status < 500:
                raise UpstreamError(f"Auth subsystem unavailable: {_message_of(exc)}") from exc
            logger.info("Auth subsystem rejected bearer token: %s", _message_of(exc))
            return None

        user = getattr(response, "user", None) if response is not None else None
        if user is None:
            return None
        return _to_auth_user(user)

    def delete_identity(self, user_id: str) -> bool:
        """Delete the auth identity; ``False`` when it was already gone."""

        try:
            self._client.auth.admin.delete_user(user_id)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Failed to delete auth user {user_id}: {exc}") from exc
        except Exception as exc:
            status = _status_of(exc)
            if status is None:
                raise
            if status == 404:
                logger.info("Auth user %s was already removed", user_id)
                return False
            raise UpstreamError(f"Failed to delete auth user {user_id}: {_message_of(exc)}") from exc
        return True

    def list_identity_ids(self) -> List[str]:
        ids: List[str] = []
        page = 1
        while True:
            try:
                users = self._client.auth.admin.list_users(page=page, per_page=_LIST_PAGE_SIZE)
            except httpx.HTTPError as exc:
                raise UpstreamError(f"Failed to list auth users: {exc}") from exc
            except Exception as exc:
                if _status_of(exc) is None:
                    raise
                raise UpstreamError(f"Failed to list auth users: {_message_of(exc)}") from exc

            batch = list(users or [])
            ids.extend(str(user.id) for user in batch)
            if len(batch) < _LIST_PAGE_SIZE:
                return ids
            page += 1

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------
    def _execute(self, build: Callable[[], Any], description: str) -> List[Dict[str, Any]]:
        try:
            response = build().execute()
        except (APIError, httpx.HTTPError) as exc:
            raise UpstreamError(f"Failed to {description}: {_message_of(exc)}") from exc
        if response is None:
            return []
        return list(response.data or [])

    def get_profile(self, user_id: str) -> Optional[Profile]:
        rows = self._execute(
            lambda: self._client.table(PROFILES_TABLE).select("*").eq("user_id", user_id).limit(1),
            f"load profile {user_id}",
        )
        return Profile.from_row(rows[0]) if rows else None

    def insert_profile(self, payload: Dict[str, Any]) -> Profile:
        rows = self._execute(
            lambda: self._client.table(PROFILES_TABLE).insert(payload),
            f"create profile {payload.get('user_id')}",
        )
        return Profile.from_row(rows[0] if rows else payload)

    def activate_profile(self, user_id: str) -> None:
        self._execute(
            lambda: self._client.table(PROFILES_TABLE).update({"is_active": True}).eq("user_id", user_id),
            f"activate profile {user_id}",
        )

    def delete_profile(self, user_id: str) -> None:
        self._execute(
            lambda: self._client.table(PROFILES_TABLE).delete().eq("user_id", user_id),
            f"delete profile {user_id}",
        )

    def list_profile_ids(self) -> List[str]:
        ids: List[str] = []
        start = 0
        while True:
            rows = self._execute(
                lambda: self._client.table(PROFILES_TABLE)
                .select("user_id")
                .order("user_id")
                .range(start, start + _LIST_PAGE_SIZE - 1),
                "list profiles",
            )
            ids.extend(str(row["user_id"]) for row in rows if row.get("user_id"))
            if len(rows) < _LIST_PAGE_SIZE:
                return ids
            start += _LIST_PAGE_SIZE


__all__ = ["Directory", "PROFILES_TABLE", "SupabaseDirectory"]
