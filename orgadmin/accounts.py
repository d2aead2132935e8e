"""Account removal spanning the auth identity and the profile row."""

from __future__ import annotations

import logging
from typing import Protocol, Tuple

from .database import Database
from .errors import UpstreamError

logger = logging.getLogger("orgadmin.accounts")


class AccountStore(Protocol):
    def delete_identity(self, user_id: str) -> bool: ...

    def delete_profile(self, user_id: str) -> None: ...


class AccountRemover:
    """Delete identity then profile, compensating when the second step fails.

    The two stores cannot be updated atomically. The identity goes first so a
    removed user can no longer sign in; a profile row that refuses to go away
    is retried and then parked in ``pending_cleanups`` for ``retry_pending``.
    """

    def __init__(self, directory: AccountStore, database: Database, *, profile_attempts: int = 2) -> None:
        if profile_attempts < 1:
            raise ValueError("profile_attempts must be at least 1")
        self._directory = directory
        self._database = database
        self._profile_attempts = profile_attempts

    def remove(self, user_id: str) -> None:
        # UpstreamError here means nothing was removed.
        self._directory.delete_identity(user_id)

        last_error: UpstreamError | None = None
        for attempt in range(1, self._profile_attempts + 1):
            try:
                self._directory.delete_profile(user_id)
            except UpstreamError as exc:
                last_error = exc
                logger.warning(
                    "Deleting profile %s failed (attempt %s/%s): %s",
                    user_id,
                    attempt,
                    self._profile_attempts,
                    exc.message,
                )
                continue
            self._database.resolve_pending_cleanup(user_id)
            logger.info("Removed account %s", user_id)
            return

        if last_error is None:  # pragma: no cover - the loop runs at least once
            raise RuntimeError("profile deletion loop did not run")
        self._database.add_pending_cleanup(user_id, last_error.message, self._profile_attempts)
        logger.error("Account %s partially removed; profile row queued for cleanup", user_id)
        raise UpstreamError(
            f"Auth user {user_id} was deleted but its profile could not be removed: {last_error.message}",
            details={"partial": True, "user_id": user_id},
        ) from last_error

    def retry_pending(self) -> Tuple[int, int]:
        """Replay queued profile deletions. Returns ``(resolved, remaining)``."""

        resolved = 0
        remaining = 0
        for cleanup in self._database.list_pending_cleanups():
            try:
                self._directory.delete_profile(cleanup.user_id)
            except UpstreamError as exc:
                self._database.add_pending_cleanup(cleanup.user_id, exc.message, 1)
                remaining += 1
                logger.warning("Cleanup of profile %s failed again: %s", cleanup.user_id, exc.message)
                continue
            self._database.resolve_pending_cleanup(cleanup.user_id)
            resolved += 1
            logger.info("Cleaned up orphaned profile %s", cleanup.user_id)
        return resolved, remaining


__all__ = ["AccountRemover", "AccountStore"]
