"""Privileged account deletion for signed-in callers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

import anyio
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .accounts import AccountRemover
from .directory import Directory
from .errors import BadRequestError, UpstreamError
from .models import AuthUser, DeletionRequest
from .permissions import AccessPolicy, Permission, Principal
from .security import BearerAuth

logger = logging.getLogger("orgadmin.user_admin")

DELETE_USER = "delete_user"
DELETE_ALL_USERS = "delete_all_users"


class UserAdminService:
    def __init__(self, *, directory: Directory, remover: AccountRemover, policy: AccessPolicy) -> None:
        self._directory = directory
        self._remover = remover
        self._policy = policy

    def principal_for(self, caller: AuthUser) -> Principal:
        return Principal.from_profile(caller.id, self._directory.get_profile(caller.id))

    def handle(self, caller: AuthUser, body: object) -> Dict[str, Any]:
        """Dispatch a ``POST /user-admin`` body on behalf of ``caller``."""

        if not isinstance(body, Mapping):
            raise BadRequestError("Unsupported action")
        target = body.get("user_id")
        if target is not None and not isinstance(target, str):
            raise BadRequestError("user_id must be a string")

        request = DeletionRequest(action=body.get("action"), caller_id=caller.id, target_user_id=target or None)
        principal = self.principal_for(caller)

        if request.action == DELETE_USER:
            self.delete_user(principal, request.target)
            return {"ok": True}
        if request.action == DELETE_ALL_USERS:
            deleted = self.delete_all_users(principal)
            return {"ok": True, "deleted": deleted}
        raise BadRequestError("Unsupported action")

    def delete_user(self, principal: Principal, target: str) -> None:
        self._policy.require(principal, Permission.DELETE_USER, target)
        self._remover.remove(target)
        if target == principal.user_id:
            logger.info("User %s deleted their own account", target)
        else:
            logger.info("User %s deleted account %s", principal.user_id, target)

    def delete_all_users(self, principal: Principal) -> int:
        """Remove every account except the caller's and return how many went."""

        self._policy.require(principal, Permission.DELETE_ALL_USERS)

        targets = set(self._directory.list_profile_ids()) | set(self._directory.list_identity_ids())
        targets.discard(principal.user_id)

        deleted = 0
        failed: List[str] = []
        for user_id in sorted(targets):
            try:
                self._remover.remove(user_id)
            except UpstreamError as exc:
                logger.warning("Bulk delete skipped %s: %s", user_id, exc.message)
                failed.append(user_id)
                continue
            deleted += 1

        logger.info("User %s bulk-deleted %s account(s), %s failure(s)", principal.user_id, deleted, len(failed))
        if failed:
            raise UpstreamError(
                f"Failed to delete {len(failed)} of {len(targets)} account(s)",
                details={"deleted": deleted, "failed": failed},
            )
        return deleted

    def capabilities(self, caller: AuthUser) -> Dict[str, Any]:
        principal = self.principal_for(caller)
        return {
            "user_id": principal.user_id,
            "role": principal.role.value if principal.role else None,
            "capabilities": self._policy.capabilities(principal),
        }


def create_router(service: UserAdminService, auth: BearerAuth) -> APIRouter:
    router = APIRouter()

    @router.post("/user-admin")
    async def user_admin(request: Request, caller: AuthUser = Depends(auth)) -> JSONResponse:
        try:
            body: object = await request.json()
        except ValueError:
            body = {}
        result = await anyio.to_thread.run_sync(service.handle, caller, body)
        return JSONResponse(result)

    @router.get("/user-admin/capabilities")
    def capabilities(caller: AuthUser = Depends(auth)) -> Dict[str, Any]:
        return service.capabilities(caller)

    return router


__all__ = ["DELETE_ALL_USERS", "DELETE_USER", "UserAdminService", "create_router"]
