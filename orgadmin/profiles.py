"""First sign-in bootstrap: make sure a profile exists and ask for approval once."""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

from fastapi import APIRouter, Depends

from .database import Database
from .directory import Directory
from .errors import UpstreamError
from .models import AuthUser, Department, PendingApprovalNotification, Profile, Role
from .registration import RegistrationApprovalService
from .security import BearerAuth

logger = logging.getLogger("orgadmin.profiles")


def _default_full_name(user: AuthUser) -> str:
    name = user.user_metadata.get("full_name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    if user.email and "@" in user.email:
        return user.email.split("@", 1)[0]
    return "User"


def profile_payload_for(user: AuthUser) -> Dict[str, Any]:
    """Row inserted for an identity that has no profile yet.

    Role is always ``member``; whatever role the applicant asked for at sign-up
    is not trusted here. Departments outside the known list are dropped.
    """
    metadata = user.user_metadata
    department = Department.parse(metadata.get("department"))
    return {
        "user_id": user.id,
        "email": user.email or "",
        "full_name": _default_full_name(user),
        "role": Role.MEMBER.value,
        "department": department.value if department else None,
        "phone_number": metadata.get("phone_number") or None,
    }


class ProfileBootstrapper:
    def __init__(self, *, directory: Directory, database: Database, registration: RegistrationApprovalService) -> None:
        self._directory = directory
        self._database = database
        self._registration = registration

    def ensure_profile(self, user: AuthUser) -> Tuple[Profile, bool]:
        profile = self._directory.get_profile(user.id)
        if profile is not None:
            return profile, False
        profile = self._directory.insert_profile(profile_payload_for(user))
        logger.info("Created missing profile for user %s", user.id)
        return profile, True

    def bootstrap(self, user: AuthUser) -> Dict[str, Any]:
        profile, created = self.ensure_profile(user)

        approval_requested = False
        if profile.is_pending and not self._database.has_issuance_for(user.id):
            try:
                self._registration.notify(PendingApprovalNotification.from_profile(profile))
            except UpstreamError as exc:
                logger.warning("Could not request approval for user %s: %s", user.id, exc.message)
            else:
                approval_requested = True

        return {
            "profile": profile.to_dict(),
            "created": created,
            "approval_requested": approval_requested,
        }


def create_router(bootstrapper: ProfileBootstrapper, auth: BearerAuth) -> APIRouter:
    router = APIRouter()

    @router.post("/profile/bootstrap")
    def bootstrap(caller: AuthUser = Depends(auth)) -> Dict[str, Any]:
        return bootstrapper.bootstrap(caller)

    return router


__all__ = ["ProfileBootstrapper", "create_router", "profile_payload_for"]
