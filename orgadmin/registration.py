"""Registration approval: notify management and apply their decision."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Response, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .accounts import AccountRemover
from .database import Database
from .directory import Directory
from .errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, ServiceError
from .mailer import EmailMessage, Mailer, deliver_best_effort, render_approved, render_declined, render_pending_approval
from .models import PendingApprovalNotification, Profile
from .tokens import APPROVE, DECISION_ACTIONS, DECLINE, DecisionSigner, build_link

logger = logging.getLogger("orgadmin.registration")

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

APPROVED_MESSAGE = "User approved successfully."
DECLINED_MESSAGE = "User declined and removed."


class RegistrationNotice(BaseModel):
    """Body of the management notification request.

    Only ``user_id`` is needed to sign the decision links; everything else is
    rendered as-is or as a placeholder.
    """

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., min_length=1, max_length=255)
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator("user_id")
    @classmethod
    def _strip_user_id(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("user_id must not be empty")
        return stripped

    def to_notification(self) -> PendingApprovalNotification:
        return PendingApprovalNotification(
            user_id=self.user_id,
            full_name=self.full_name,
            email=self.email,
            role=self.role,
            department=self.department,
            phone_number=self.phone_number,
        )


class RegistrationApprovalService:
    def __init__(
        self,
        *,
        directory: Directory,
        mailer: Mailer,
        database: Database,
        signer: DecisionSigner,
        remover: AccountRemover,
        management_mailbox: str,
        public_base_url: str,
    ) -> None:
        self._directory = directory
        self._mailer = mailer
        self._database = database
        self._signer = signer
        self._remover = remover
        self._management_mailbox = management_mailbox
        self._public_base_url = public_base_url.rstrip("/")

    def notify(self, notification: PendingApprovalNotification) -> Dict[str, Any]:
        """Email management one approve/decline pair for ``notification``."""

        issuance_id, approve_token, decline_token = self._signer.issue_pair(notification.user_id)
        message = render_pending_approval(
            notification,
            to=self._management_mailbox,
            approve_link=build_link(self._public_base_url, APPROVE, notification.user_id, approve_token),
            decline_link=build_link(self._public_base_url, DECLINE, notification.user_id, decline_token),
        )

        self._database.record_issuance(issuance_id, notification.user_id)
        try:
            response = self._mailer.send(message)
        except ServiceError:
            self._database.discard_issuance(issuance_id)
            raise

        logger.info("Requested management approval for user %s", notification.user_id)
        return response

    def decide(self, action: Optional[str], user_id: Optional[str], token: Optional[str]) -> str:
        """Apply an approve/decline decision and return the confirmation text."""

        if action not in DECISION_ACTIONS or not user_id:
            raise BadRequestError("Invalid request.")

        claims = self._signer.verify(token, user_id=user_id, action=action)
        issuance = self._database.get_issuance(claims.issuance_id)
        if issuance is None:
            raise ForbiddenError("Unknown decision link.")
        # A decline that removed the identity but not the profile stays bound
        # to decline; only the decline link may finish it.
        resuming = (
            issuance.consumed
            and action == DECLINE
            and issuance.outcome == DECLINE
            and self._database.has_pending_cleanup(user_id)
        )
        if issuance.consumed and not resuming:
            raise ConflictError("This registration has already been decided.")

        profile = self._directory.get_profile(user_id)
        if profile is None:
            raise NotFoundError("No pending registration exists for this user.")
        if not profile.is_pending:
            raise ConflictError("This account is already active.")

        if not resuming and not self._database.consume_issuance(claims.issuance_id, action):
            raise ConflictError("This registration has already been decided.")

        try:
            if action == APPROVE:
                self._directory.activate_profile(user_id)
            else:
                self._remover.remove(user_id)
        except ServiceError as exc:
            if not resuming and not exc.details.get("partial"):
                self._database.release_issuance(claims.issuance_id)
            raise

        if action == APPROVE:
            logger.info("Approved registration for user %s", user_id)
            self._notify_applicant(profile, render_approved(profile), "approval")
            return APPROVED_MESSAGE

        logger.info("Declined registration for user %s", user_id)
        self._notify_applicant(profile, render_declined(profile), "decline")
        return DECLINED_MESSAGE

    def _notify_applicant(self, profile: Profile, message: EmailMessage, context: str) -> None:
        if not profile.email:
            logger.warning("Profile %s has no email address; skipping %s notice", profile.user_id, context)
            return
        deliver_best_effort(self._mailer, message, context=context)


def create_router(service: RegistrationApprovalService) -> APIRouter:
    router = APIRouter()

    @router.options("/registration-approval")
    def preflight() -> Response:
        return Response(status_code=status.HTTP_200_OK, headers=PREFLIGHT_HEADERS)

    @router.post("/registration-approval")
    def request_approval(notice: RegistrationNotice) -> Dict[str, Any]:
        res = service.notify(notice.to_notification())
        return {"ok": True, "res": res}

    @router.get("/registration-approval", response_class=PlainTextResponse)
    def apply_decision(
        action: Optional[str] = None,
        user_id: Optional[str] = None,
        token: Optional[str] = None,
    ) -> PlainTextResponse:
        try:
            message = service.decide(action, user_id, token)
        except ServiceError as exc:
            if exc.status_code >= 500:
                logger.error("Decision %s for user %s failed: %s", action, user_id, exc.message)
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        return PlainTextResponse(message, status_code=status.HTTP_200_OK)

    return router


__all__ = [
    "APPROVED_MESSAGE",
    "DECLINED_MESSAGE",
    "RegistrationApprovalService",
    "RegistrationNotice",
    "create_router",
]
