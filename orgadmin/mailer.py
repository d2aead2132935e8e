"""Outbound transactional email via the Resend HTTP API."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from .errors import UpstreamError
from .models import PendingApprovalNotification, Profile

logger = logging.getLogger("orgadmin.mailer")

PLACEHOLDER = "-"


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error", "name"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


class Mailer(Protocol):
    def send(self, message: EmailMessage) -> Dict[str, Any]: ...


class ResendMailer:
    """Send :class:`EmailMessage` objects through Resend."""

    def __init__(self, api_key: str, sender: str, *, base_url: str = "https://api.resend.com", timeout: float = 10.0) -> None:
        cleaned = (api_key or "").strip()
        if not cleaned:
            raise ValueError("Resend API key must not be empty")
        self._api_key = cleaned
        self._sender = sender
        self._endpoint = base_url.rstrip("/") + "/emails"
        self._timeout = timeout

    def send(self, message: EmailMessage) -> Dict[str, Any]:
        payload = {
            "from": self._sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = httpx.post(self._endpoint, json=payload, headers=headers, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Failed to contact email provider: {exc}") from exc

        try:
            parsed: object = response.json()
        except ValueError:
            parsed = response.text

        if response.status_code >= 400:
            default = f"Email provider request failed with status {response.status_code}"
            raise UpstreamError(_extract_error_message(parsed, default))

        if not isinstance(parsed, dict):
            return {"response": parsed}
        return parsed


def deliver_best_effort(mailer: Mailer, message: EmailMessage, *, context: str) -> Optional[Dict[str, Any]]:
    """Send ``message`` but never let a delivery failure escape.

    Used for notices sent after the primary state change already happened.
    """
    try:
        return mailer.send(message)
    except UpstreamError as exc:
        logger.warning("Failed to send %s email to %s: %s", context, message.to, exc.message)
        return None


def _field(value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        return PLACEHOLDER
    return html.escape(str(value))


def render_pending_approval(
    notification: PendingApprovalNotification,
    *,
    to: str,
    approve_link: str,
    decline_link: str,
) -> EmailMessage:
    body = f"""
<h2>New User Registration</h2>
<p><strong>Name:</strong> {_field(notification.full_name)}</p>
<p><strong>Email:</strong> {_field(notification.email)}</p>
<p><strong>Phone:</strong> {_field(notification.phone_number)}</p>
<p><strong>Role:</strong> {_field(notification.role)}</p>
<p><strong>Department:</strong> {_field(notification.department)}</p>
<p>
  <a href="{html.escape(approve_link)}" style="padding:10px 16px;background:#16a34a;color:#fff;text-decoration:none;border-radius:6px;margin-right:8px">Approve</a>
  <a href="{html.escape(decline_link)}" style="padding:10px 16px;background:#dc2626;color:#fff;text-decoration:none;border-radius:6px;">Decline</a>
</p>
"""
    return EmailMessage(to=to, subject="New TEDx registration pending approval", html=body)


def render_approved(profile: Profile) -> EmailMessage:
    body = (
        f"<p>Hello {html.escape(profile.full_name)},</p>"
        "<p>Your account has been approved. You can now access the platform.</p>"
    )
    return EmailMessage(to=profile.email, subject="Your TEDx account is approved", html=body)


def render_declined(profile: Profile) -> EmailMessage:
    body = (
        f"<p>Hello {html.escape(profile.full_name)},</p>"
        "<p>We are sorry to inform you that your registration has been declined.</p>"
    )
    return EmailMessage(to=profile.email, subject="Your TEDx registration was declined", html=body)


__all__ = [
    "EmailMessage",
    "Mailer",
    "PLACEHOLDER",
    "ResendMailer",
    "deliver_best_effort",
    "render_approved",
    "render_declined",
    "render_pending_approval",
]
