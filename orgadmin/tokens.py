"""Signed, expiring decision tokens embedded in approval emails."""

from __future__ import annotations

import base64
import hashlib
import json
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Tuple
from urllib.parse import urlencode

from cryptography.fernet import Fernet, InvalidToken

from .errors import ForbiddenError

APPROVE = "approve"
DECLINE = "decline"
DECISION_ACTIONS = (APPROVE, DECLINE)


@dataclass(frozen=True)
class DecisionClaims:
    user_id: str
    action: str
    issuance_id: str


def _build_cipher(secret: str) -> Fernet:
    if not secret:
        raise ValueError("Decision secret must not be empty")
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def generate_secret() -> str:
    return secrets.token_urlsafe(48)


class DecisionSigner:
    """Issue and verify tokens bound to one user, one action and one issuance."""

    def __init__(self, secret: str, *, ttl: timedelta = timedelta(days=7)) -> None:
        self._cipher = _build_cipher(secret)
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: str, action: str, issuance_id: str, *, issued_at: Optional[int] = None) -> str:
        if action not in DECISION_ACTIONS:
            raise ValueError(f"Unsupported decision action {action!r}")
        payload = json.dumps({"uid": user_id, "act": action, "iid": issuance_id}, separators=(",", ":"))
        data = payload.encode("utf-8")
        if issued_at is not None:
            return self._cipher.encrypt_at_time(data, issued_at).decode("ascii")
        return self._cipher.encrypt(data).decode("ascii")

    def issue_pair(self, user_id: str) -> Tuple[str, str, str]:
        """Return ``(issuance_id, approve_token, decline_token)`` for one notification."""

        issuance_id = secrets.token_urlsafe(16)
        return (
            issuance_id,
            self.issue(user_id, APPROVE, issuance_id),
            self.issue(user_id, DECLINE, issuance_id),
        )

    def verify(self, token: Optional[str], *, user_id: str, action: str) -> DecisionClaims:
        if not token:
            raise ForbiddenError("Missing decision token")
        try:
            raw = self._cipher.decrypt(token.encode("ascii"), ttl=int(self._ttl.total_seconds()))
        except (InvalidToken, UnicodeEncodeError):
            raise ForbiddenError("Invalid or expired decision token") from None

        try:
            data = json.loads(raw.decode("utf-8"))
            claims = DecisionClaims(
                user_id=str(data["uid"]),
                action=str(data["act"]),
                issuance_id=str(data["iid"]),
            )
        except (ValueError, KeyError, TypeError):
            raise ForbiddenError("Invalid decision token") from None

        if claims.user_id != user_id or claims.action != action:
            raise ForbiddenError("Decision token does not match this request")
        return claims


def build_link(base_url: str, action: str, user_id: str, token: str) -> str:
    query = urlencode({"action": action, "user_id": user_id, "token": token})
    return f"{base_url.rstrip('/')}/registration-approval?{query}"


__all__ = [
    "APPROVE",
    "DECISION_ACTIONS",
    "DECLINE",
    "DecisionClaims",
    "DecisionSigner",
    "build_link",
    "generate_secret",
]
