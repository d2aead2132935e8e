from __future__ import annotations

import html
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from orgadmin.config import Settings
from orgadmin.database import Database
from orgadmin.errors import UpstreamError
from orgadmin.mailer import EmailMessage
from orgadmin.models import AuthUser, Profile
from orgadmin.service import create_app
from orgadmin.tokens import DecisionSigner

MANAGEMENT_MAILBOX = "board@example.com"
PUBLIC_URL = "https://admin.example.com"


class FakeDirectory:
    """In-memory stand-in for the hosted auth subsystem and profiles table."""

    def __init__(self) -> None:
        self.tokens: Dict[str, AuthUser] = {}
        self.identities: Dict[str, AuthUser] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.profile_delete_failures = 0
        self.fail_identity_delete: set[str] = set()
        self.fail_activate = False

    # helpers used by the tests
    def add_user(
        self,
        user_id: str,
        *,
        token: Optional[str] = None,
        email: Optional[str] = None,
        full_name: str = "Test User",
        role: Optional[str] = "member",
        is_active: Optional[bool] = False,
        with_profile: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
        department: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> AuthUser:
        email = email or f"{user_id}@example.com"
        user = AuthUser(id=user_id, email=email, user_metadata=dict(metadata or {}))
        self.identities[user_id] = user
        if token:
            self.tokens[token] = user
        if with_profile:
            self.profiles[user_id] = {
                "user_id": user_id,
                "full_name": full_name,
                "email": email,
                "role": role,
                "department": department,
                "phone_number": phone_number,
                "is_active": is_active,
                "points": 0,
            }
        return user

    def mutations(self) -> List[tuple]:
        readonly = {"get_user", "get_profile", "list_profile_ids", "list_identity_ids"}
        return [call for call in self.calls if call[0] not in readonly]

    # Directory interface
    def get_user(self, token: str) -> Optional[AuthUser]:
        self.calls.append(("get_user", token))
        return self.tokens.get(token)

    def delete_identity(self, user_id: str) -> bool:
        self.calls.append(("delete_identity", user_id))
        if user_id in self.fail_identity_delete:
            raise UpstreamError(f"Failed to delete auth user {user_id}: boom")
        existed = self.identities.pop(user_id, None) is not None
        self.tokens = {token: user for token, user in self.tokens.items() if user.id != user_id}
        return existed

    def list_identity_ids(self) -> List[str]:
        self.calls.append(("list_identity_ids",))
        return list(self.identities)

    def get_profile(self, user_id: str) -> Optional[Profile]:
        self.calls.append(("get_profile", user_id))
        row = self.profiles.get(user_id)
        return Profile.from_row(row) if row else None

    def insert_profile(self, payload: Dict[str, Any]) -> Profile:
        self.calls.append(("insert_profile", payload["user_id"]))
        row = {"is_active": False, "points": 0, **payload}
        self.profiles[payload["user_id"]] = row
        return Profile.from_row(row)

    def activate_profile(self, user_id: str) -> None:
        self.calls.append(("activate_profile", user_id))
        if self.fail_activate:
            raise UpstreamError(f"Failed to activate profile {user_id}: database offline")
        if user_id in self.profiles:
            self.profiles[user_id]["is_active"] = True

    def delete_profile(self, user_id: str) -> None:
        self.calls.append(("delete_profile", user_id))
        if self.profile_delete_failures:
            self.profile_delete_failures -= 1
            raise UpstreamError(f"Failed to delete profile {user_id}: timeout")
        self.profiles.pop(user_id, None)

    def list_profile_ids(self) -> List[str]:
        self.calls.append(("list_profile_ids",))
        return list(self.profiles)


class FakeMailer:
    def __init__(self) -> None:
        self.sent: List[EmailMessage] = []
        self.fail = False

    def send(self, message: EmailMessage) -> Dict[str, Any]:
        if self.fail:
            raise UpstreamError("Email provider request failed with status 503")
        self.sent.append(message)
        return {"id": f"email-{len(self.sent)}"}

    def sent_to(self, address: str) -> List[EmailMessage]:
        return [message for message in self.sent if message.to == address]


def extract_links(message: EmailMessage) -> Dict[str, str]:
    """Map ``action`` -> relative URL for the decision links in ``message``."""

    links: Dict[str, str] = {}
    for href in re.findall(r'href="([^"]+)"', message.html):
        url = html.unescape(href)
        parts = urlsplit(url)
        action = parse_qs(parts.query)["action"][0]
        links[action] = f"{parts.path}?{parts.query}"
    return links


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        supabase_url="https://project.supabase.co",
        service_role_key="service-role-key",
        resend_api_key="re_test_key",
        management_mailbox=MANAGEMENT_MAILBOX,
        decision_secret="tests-decision-secret",
        public_base_url=PUBLIC_URL,
        database_path=tmp_path / "orgadmin.sqlite3",
    )


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database(settings.database_path)
    db.initialize()
    return db


@pytest.fixture()
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture()
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture()
def signer(settings: Settings) -> DecisionSigner:
    return DecisionSigner(settings.decision_secret)


@pytest.fixture()
def app(settings, directory, mailer, database, signer):
    return create_app(settings=settings, directory=directory, mailer=mailer, database=database, signer=signer)


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
