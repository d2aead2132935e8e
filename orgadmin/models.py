"""Domain models for profiles, identities and the ephemeral request records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class Role(str, Enum):
    MANAGEMENT_BOARD = "management_board"
    HIGH_BOARD = "high_board"
    MEMBER = "member"

    @classmethod
    def parse(cls, value: object) -> Optional["Role"]:
        if value is None:
            return None
        try:
            return cls(str(value))
        except ValueError:
            return None


class Department(str, Enum):
    IT = "IT"
    ORGANIZING = "Organizing"
    GRAPHIC_DESIGN = "Graphic Design"
    PUBLIC_RELATIONS = "Public Relations"
    TREASURY = "Treasury"
    MARKETING = "Marketing & Social Media"
    CONTENT_WRITING = "Content Writing"
    HR = "HR"

    @classmethod
    def parse(cls, value: object) -> Optional["Department"]:
        if value is None:
            return None
        try:
            return cls(str(value).strip())
        except ValueError:
            return None


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class Profile:
    """Application-level user record, keyed by the auth identity's id."""

    user_id: str
    full_name: str
    email: str
    role: Optional[Role]
    department: Optional[str] = None
    phone_number: Optional[str] = None
    is_active: Optional[bool] = None
    points: int = 0

    @property
    def is_pending(self) -> bool:
        return self.is_active is not True

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Profile":
        """Build a :class:`Profile` from a ``profiles`` table row."""

        points = row.get("points")
        is_active = row.get("is_active")
        return Profile(
            user_id=str(row["user_id"]),
            full_name=str(row.get("full_name") or ""),
            email=str(row.get("email") or ""),
            role=Role.parse(row.get("role")),
            department=_optional_str(row.get("department")),
            phone_number=_optional_str(row.get("phone_number")),
            is_active=bool(is_active) if is_active is not None else None,
            points=int(points) if points is not None else 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role.value if self.role else None,
            "department": self.department,
            "phone_number": self.phone_number,
            "is_active": self.is_active,
            "points": self.points,
        }


@dataclass(frozen=True)
class AuthUser:
    """Identity as reported by the authentication subsystem."""

    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PendingApprovalNotification:
    """Applicant details for a single management notification email."""

    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    phone_number: Optional[str] = None

    @staticmethod
    def from_profile(profile: Profile) -> "PendingApprovalNotification":
        return PendingApprovalNotification(
            user_id=profile.user_id,
            full_name=profile.full_name or None,
            email=profile.email or None,
            role=profile.role.value if profile.role else None,
            department=profile.department,
            phone_number=profile.phone_number,
        )


@dataclass(frozen=True)
class DeletionRequest:
    action: Optional[str]
    caller_id: str
    target_user_id: Optional[str] = None

    @property
    def target(self) -> str:
        return self.target_user_id or self.caller_id


@dataclass(frozen=True)
class Issuance:
    """A pair of decision links sent to management for one applicant."""

    issuance_id: str
    user_id: str
    created_at: datetime
    consumed_at: Optional[datetime] = None
    outcome: Optional[str] = None

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None


@dataclass(frozen=True)
class PendingCleanup:
    """A profile row left behind after its auth identity was removed."""

    user_id: str
    reason: str
    attempts: int
    created_at: datetime
    updated_at: datetime


__all__ = [
    "AuthUser",
    "DeletionRequest",
    "Department",
    "Issuance",
    "PendingCleanup",
    "PendingApprovalNotification",
    "Profile",
    "Role",
]
