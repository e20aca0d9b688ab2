from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SignupMethod(str, Enum):
    EMAIL = "email"
    GOOGLE = "google"


@dataclass
class Account:
    id: str
    first_name: str
    last_name: str
    email: str
    verified: bool = False
    signup_method: SignupMethod = SignupMethod.EMAIL
    profile_picture_url: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(
        cls,
        first_name: str,
        last_name: str,
        email: str,
        *,
        verified: bool = False,
        signup_method: SignupMethod = SignupMethod.EMAIL,
        profile_picture_url: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "Account":
        return cls(
            id=str(uuid.uuid4()),
            first_name=first_name,
            last_name=last_name,
            email=email,
            verified=verified,
            signup_method=signup_method,
            profile_picture_url=profile_picture_url,
            created_at=created_at or utcnow(),
        )

    def summary(self) -> "AccountSummary":
        return AccountSummary(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            profile_picture_url=self.profile_picture_url,
        )


@dataclass(frozen=True)
class AccountSummary:
    """Client-visible projection of an account."""

    id: str
    first_name: str
    last_name: str
    email: str
    profile_picture_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "profilePicture": self.profile_picture_url,
        }


@dataclass
class VerificationCode:
    email: str
    code: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at
