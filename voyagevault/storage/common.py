"""Storage contract shared by the memory and postgres backends.

Both backends keep two tables' worth of state: accounts keyed by a unique,
case-sensitive email, and at most one verification code per email.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from voyagevault.storage.models import Account, SignupMethod, VerificationCode


class AccountStore(Protocol):
    def create_account(
        self,
        first_name: str,
        last_name: str,
        email: str,
        *,
        verified: bool = False,
        signup_method: SignupMethod = SignupMethod.EMAIL,
        profile_picture_url: Optional[str] = None,
    ) -> Account: ...

    def get_account(self, account_id: str) -> Optional[Account]: ...

    def get_account_by_email(self, email: str) -> Optional[Account]: ...

    def mark_verified(self, account_id: str) -> Optional[Account]: ...

    def link_google_account(
        self,
        email: str,
        first_name: str,
        last_name: str,
        profile_picture_url: Optional[str] = None,
    ) -> Tuple[Account, Optional[Account]]:
        """Upsert a verified google account.

        Returns the stored account and a snapshot of the row as it was before
        the write, or None when the account was created.
        """
        ...

    def upsert_code(
        self, email: str, code: str, expires_at: datetime
    ) -> VerificationCode: ...

    def get_code(self, email: str) -> Optional[VerificationCode]: ...

    def consume_code(self, email: str, code: str, now: datetime) -> bool:
        """Delete the code row iff it matches and is still live."""
        ...

    def delete_stale_unverified(self, cutoff: datetime) -> List[str]:
        """Delete unverified accounts created before ``cutoff`` and their codes.

        Returns the emails of the deleted accounts.
        """
        ...

    def verify_connection(self) -> None: ...


def normalize_name(value: Optional[str]) -> str:
    return (value or "").strip()


__all__ = ["AccountStore", "normalize_name"]
