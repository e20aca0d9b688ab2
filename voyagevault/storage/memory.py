from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from voyagevault.logging import get_logger
from voyagevault.storage.errors import ConstraintViolation
from voyagevault.storage.models import (
    Account,
    SignupMethod,
    VerificationCode,
    utcnow,
)


class MemoryStore:
    """In-process backing store used in tests and local development."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.accounts: Dict[str, Account] = {}
        self.codes: Dict[str, VerificationCode] = {}
        # RLock for all data operations; every public method is atomic
        self._data_lock = threading.RLock()

    def _find_by_email(self, email: str) -> Optional[Account]:
        return next((a for a in self.accounts.values() if a.email == email), None)

    # accounts
    def create_account(
        self,
        first_name: str,
        last_name: str,
        email: str,
        *,
        verified: bool = False,
        signup_method: SignupMethod = SignupMethod.EMAIL,
        profile_picture_url: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Account:
        with self._data_lock:
            if self._find_by_email(email):
                raise ConstraintViolation("email already exists", {"field": "email"})
            account = Account.new(
                first_name,
                last_name,
                email,
                verified=verified,
                signup_method=signup_method,
                profile_picture_url=profile_picture_url,
                created_at=created_at,
            )
            self.accounts[account.id] = account
            return copy.copy(account)

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._data_lock:
            account = self.accounts.get(account_id)
            return copy.copy(account) if account else None

    def get_account_by_email(self, email: str) -> Optional[Account]:
        with self._data_lock:
            account = self._find_by_email(email)
            return copy.copy(account) if account else None

    def mark_verified(self, account_id: str) -> Optional[Account]:
        with self._data_lock:
            account = self.accounts.get(account_id)
            if not account:
                return None
            account.verified = True
            return copy.copy(account)

    def link_google_account(
        self,
        email: str,
        first_name: str,
        last_name: str,
        profile_picture_url: Optional[str] = None,
    ) -> Tuple[Account, Optional[Account]]:
        with self._data_lock:
            existing = self._find_by_email(email)
            if existing is None:
                account = self.create_account(
                    first_name,
                    last_name,
                    email,
                    verified=True,
                    signup_method=SignupMethod.GOOGLE,
                    profile_picture_url=profile_picture_url,
                )
                return account, None
            previous = copy.copy(existing)
            existing.verified = True
            existing.signup_method = SignupMethod.GOOGLE
            if not existing.profile_picture_url and profile_picture_url:
                existing.profile_picture_url = profile_picture_url
            return copy.copy(existing), previous

    # verification codes
    def upsert_code(
        self, email: str, code: str, expires_at: datetime
    ) -> VerificationCode:
        with self._data_lock:
            record = VerificationCode(
                email=email, code=code, expires_at=expires_at, created_at=utcnow()
            )
            self.codes[email] = record
            return copy.copy(record)

    def get_code(self, email: str) -> Optional[VerificationCode]:
        with self._data_lock:
            record = self.codes.get(email)
            return copy.copy(record) if record else None

    def consume_code(self, email: str, code: str, now: datetime) -> bool:
        with self._data_lock:
            record = self.codes.get(email)
            if not record or record.code != code or not record.is_live(now):
                return False
            self.codes.pop(email, None)
            return True

    # maintenance
    def delete_stale_unverified(self, cutoff: datetime) -> List[str]:
        with self._data_lock:
            stale = [
                account
                for account in self.accounts.values()
                if not account.verified and account.created_at < cutoff
            ]
            for account in stale:
                self.accounts.pop(account.id, None)
                self.codes.pop(account.email, None)
            return [account.email for account in stale]

    def verify_connection(self) -> None:
        return None
