from __future__ import annotations

import asyncio
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from voyagevault.logging import get_logger
from voyagevault.service.email import CodeMailer
from voyagevault.service.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    UpstreamFailureError,
    ValidationError,
)
from voyagevault.service.tokens import TokenPair, TokenService
from voyagevault.storage.common import AccountStore, normalize_name
from voyagevault.storage.errors import ConstraintViolation
from voyagevault.storage.models import Account

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
CODE_PATTERN = re.compile(r"[0-9]{6}")
CODE_DIGITS = 6


def normalize_email(value: Optional[str]) -> str:
    """Trim surrounding whitespace; case is preserved because emails are exact keys."""
    email = (value or "").strip()
    if not email or len(email) > 254 or not EMAIL_PATTERN.match(email):
        raise ValidationError("a valid email is required", detail={"field": "email"})
    return email


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"


@dataclass(frozen=True)
class CodeDispatch:
    email: str
    expires_at: datetime


@dataclass(frozen=True)
class VerifiedSession:
    account: Account
    tokens: TokenPair


class CodeIssuer:
    """Issues, dispatches and redeems six-digit one-time codes.

    Store writes commit before the code is handed to the mailer; a failed
    dispatch leaves the account and code rows in place so the caller can
    resend.
    """

    def __init__(
        self,
        store: AccountStore,
        mailer: CodeMailer,
        tokens: TokenService,
        *,
        code_ttl: timedelta = timedelta(minutes=10),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.tokens = tokens
        self.code_ttl = code_ttl
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock() if self._clock else datetime.now(timezone.utc)

    async def issue_signup_code(
        self, first_name: str, last_name: str, email: str
    ) -> CodeDispatch:
        first_name = normalize_name(first_name)
        last_name = normalize_name(last_name)
        if not first_name or not last_name:
            raise ValidationError(
                "first name and last name are required",
                detail={"fields": ["firstName", "lastName"]},
            )
        email = normalize_email(email)

        existing = self.store.get_account_by_email(email)
        if existing is not None and existing.verified:
            raise ConflictError("already registered")
        if existing is None:
            try:
                self.store.create_account(first_name, last_name, email)
                logger.info("account_created", email=email, signup_method="email")
            except ConstraintViolation:
                # lost a race with a concurrent signup for the same email
                existing = self.store.get_account_by_email(email)
                if existing is not None and existing.verified:
                    raise ConflictError("already registered")
        return await self._issue_and_dispatch(email, purpose="signup")

    async def resend_code(self, email: str) -> CodeDispatch:
        email = normalize_email(email)
        account = self.store.get_account_by_email(email)
        if account is None:
            raise NotFoundError("account not found")
        if account.verified:
            raise ConflictError("account already verified")
        return await self._issue_and_dispatch(email, purpose="resend")

    async def verify_code(self, email: str, code: str) -> VerifiedSession:
        account = self._redeem(email, code)
        verified = self.store.mark_verified(account.id)
        if verified is None:
            raise NotFoundError("account not found")
        logger.info("account_verified", user_id=verified.id)
        return VerifiedSession(
            account=verified, tokens=self.tokens.issue_token_pair(verified.id)
        )

    async def initiate_sign_in(self, email: str) -> CodeDispatch:
        email = normalize_email(email)
        account = self.store.get_account_by_email(email)
        if account is None:
            raise NotFoundError("account not found")
        if not account.verified:
            raise UnauthorizedError("must complete signup")
        return await self._issue_and_dispatch(email, purpose="signin")

    async def verify_sign_in_code(self, email: str, code: str) -> VerifiedSession:
        email = normalize_email(email)
        # checked before redeeming so a pending signup code is left for verify_code
        pending = self.store.get_account_by_email(email)
        if pending is not None and not pending.verified:
            raise UnauthorizedError("must complete signup")
        account = self._redeem(email, code)
        logger.info("signin_completed", user_id=account.id)
        return VerifiedSession(
            account=account, tokens=self.tokens.issue_token_pair(account.id)
        )

    def _redeem(self, email: str, code: str) -> Account:
        email = normalize_email(email)
        code = (code or "").strip()
        if not CODE_PATTERN.fullmatch(code) or not self.store.consume_code(
            email, code, self._now()
        ):
            logger.warning("code_rejected", email=email)
            raise UnauthorizedError("invalid or expired code")
        account = self.store.get_account_by_email(email)
        if account is None:
            raise NotFoundError("account not found")
        return account

    async def _issue_and_dispatch(self, email: str, *, purpose: str) -> CodeDispatch:
        code = generate_code()
        expires_at = self._now() + self.code_ttl
        self.store.upsert_code(email, code, expires_at)
        logger.info("code_issued", email=email, purpose=purpose)

        sent = await asyncio.to_thread(self.mailer.send_verification_code, email, code)
        if not sent:
            logger.error("code_dispatch_failed", email=email, purpose=purpose)
            raise UpstreamFailureError("failed to send verification code")
        return CodeDispatch(email=email, expires_at=expires_at)
