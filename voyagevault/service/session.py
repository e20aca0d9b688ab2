from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from voyagevault.logging import get_logger
from voyagevault.service.errors import UnauthenticatedError
from voyagevault.service.tokens import (
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    TokenService,
)
from voyagevault.storage.common import AccountStore
from voyagevault.storage.models import Account

logger = get_logger(__name__)


@dataclass(frozen=True)
class GuardResult:
    account: Account
    renewed_access_token: Optional[str] = None


class SessionGuard:
    """Resolves request credentials to an account.

    Stateless across calls. An expired access token is renewed from a valid
    refresh token; the renewed token is handed back so the HTTP layer can set
    the cookie.
    """

    def __init__(self, store: AccountStore, tokens: TokenService) -> None:
        self.store = store
        self.tokens = tokens

    async def authenticate(
        self, access_token: Optional[str], refresh_token: Optional[str] = None
    ) -> GuardResult:
        if not access_token:
            raise UnauthenticatedError("access token missing")

        renewed: Optional[str] = None
        try:
            user_id = self.tokens.verify_access(access_token)
        except TokenExpiredError:
            if not refresh_token:
                raise UnauthenticatedError("session expired")
            try:
                user_id = self.tokens.verify_refresh(refresh_token)
                renewed = self.tokens.renew_access(refresh_token)
            except TokenError as exc:
                logger.info("session_refresh_rejected", reason=str(exc))
                raise UnauthenticatedError("session expired")
        except TokenInvalidError as exc:
            logger.info("access_token_rejected", reason=str(exc))
            raise UnauthenticatedError("invalid access token")

        account = self.store.get_account(user_id)
        if account is None:
            raise UnauthenticatedError("account not found")
        return GuardResult(account=account, renewed_access_token=renewed)

    def refresh(self, refresh_token: Optional[str]) -> str:
        """Mint a new access token from the refresh cookie."""
        if not refresh_token:
            raise UnauthenticatedError("refresh token missing")
        try:
            return self.tokens.renew_access(refresh_token)
        except TokenExpiredError:
            raise UnauthenticatedError("refresh token expired")
        except TokenInvalidError as exc:
            logger.info("refresh_token_rejected", reason=str(exc))
            raise UnauthenticatedError("invalid refresh token")
