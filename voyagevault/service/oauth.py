from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from voyagevault.logging import get_logger
from voyagevault.service.codes import normalize_email
from voyagevault.service.errors import ServiceError
from voyagevault.service.identity import IdentityProvider
from voyagevault.service.tokens import TokenPair, TokenService
from voyagevault.storage.common import AccountStore, normalize_name
from voyagevault.storage.models import Account, SignupMethod

logger = get_logger(__name__)


@dataclass(frozen=True)
class LinkResult:
    account: Account
    tokens: TokenPair
    created: bool = False


@dataclass(frozen=True)
class CallbackOutcome:
    redirect_url: str
    link: Optional[LinkResult] = None


@dataclass(frozen=True)
class LinkedMethod:
    email: str
    is_google: bool


class OAuthLinker:
    """Links Google identities to accounts keyed by email.

    A Google sign-in always wins: any existing account for the asserted email
    is marked verified and switched to the google signup method.
    """

    def __init__(
        self,
        store: AccountStore,
        provider: IdentityProvider,
        tokens: TokenService,
        *,
        frontend_url: str,
    ) -> None:
        self.store = store
        self.provider = provider
        self.tokens = tokens
        self.frontend_url = frontend_url.rstrip("/")

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        return self.provider.authorization_url(state)

    async def sign_in_with_identity_token(self, id_token: str) -> LinkResult:
        assertion = await self.provider.verify_id_token(id_token)
        account, previous = self.store.link_google_account(
            assertion.email,
            normalize_name(assertion.given_name),
            normalize_name(assertion.family_name),
            assertion.picture,
        )
        if (
            previous is not None
            and previous.verified
            and previous.signup_method == SignupMethod.EMAIL
        ):
            logger.warning("oauth_overrode_email_signup", user_id=account.id)
        logger.info(
            "oauth_signin", user_id=account.id, created=previous is None, provider="google"
        )
        return LinkResult(
            account=account,
            tokens=self.tokens.issue_token_pair(account.id),
            created=previous is None,
        )

    async def exchange_authorization_code(self, code: str) -> CallbackOutcome:
        """Run the redirect flow; failures become an error redirect, not an exception."""
        try:
            id_token = await self.provider.exchange_code(code)
            link = await self.sign_in_with_identity_token(id_token)
        except ServiceError as exc:
            logger.warning("oauth_callback_failed", error_code=exc.error_code, error=exc.message)
            return CallbackOutcome(
                redirect_url=self._callback_url(status="error", message=exc.message)
            )
        return CallbackOutcome(
            redirect_url=self._callback_url(status="success", email=link.account.email),
            link=link,
        )

    def check_linked_method(self, email: str) -> LinkedMethod:
        email = normalize_email(email)
        account = self.store.get_account_by_email(email)
        is_google = account is not None and account.signup_method == SignupMethod.GOOGLE
        return LinkedMethod(email=email, is_google=is_google)

    def _callback_url(self, **params: str) -> str:
        return f"{self.frontend_url}/auth/callback?{urlencode(params)}"
