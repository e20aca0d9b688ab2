from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlencode

import httpx

from voyagevault.logging import get_logger
from voyagevault.service.errors import UnauthorizedError, UpstreamFailureError

logger = get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_SCOPE = "openid email profile"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class IdentityAssertion:
    """Claims extracted from a validated Google id_token."""

    email: str
    given_name: str = ""
    family_name: str = ""
    picture: Optional[str] = None


class IdentityProvider(Protocol):
    async def verify_id_token(self, id_token: str) -> IdentityAssertion: ...

    async def exchange_code(self, code: str) -> str: ...

    def authorization_url(self, state: Optional[str] = None) -> str: ...


class GoogleIdentityProvider:
    """Validates Google id_tokens and runs the authorization-code exchange.

    Rejections by Google raise ``UnauthorizedError``; transport failures and
    unparseable responses raise ``UpstreamFailureError``.
    """

    def __init__(
        self,
        *,
        client_id: Optional[str],
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=False, transport=self._transport
        )

    def authorization_url(self, state: Optional[str] = None) -> str:
        if not self.client_id or not self.redirect_uri:
            logger.warning("oauth_not_configured", provider="google")
            raise UpstreamFailureError("Google sign-in is not configured")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": GOOGLE_SCOPE,
            "access_type": "offline",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def verify_id_token(self, id_token: str) -> IdentityAssertion:
        if not id_token:
            raise UnauthorizedError("missing identity token")
        if not self.client_id:
            logger.error("oauth_credentials_missing", provider="google")
            raise UpstreamFailureError("Google sign-in is not configured")
        try:
            async with self._client() as client:
                response = await client.get(
                    GOOGLE_TOKENINFO_URL, params={"id_token": id_token}
                )
        except httpx.HTTPError as exc:
            logger.error("oauth_tokeninfo_transport_error", error=str(exc))
            raise UpstreamFailureError("identity provider unavailable") from exc

        if response.status_code >= 500:
            logger.error("oauth_tokeninfo_http_error", status_code=response.status_code)
            raise UpstreamFailureError("identity provider unavailable")
        if response.status_code != 200:
            logger.warning("oauth_token_rejected", status_code=response.status_code)
            raise UnauthorizedError("invalid identity token")
        try:
            claims = response.json()
        except ValueError as exc:
            logger.error("oauth_tokeninfo_parse_error", error=str(exc))
            raise UpstreamFailureError("identity provider returned malformed data") from exc
        if not isinstance(claims, dict):
            raise UpstreamFailureError("identity provider returned malformed data")

        if claims.get("aud") != self.client_id:
            logger.warning("oauth_audience_mismatch")
            raise UnauthorizedError("invalid identity token")
        if claims.get("iss") and claims["iss"] not in GOOGLE_ISSUERS:
            logger.warning("oauth_issuer_mismatch", issuer=claims.get("iss"))
            raise UnauthorizedError("invalid identity token")
        email = (claims.get("email") or "").strip()
        if not email:
            logger.warning("oauth_identity_missing_email", provider="google")
            raise UnauthorizedError("identity token has no email")

        return IdentityAssertion(
            email=email,
            given_name=claims.get("given_name") or "",
            family_name=claims.get("family_name") or "",
            picture=claims.get("picture") or None,
        )

    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for an id_token."""
        if not code:
            raise UnauthorizedError("missing authorization code")
        if not self.client_id or not self.client_secret or not self.redirect_uri:
            logger.error("oauth_credentials_missing", provider="google")
            raise UpstreamFailureError("Google sign-in is not configured")
        token_data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data=token_data,
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error(
                "oauth_exchange_http_error",
                provider="google",
                status_code=status_code,
                error=str(exc),
            )
            if status_code < 500:
                raise UnauthorizedError("authorization code rejected") from exc
            raise UpstreamFailureError("identity provider unavailable") from exc
        except httpx.HTTPError as exc:
            logger.error("oauth_exchange_error", provider="google", error=str(exc))
            raise UpstreamFailureError("identity provider unavailable") from exc

        try:
            token_result = response.json()
        except ValueError as exc:
            logger.error("oauth_token_parse_error", provider="google", error=str(exc))
            raise UpstreamFailureError("identity provider returned malformed data") from exc
        id_token = token_result.get("id_token") if isinstance(token_result, dict) else None
        if not id_token:
            logger.error("oauth_no_id_token", provider="google")
            raise UpstreamFailureError("identity provider returned no id_token")
        logger.info("oauth_exchange_success", provider="google")
        return id_token
