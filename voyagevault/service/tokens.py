from __future__ import annotations

import base64
import hashlib
import hmac
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from voyagevault.logging import get_logger

logger = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Base class for credential verification failures."""


class TokenExpiredError(TokenError):
    """Signature checks out but the credential is past ``exp``."""


class TokenInvalidError(TokenError):
    """Malformed, wrongly signed, wrong issuer or wrong token type."""


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    """Mints and verifies HS256-signed access and refresh credentials.

    Credentials are stateless: validity depends only on the signature,
    issuer, token type and expiry, so nothing is persisted and nothing can be
    revoked before it expires.
    """

    def __init__(
        self,
        secret: str,
        *,
        issuer: str = "voyagevault",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("token signing secret is required")
        self._secret = secret.encode()
        self.issuer = issuer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock() if self._clock else datetime.now(timezone.utc)

    def issue_token_pair(self, user_id: str) -> TokenPair:
        return TokenPair(
            access_token=self._issue(user_id, ACCESS, self.access_ttl),
            refresh_token=self._issue(user_id, REFRESH, self.refresh_ttl),
        )

    def verify_access(self, token: str) -> str:
        return self._verify(token, ACCESS)

    def verify_refresh(self, token: str) -> str:
        return self._verify(token, REFRESH)

    def renew_access(self, refresh_token: str) -> str:
        """Mint a new access token from a valid refresh token.

        The refresh token is left untouched and stays usable until its own
        expiry.
        """
        user_id = self.verify_refresh(refresh_token)
        logger.debug("access_token_renewed", user_id=user_id)
        return self._issue(user_id, ACCESS, self.access_ttl)

    def _issue(self, user_id: str, token_type: str, ttl: timedelta) -> str:
        issued_at = int(self._now().timestamp())
        payload = {
            "iss": self.issuer,
            "sub": user_id,
            "token_type": token_type,
            "jti": str(uuid.uuid4()),
            "iat": issued_at,
            "exp": issued_at + int(ttl.total_seconds()),
        }
        return self._encode_jwt(payload)

    def _verify(self, token: str, expected_type: str) -> str:
        payload = self._decode_jwt(token)
        if payload.get("iss") != self.issuer:
            raise TokenInvalidError("unexpected issuer")
        if payload.get("token_type") != expected_type:
            raise TokenInvalidError(f"expected {expected_type} token")
        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            raise TokenInvalidError("missing subject")
        try:
            exp_ts = float(payload["exp"])
        except (KeyError, TypeError, ValueError):
            raise TokenInvalidError("missing or malformed exp")
        if self._now().timestamp() >= exp_ts:
            raise TokenExpiredError(f"{expected_type} token expired")
        return user_id

    def _encode_segment(self, data: bytes) -> str:
        return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")

    def _decode_segment(self, segment: str) -> bytes:
        padding = "=" * ((4 - len(segment) % 4) % 4)
        return base64.urlsafe_b64decode(segment + padding)

    def _sign(self, signing_input: str) -> str:
        return self._encode_segment(
            hmac.new(self._secret, signing_input.encode(), hashlib.sha256).digest()
        )

    def _encode_jwt(self, payload: dict[str, Any]) -> str:
        header = {"alg": "HS256", "typ": "JWT"}
        header_enc = self._encode_segment(
            json.dumps(header, separators=(",", ":")).encode()
        )
        payload_enc = self._encode_segment(
            json.dumps(payload, separators=(",", ":")).encode()
        )
        signing_input = f"{header_enc}.{payload_enc}"
        return f"{signing_input}.{self._sign(signing_input)}"

    def _decode_jwt(self, token: str) -> dict[str, Any]:
        if not isinstance(token, str):
            raise TokenInvalidError("token must be a string")
        try:
            header_b64, payload_b64, sig_b64 = token.split(".")
        except ValueError:
            raise TokenInvalidError("token must have three segments")

        # Pin the algorithm to rule out alg confusion
        try:
            header = json.loads(self._decode_segment(header_b64))
        except (ValueError, UnicodeDecodeError):
            raise TokenInvalidError("undecodable header")
        if not isinstance(header, dict) or header.get("alg") != "HS256":
            logger.warning("jwt_invalid_algorithm")
            raise TokenInvalidError("unsupported algorithm")

        expected_sig = self._sign(f"{header_b64}.{payload_b64}")
        if not hmac.compare_digest(expected_sig, sig_b64):
            raise TokenInvalidError("bad signature")
        try:
            payload = json.loads(self._decode_segment(payload_b64))
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("jwt_payload_decode_failed", error=str(exc))
            raise TokenInvalidError("undecodable payload")
        if not isinstance(payload, dict):
            raise TokenInvalidError("payload must be an object")
        return payload
