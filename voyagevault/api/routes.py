from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Query, Response
from fastapi.responses import RedirectResponse

from voyagevault.api.schemas import (
    AccountSummaryResponse,
    AuthUrlResponse,
    CodeVerificationRequest,
    EmailMessageResponse,
    EmailRequest,
    GoogleSignInRequest,
    LinkedMethodResponse,
    MessageResponse,
    SignupRequest,
    UserResponse,
)
from voyagevault.config import Settings
from voyagevault.logging import get_logger
from voyagevault.service.runtime import get_runtime
from voyagevault.service.tokens import TokenPair
from voyagevault.storage.models import Account

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"


def _set_access_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        ACCESS_COOKIE,
        token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        max_age=settings.access_token_ttl_minutes * 60,
        path="/",
    )


def _apply_session_cookies(response: Response, tokens: TokenPair, settings: Settings) -> None:
    _set_access_cookie(response, tokens.access_token, settings)
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.refresh_token,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        max_age=settings.refresh_token_ttl_days * 24 * 60 * 60,
        path="/",
    )


def _clear_session_cookies(response: Response, settings: Settings) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite="strict",
        )


async def get_current_account(
    response: Response,
    access_token: Optional[str] = Cookie(None, alias=ACCESS_COOKIE),
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
) -> Account:
    runtime = get_runtime()
    result = await runtime.guard.authenticate(access_token, refresh_token)
    if result.renewed_access_token:
        _set_access_cookie(response, result.renewed_access_token, runtime.settings)
        logger.info("access_cookie_renewed", user_id=result.account.id)
    return result.account


@router.post("/signup", response_model=EmailMessageResponse)
async def signup(body: SignupRequest):
    runtime = get_runtime()
    dispatch = await runtime.codes.issue_signup_code(
        body.first_name, body.last_name, body.email
    )
    return EmailMessageResponse(message="Verification code sent", email=dispatch.email)


@router.post("/verify-code", response_model=EmailMessageResponse)
async def verify_code(body: CodeVerificationRequest, response: Response):
    runtime = get_runtime()
    session = await runtime.codes.verify_code(body.email, body.code)
    _apply_session_cookies(response, session.tokens, runtime.settings)
    return EmailMessageResponse(
        message="Email verified successfully", email=session.account.email
    )


@router.post("/resend-code", response_model=EmailMessageResponse)
async def resend_code(body: EmailRequest):
    runtime = get_runtime()
    dispatch = await runtime.codes.resend_code(body.email)
    return EmailMessageResponse(message="Verification code resent", email=dispatch.email)


@router.post("/signin", response_model=EmailMessageResponse)
async def signin(body: EmailRequest):
    runtime = get_runtime()
    dispatch = await runtime.codes.initiate_sign_in(body.email)
    return EmailMessageResponse(message="Verification code sent", email=dispatch.email)


@router.post("/signin-verify", response_model=EmailMessageResponse)
async def signin_verify(body: CodeVerificationRequest, response: Response):
    runtime = get_runtime()
    session = await runtime.codes.verify_sign_in_code(body.email, body.code)
    _apply_session_cookies(response, session.tokens, runtime.settings)
    return EmailMessageResponse(message="Signed in successfully", email=session.account.email)


@router.post("/refresh-token", response_model=MessageResponse)
async def refresh_token(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
):
    runtime = get_runtime()
    access_token = runtime.guard.refresh(refresh_token)
    _set_access_cookie(response, access_token, runtime.settings)
    return MessageResponse(message="Access token refreshed")


@router.get("/verify-token", response_model=UserResponse)
async def verify_token(account: Account = Depends(get_current_account)):
    return UserResponse(
        message="Token is valid", user=AccountSummaryResponse.from_account(account)
    )


@router.get("/", response_model=UserResponse)
async def protected(account: Account = Depends(get_current_account)):
    return UserResponse(
        message="Protected route", user=AccountSummaryResponse.from_account(account)
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    runtime = get_runtime()
    _clear_session_cookies(response, runtime.settings)
    return MessageResponse(message="Logged out successfully")


@router.post("/google-signin", response_model=EmailMessageResponse)
async def google_signin(body: GoogleSignInRequest, response: Response):
    runtime = get_runtime()
    link = await runtime.oauth.sign_in_with_identity_token(body.id_token)
    _apply_session_cookies(response, link.tokens, runtime.settings)
    return EmailMessageResponse(
        message="Google sign-in successful", email=link.account.email
    )


@router.get("/google-auth-url", response_model=AuthUrlResponse)
async def google_auth_url():
    runtime = get_runtime()
    return AuthUrlResponse(url=runtime.oauth.build_authorization_url())


@router.get("/google-callback")
async def google_callback(code: Optional[str] = Query(None, max_length=2048)):
    runtime = get_runtime()
    outcome = await runtime.oauth.exchange_authorization_code(code or "")
    redirect = RedirectResponse(outcome.redirect_url, status_code=302)
    if outcome.link is not None:
        _apply_session_cookies(redirect, outcome.link.tokens, runtime.settings)
    return redirect


@router.get("/verify-google", response_model=LinkedMethodResponse)
async def verify_google(email: str = Query(..., min_length=3, max_length=254)):
    runtime = get_runtime()
    linked = runtime.oauth.check_linked_method(email)
    return LinkedMethodResponse(is_google=linked.is_google, email=linked.email)
