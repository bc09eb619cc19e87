"""
Authentication endpoints.

- POST /auth/signup: Create a password account
- POST /auth/signin: Email/password sign-in
- POST /auth/send-magic-mail: Email a magic login link
- POST /auth/verify-magic-mail: Redeem a magic link
- POST /auth/send-verification-email: Send a 6-digit verification code
- POST /auth/verify-email-code: Check a verification code
- GET /auth/get-user-by-token: Current user from the access token
- POST /auth/facebook/callback: Facebook authorization-code sign-in
- POST /auth/facebook: Facebook access-token sign-in

Successful sign-ins return the tokens in the body and also set them as
HttpOnly cookies.
"""

import logging
from fastapi import APIRouter, Depends, Response, status

from saveplate.core.config import settings
from saveplate.core.deps import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_auth_service,
    get_current_user,
)
from saveplate.core.rate_limiter import RateLimit
from saveplate.models.user import User
from saveplate.schemas.auth import (
    AuthResponse,
    CurrentUserResponse,
    FacebookCallbackRequest,
    FacebookTokenRequest,
    MagicLinkRequest,
    MagicLinkResponse,
    MagicLinkVerifyRequest,
    SendCodeResponse,
    SendVerificationRequest,
    SigninRequest,
    SignupRequest,
    VerificationResponse,
    VerifyEmailCodeRequest,
)
from saveplate.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)

ACCESS_COOKIE_MAX_AGE = 7 * 24 * 60 * 60
REFRESH_COOKIE_MAX_AGE = 30 * 24 * 60 * 60


def set_auth_cookies(response: Response, result: AuthResponse) -> None:
    """Store both tokens as HttpOnly cookies (Secure in production)."""
    options = {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
        "path": "/",
    }
    if settings.COOKIE_DOMAIN:
        options["domain"] = settings.COOKIE_DOMAIN

    response.set_cookie(ACCESS_TOKEN_COOKIE, result.access_token, max_age=ACCESS_COOKIE_MAX_AGE, **options)
    response.set_cookie(REFRESH_TOKEN_COOKIE, result.refresh_token, max_age=REFRESH_COOKIE_MAX_AGE, **options)


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    response_model=AuthResponse,
    dependencies=[Depends(RateLimit("signup", 3, 3600, "Too many signup attempts"))],
)
async def signup(
    request: SignupRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service)
):
    """
    Register a new account with email, username and password.

    The account starts with role NONE and an unverified email.
    """
    result = await auth.signup(request.email, request.username, request.password)
    set_auth_cookies(response, result)
    return result


@router.post(
    "/signin",
    response_model=AuthResponse,
    dependencies=[Depends(RateLimit("signin", 5, 60, "Too many signin attempts"))],
)
async def signin(
    request: SigninRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service)
):
    result = await auth.signin(request.email, request.password)
    set_auth_cookies(response, result)
    return result


@router.post(
    "/send-magic-mail",
    response_model=MagicLinkResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(RateLimit("send_magic_mail", 5, 600, "Too many login emails requested"))],
)
async def send_magic_mail(
    request: MagicLinkRequest,
    auth: AuthService = Depends(get_auth_service)
):
    """Email a login link valid for 30 minutes. Creates the account if needed."""
    return await auth.send_magic_link(request.email)


@router.post(
    "/verify-magic-mail",
    response_model=AuthResponse,
    dependencies=[Depends(RateLimit("verify_magic_mail", 20, 60))],
)
async def verify_magic_mail(
    request: MagicLinkVerifyRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service)
):
    result = await auth.verify_magic_link(request.token)
    set_auth_cookies(response, result)
    return result


@router.post(
    "/send-verification-email",
    response_model=SendCodeResponse,
    dependencies=[Depends(RateLimit(
        "send_verification_email", 3, 600,
        "Too many verification emails sent. Please wait before requesting another code"
    ))],
)
async def send_verification_email(
    request: SendVerificationRequest,
    auth: AuthService = Depends(get_auth_service)
):
    """
    Send a 6-digit verification code, valid for 10 minutes.

    A new request replaces any code sent before.
    """
    return await auth.send_verification_email(request.email)


@router.post(
    "/verify-email-code",
    response_model=VerificationResponse,
    dependencies=[Depends(RateLimit(
        "verify_email_code", 10, 600,
        "Too many verification attempts. Please wait before trying again"
    ))],
)
async def verify_email_code(
    request: VerifyEmailCodeRequest,
    auth: AuthService = Depends(get_auth_service)
):
    return await auth.verify_email_code(request.email, request.code)


@router.get("/get-user-by-token", response_model=CurrentUserResponse)
async def get_user_by_token(current_user: User = Depends(get_current_user)):
    """
    Get the authenticated user's record.

    Requires a NormalToken in the accessToken cookie or Authorization header.
    """
    return AuthService.current_user(current_user)


@router.post(
    "/facebook/callback",
    response_model=AuthResponse,
    dependencies=[Depends(RateLimit("facebook_callback", 20, 60))],
)
async def facebook_callback(
    request: FacebookCallbackRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service)
):
    """Exchange a Facebook authorization code and sign the user in."""
    result = await auth.facebook_callback(request.code, request.redirect_uri)
    set_auth_cookies(response, result)
    return result


@router.post(
    "/facebook",
    response_model=AuthResponse,
    dependencies=[Depends(RateLimit("facebook_token", 20, 60))],
)
async def facebook_token(
    request: FacebookTokenRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service)
):
    """Sign in with an access token obtained by the Facebook JS SDK."""
    result = await auth.facebook_token(request.access_token)
    set_auth_cookies(response, result)
    return result
