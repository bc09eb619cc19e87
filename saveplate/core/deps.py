"""
FastAPI dependencies for authentication and service wiring.

Application-wide singletons (token codec, cache) are created in the app
lifespan and read from app.state here, so tests can swap any of them with
dependency_overrides.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from saveplate.core.cache import CacheStore
from saveplate.core.config import settings
from saveplate.core.database import get_db
from saveplate.core.exceptions import ConfigurationError, InvalidTokenError, UnauthorizedError
from saveplate.core.security import TokenCodec, TokenType
from saveplate.crud import user as user_crud
from saveplate.models.user import User
from saveplate.services.auth_service import AuthService
from saveplate.services.email_service import EmailService, email_service
from saveplate.services.oauth_providers import (
    FacebookOAuthProvider,
    GoogleOAuthProvider,
    build_facebook_provider,
    build_google_provider,
)

logger = logging.getLogger(__name__)

# Authorization: Bearer <token>; optional because the cookie is checked first
bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def get_token_codec(request: Request) -> TokenCodec:
    codec = getattr(request.app.state, "token_codec", None)
    if codec is None:
        raise ConfigurationError("JWT_SECRET is not configured")
    return codec


def get_cache(request: Request) -> CacheStore:
    return request.app.state.cache


def get_email_service() -> EmailService:
    return email_service


def get_google_provider() -> GoogleOAuthProvider:
    return build_google_provider()


def get_facebook_provider() -> FacebookOAuthProvider:
    return build_facebook_provider()


def get_auth_service(
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    tokens: TokenCodec = Depends(get_token_codec),
    mailer: EmailService = Depends(get_email_service),
    google: GoogleOAuthProvider = Depends(get_google_provider),
    facebook: FacebookOAuthProvider = Depends(get_facebook_provider),
) -> AuthService:
    return AuthService(
        db=db,
        cache=cache,
        tokens=tokens,
        email_service=mailer,
        google=google,
        facebook=facebook,
        frontend_url=settings.FRONTEND_URL,
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenCodec = Depends(get_token_codec),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the caller from the accessToken cookie or the Bearer header.

    Only NormalToken is accepted; magic-link and refresh tokens are rejected.

    Raises:
        UnauthorizedError 401: Token missing, invalid, wrong type, or user gone
    """
    token = request.cookies.get(ACCESS_TOKEN_COOKIE) or (credentials.credentials if credentials else None)
    if not token:
        raise UnauthorizedError("Not logged in")

    try:
        payload = tokens.decode(token)
    except InvalidTokenError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise UnauthorizedError("Invalid token")

    if payload.type != TokenType.NORMAL:
        logger.warning(f"Rejected {payload.type.value} used as access token")
        raise UnauthorizedError("Invalid token")

    try:
        user_id = int(payload.id) if payload.id else None
    except ValueError:
        user_id = None
    if user_id is None:
        raise UnauthorizedError("Invalid token")

    user = await run_in_threadpool(user_crud.get_user_by_id, db, user_id)
    if user is None:
        logger.warning(f"User not found for token subject {user_id}")
        raise UnauthorizedError("Invalid token")

    return user
