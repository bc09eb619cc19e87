"""
Authentication flows: password signup/signin, magic links, email
verification codes and Google/Facebook sign-in.

Each flow is Validate -> Resolve/Create identity -> Issue tokens -> Respond.
Flows share no in-process state; verification codes and OAuth state live in
the cache, users in the database. Tokens are stateless and never stored.

Known gap: a RefreshToken is issued on every sign-in but no endpoint
exchanges it for a new NormalToken yet.
"""

import logging
import secrets
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from saveplate.core.cache import (
    CacheStore,
    invalidate_user_cache,
    normalize_email,
    oauth_state_key,
    verification_code_key,
)
from saveplate.core.config import magic_link_inline_enabled
from saveplate.core.exceptions import (
    AuthError,
    BadRequestError,
    CacheError,
    ConflictError,
    EmailDeliveryError,
    InvalidTokenError,
    NotFoundError,
    OAuthProviderError,
    UnauthorizedError,
)
from saveplate.core.security import (
    TokenCodec,
    TokenType,
    dummy_verify,
    get_password_hash,
    verify_password,
)
from saveplate.crud import user as user_crud
from saveplate.crud.user import DuplicateUserError
from saveplate.models.user import User, UserRole
from saveplate.schemas.auth import (
    AuthResponse,
    CurrentUserResponse,
    MagicLinkResponse,
    SendCodeResponse,
    UserResponse,
    VerificationResponse,
)
from saveplate.services.email_service import EmailService
from saveplate.services.identity import FACEBOOK, GOOGLE, IdentityResolver
from saveplate.services.oauth_providers import (
    FacebookOAuthProvider,
    GoogleOAuthProvider,
    OAuthIdentity,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_MAGIC_LINK = "Invalid or expired token"

VERIFICATION_CODE_TTL_MS = 10 * 60 * 1000
OAUTH_STATE_TTL_MS = 10 * 60 * 1000

PROVIDER_NAMES = {GOOGLE: "Google", FACEBOOK: "Facebook"}


def generate_verification_code() -> str:
    """Uniform draw over [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


class AuthService:
    """
    Orchestrates every authentication flow.

    Collaborators are injected so tests can substitute the cache, email
    sender and identity providers.
    """

    def __init__(
        self,
        db: Session,
        cache: CacheStore,
        tokens: TokenCodec,
        email_service: EmailService,
        google: GoogleOAuthProvider,
        facebook: FacebookOAuthProvider,
        frontend_url: str
    ):
        self.db = db
        self.cache = cache
        self.tokens = tokens
        self.email_service = email_service
        self.google = google
        self.facebook = facebook
        self.frontend_url = frontend_url.rstrip("/")
        self.identities = IdentityResolver(db)

    # Password flows

    async def signup(self, email: str, username: str, password: str) -> AuthResponse:
        """
        Create a password account and sign it in.

        If anything server-side fails after the row is written, the row is
        deleted again so no unusable account is left behind.

        Raises:
            BadRequestError: Missing email, username or password
            ConflictError: Email already registered (any casing)
        """
        if not email or not username or not password:
            raise BadRequestError("Email, username and password are required")

        normalized = normalize_email(email)
        if await run_in_threadpool(user_crud.get_user_by_email, self.db, normalized):
            raise ConflictError("Email already registered")

        hashed_password = await run_in_threadpool(get_password_hash, password)

        try:
            user = await run_in_threadpool(
                user_crud.create_user,
                self.db,
                email=normalized,
                username=username,
                hashed_password=hashed_password,
            )
        except DuplicateUserError:
            # A concurrent signup got there between the check and the insert
            raise ConflictError("Email already registered")

        logger.info(f"New user registered: {user.email} (id: {user.id})")

        try:
            return self._session_response(user, "User registered successfully")
        except AuthError as e:
            if e.status_code >= 500:
                await self._rollback_signup(user, e)
            raise
        except Exception as e:
            await self._rollback_signup(user, e)
            raise

    async def _rollback_signup(self, user: User, cause: Exception) -> None:
        logger.error(f"Signup for {user.email} failed after user creation, deleting user {user.id}: {cause}")
        try:
            await run_in_threadpool(user_crud.delete_user, self.db, user)
        except Exception as e:
            await run_in_threadpool(self.db.rollback)
            logger.error(f"Rollback of user {user.id} failed: {e}")

    async def signin(self, email: str, password: str) -> AuthResponse:
        """
        Sign in with email and password.

        Unknown email, account without a password and wrong password all fail
        with the same 401 and message.
        """
        user = await run_in_threadpool(user_crud.get_user_by_email, self.db, email)

        if user is None or not user.hashed_password:
            await run_in_threadpool(dummy_verify)
            logger.warning(f"Failed signin for {normalize_email(email)}: no password account")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        try:
            valid = await run_in_threadpool(verify_password, password or "", user.hashed_password)
        except ValueError as e:
            logger.error(f"Stored password hash for user {user.id} is unreadable: {e}")
            valid = False

        if not valid:
            logger.warning(f"Failed signin for user {user.id}: wrong password")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        logger.info(f"User signed in: {user.email}")
        return self._session_response(user, "User signed in successfully")

    # Magic links

    async def send_magic_link(self, email: str) -> MagicLinkResponse:
        """
        Email a single-use login link, creating the account if needed.

        Outside production, MAGIC_LINK_INLINE=true returns the link in the
        response instead of sending it.
        """
        user, created = await run_in_threadpool(self.identities.resolve_by_email_or_create, email)
        email_token = self.tokens.issue(user.id, user.email, TokenType.EMAIL)
        link = f"{self.frontend_url}/callback/{email_token}"

        if magic_link_inline_enabled():
            logger.warning(f"Magic link for {user.email} returned inline (MAGIC_LINK_INLINE)")
            return MagicLinkResponse(message="Magic link generated for " + user.email, sent=False, link=link)

        sent = await run_in_threadpool(self.email_service.send_magic_link_email, user.email, link)
        if not sent:
            raise EmailDeliveryError("Error sending email.")

        logger.info(f"Magic link sent to {user.email} (new user: {created})")
        return MagicLinkResponse(message="Email sent to : " + user.email, sent=True)

    async def verify_magic_link(self, token: str) -> AuthResponse:
        """
        Redeem a magic-link token for a session.

        Any decode failure is reported as the same 400; the cause is logged.
        A valid token for a user that no longer exists recreates the user
        from the token's email.
        """
        try:
            payload = self.tokens.decode(token)
        except InvalidTokenError as e:
            logger.warning(f"Magic link rejected: {e}")
            raise BadRequestError(INVALID_MAGIC_LINK)

        if payload.type != TokenType.EMAIL:
            logger.warning(f"Magic link rejected: got a {payload.type.value}")
            raise BadRequestError(INVALID_MAGIC_LINK)

        if not payload.id or not payload.email:
            raise BadRequestError("Token payload is missing id or email")

        try:
            user_id = int(payload.id)
        except ValueError:
            logger.warning(f"Magic link rejected: non-numeric user id {payload.id!r}")
            raise BadRequestError(INVALID_MAGIC_LINK)

        user = await run_in_threadpool(user_crud.get_user_by_id, self.db, user_id)
        if user is None:
            logger.warning(f"Magic link for missing user {user_id}; recreating from {payload.email}")
            user, _ = await run_in_threadpool(self.identities.resolve_by_email_or_create, payload.email)
            return self._session_response(user, "User Verified", needs_onboarding=True)

        return self._session_response(user, "User Verified")

    # Email verification codes

    async def send_verification_email(self, email: str) -> SendCodeResponse:
        """
        Send a fresh 6-digit code, replacing any previous one.

        A cache write failure is only logged: the email still goes out even
        though the code cannot be verified later. A mail failure fails the
        request.
        """
        user = await run_in_threadpool(user_crud.get_user_by_email, self.db, email)
        if user is None:
            raise NotFoundError("User not found")

        code = generate_verification_code()
        key = verification_code_key(normalize_email(user.email))
        try:
            await self.cache.set(key, code, VERIFICATION_CODE_TTL_MS)
        except CacheError as e:
            logger.error(f"Failed to store verification code for {user.email}: {e}")

        sent = await run_in_threadpool(
            self.email_service.send_verification_email, user.email, code, user.username
        )
        if not sent:
            raise EmailDeliveryError("Failed to send verification email")

        logger.info(f"Verification code sent to {user.email}")
        return SendCodeResponse(
            success=True,
            message=f"Verification code sent to {user.email}",
            expires_in_minutes=VERIFICATION_CODE_TTL_MS // 60000,
        )

    async def verify_email_code(self, email: str, code: str) -> VerificationResponse:
        """
        Check a code and mark the email verified.

        A wrong code leaves the stored code in place so the user can retry;
        a correct one is deleted immediately.
        """
        user = await run_in_threadpool(user_crud.get_user_by_email, self.db, email)
        if user is None:
            raise NotFoundError("User not found")

        key = verification_code_key(normalize_email(user.email))
        stored = await self.cache.get(key)

        if stored is None:
            legacy_key = verification_code_key(email)
            if legacy_key != key:
                stored = await self.cache.get(legacy_key)
                key = legacy_key

        if stored is None:
            raise BadRequestError("Verification code expired or not found. Please request a new code.")

        if str(stored).strip() != (code or "").strip():
            logger.warning(f"Wrong verification code for {user.email}")
            raise BadRequestError("Invalid verification code. Please try again.")

        await self.cache.delete(key)
        user = await run_in_threadpool(user_crud.mark_email_verified, self.db, user)
        await invalidate_user_cache(self.cache, user.id, user.email)

        logger.info(f"User {user.email} verified their email")
        return VerificationResponse(success=True, message="Email verified successfully", email_verified=True)

    # Google

    async def google_authorization_url(self) -> str:
        """Build the consent URL and remember its CSRF state."""
        state = secrets.token_urlsafe(32)
        url = self.google.get_authorization_url(state)
        await self.cache.set(oauth_state_key(GOOGLE, state), "1", OAUTH_STATE_TTL_MS)
        return url

    async def google_callback(self, code: str, state: Optional[str]) -> AuthResponse:
        if not state or not await self._consume_oauth_state(GOOGLE, state):
            raise BadRequestError("Invalid state parameter. Please try signing in again.")

        try:
            identity = await self.google.identity_from_code(code)
        except OAuthProviderError as e:
            logger.warning(f"Google code exchange failed: {e}")
            raise UnauthorizedError("Invalid Google authorization")

        return await self._federated_session(identity)

    async def google_id_token(self, id_token: str) -> AuthResponse:
        try:
            identity = await self.google.identity_from_id_token(id_token)
        except OAuthProviderError as e:
            logger.warning(f"Google ID token rejected: {e}")
            raise UnauthorizedError("Invalid Google token")

        return await self._federated_session(identity)

    async def _consume_oauth_state(self, provider: str, state: str) -> bool:
        # Single delete so two callbacks racing on one state cannot both pass
        return await self.cache.delete(oauth_state_key(provider, state))

    # Facebook

    async def facebook_callback(self, code: str, redirect_uri: Optional[str] = None) -> AuthResponse:
        try:
            identity = await self.facebook.identity_from_code(code, redirect_uri)
        except OAuthProviderError as e:
            logger.warning(f"Facebook code exchange failed: {e}")
            raise UnauthorizedError("Invalid Facebook authorization")

        return await self._federated_session(identity)

    async def facebook_token(self, access_token: str) -> AuthResponse:
        try:
            identity = await self.facebook.identity_from_access_token(access_token)
        except OAuthProviderError as e:
            logger.warning(f"Facebook access token rejected: {e}")
            raise UnauthorizedError("Invalid Facebook token")

        return await self._federated_session(identity)

    # Shared

    async def _federated_session(self, identity: OAuthIdentity) -> AuthResponse:
        if not identity.email:
            raise BadRequestError(
                f"Your {PROVIDER_NAMES.get(identity.provider, identity.provider)} account did not share an email address"
            )

        user, created = await run_in_threadpool(
            self.identities.resolve_federated,
            identity.provider,
            identity.provider_id,
            identity.email,
            display_name=identity.display_name,
            picture_url=identity.picture_url,
        )
        logger.info(f"User {user.email} signed in with {identity.provider} (new user: {created})")
        provider_name = PROVIDER_NAMES.get(identity.provider, identity.provider)
        return self._session_response(user, f"Signed in with {provider_name}")

    def _session_response(self, user: User, message: str,
                          needs_onboarding: Optional[bool] = None) -> AuthResponse:
        access_token = self.tokens.issue(user.id, user.email, TokenType.NORMAL)
        refresh_token = self.tokens.issue(user.id, user.email, TokenType.REFRESH)

        onboarding = user.role == UserRole.NONE
        return AuthResponse(
            message=message,
            access_token=access_token,
            refresh_token=refresh_token,
            user=UserResponse.model_validate(user),
            needs_onboarding=onboarding if needs_onboarding is None else needs_onboarding,
            redirect_to_onboarding=onboarding,
        )

    @staticmethod
    def current_user(user: User) -> CurrentUserResponse:
        return CurrentUserResponse(
            user=UserResponse.model_validate(user),
            redirect_to_onboarding=user.role == UserRole.NONE,
        )
