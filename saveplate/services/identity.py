"""
Identity resolution: map a credential assertion to exactly one User.

Email is the matching key across every sign-in method. A user who signed up
with a password and later uses Google or Facebook lands on the same row; the
provider id is attached to it instead of creating a second account.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from saveplate.core.cache import normalize_email
from saveplate.core.exceptions import AccountConflictError, BadRequestError
from saveplate.crud import user as user_crud
from saveplate.crud.user import DuplicateUserError
from saveplate.models.user import User

logger = logging.getLogger(__name__)

GOOGLE = "google"
FACEBOOK = "facebook"


class IdentityResolver:
    """Find-before-create resolution of users by email and provider id."""

    def __init__(self, db: Session):
        self.db = db

    def resolve_by_email_or_create(self, email: str) -> Tuple[User, bool]:
        """
        Return the user owning `email`, creating it with role NONE if absent.

        Returns:
            Tuple[User, bool]: (user, created)
        """
        user = user_crud.get_user_by_email(self.db, email)
        if user:
            return user, False

        try:
            user = user_crud.create_user(
                self.db,
                email=email,
                username=user_crud.username_from_email(email),
            )
        except DuplicateUserError:
            # Lost a race with a concurrent request for the same email
            user = user_crud.get_user_by_email(self.db, email)
            if user is None:
                raise
            return user, False

        logger.info(f"Created user {user.id} for {user.email}")
        return user, True

    def resolve_federated(
        self,
        provider: str,
        provider_id: Optional[str],
        email: str,
        display_name: Optional[str] = None,
        picture_url: Optional[str] = None
    ) -> Tuple[User, bool]:
        """
        Resolve a Google or Facebook identity to a user.

        Google: by google_id, then by email (attaching google_id), then create.
        Facebook: by email, then create. No Facebook id is stored.
        New accounts are created with email_verified=True because the
        provider has confirmed the address.

        Raises:
            AccountConflictError: Provider id already bound to a different email
            BadRequestError: Unknown provider
        """
        if provider not in (GOOGLE, FACEBOOK):
            raise BadRequestError(f"Unsupported identity provider: {provider}")

        normalized = normalize_email(email)

        if provider == GOOGLE and provider_id:
            user = user_crud.get_user_by_google_id(self.db, provider_id)
            if user:
                if normalize_email(user.email) != normalized:
                    logger.error(
                        f"Google id {provider_id} is linked to user {user.id} "
                        f"but was asserted for a different email"
                    )
                    raise AccountConflictError()
                return user, False

        user = user_crud.get_user_by_email(self.db, normalized)
        if user:
            return self._link(provider, provider_id, user, picture_url), False

        try:
            user = user_crud.create_user(
                self.db,
                email=normalized,
                username=display_name or user_crud.username_from_email(normalized),
                email_verified=True,
                google_id=provider_id if provider == GOOGLE else None,
                profile_image=picture_url,
            )
        except DuplicateUserError:
            user = user_crud.get_user_by_email(self.db, normalized)
            if user is None:
                # The collision was on google_id, held by another email
                raise AccountConflictError()
            return self._link(provider, provider_id, user, picture_url), False

        logger.info(f"Created user {user.id} from {provider} identity")
        return user, True

    def _link(self, provider: str, provider_id: Optional[str], user: User,
              picture_url: Optional[str]) -> User:
        if provider == GOOGLE and provider_id:
            if user.google_id and user.google_id != provider_id:
                logger.error(f"User {user.id} already has a different Google id")
                raise AccountConflictError()
            if not user.google_id:
                user = user_crud.link_google_id(self.db, user, provider_id)
                logger.info(f"Linked Google identity to existing user {user.id}")

        return user_crud.backfill_profile_image(self.db, user, picture_url)
