"""
CRUD operations for user identity records.

Emails are normalized (trimmed, lower-cased) on write. Lookups try the
normalized value first and fall back to a case-insensitive comparison for
rows written before normalization.
"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from saveplate.core.cache import normalize_email
from saveplate.models.user import User, UserRole


class DuplicateUserError(Exception):
    """Insert rejected by a unique constraint (email or google_id)."""


def username_from_email(email: str) -> str:
    return normalize_email(email).split("@")[0]


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """
    Find a user by email, ignoring case and surrounding whitespace.

    Args:
        db: Database session
        email: Email as supplied by the client

    Returns:
        Optional[User]: Matching user or None
    """
    normalized = normalize_email(email)
    user = db.query(User).filter(User.email == normalized).first()
    if user:
        return user

    return db.query(User).filter(func.lower(func.trim(User.email)) == normalized).first()


def get_user_by_google_id(db: Session, google_id: str) -> Optional[User]:
    if not google_id:
        return None
    return db.query(User).filter(User.google_id == google_id).first()


def create_user(
    db: Session,
    email: str,
    username: str,
    hashed_password: Optional[str] = None,
    role: UserRole = UserRole.NONE,
    email_verified: bool = False,
    google_id: Optional[str] = None,
    profile_image: Optional[str] = None
) -> User:
    """
    Insert a new user.

    Raises:
        DuplicateUserError: Another row already holds this email or google_id
    """
    user = User(
        email=normalize_email(email),
        username=username,
        hashed_password=hashed_password,
        role=role,
        email_verified=email_verified,
        google_id=google_id,
        profile_image=profile_image,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateUserError(str(e.orig)) from e

    db.refresh(user)
    return user


def delete_user(db: Session, user: User) -> None:
    db.delete(user)
    db.commit()


def link_google_id(db: Session, user: User, google_id: str) -> User:
    user.google_id = google_id
    db.commit()
    db.refresh(user)
    return user


def backfill_profile_image(db: Session, user: User, picture_url: Optional[str]) -> User:
    """Set profile_image only when the user has none yet."""
    if picture_url and not user.profile_image:
        user.profile_image = picture_url
        db.commit()
        db.refresh(user)
    return user


def mark_email_verified(db: Session, user: User) -> User:
    user.email_verified = True
    db.commit()
    db.refresh(user)
    return user
