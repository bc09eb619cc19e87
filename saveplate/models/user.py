"""
User model: the canonical identity record for every sign-in method.
"""

import enum
from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, func
from saveplate.core.database import Base


class UserRole(str, enum.Enum):
    """
    Account role. New accounts start at NONE until onboarding picks one.
    """
    NONE = "NONE"
    PENDING_PROVIDER = "PENDING_PROVIDER"
    PROVIDER = "PROVIDER"
    CLIENT = "CLIENT"
    ADMIN = "ADMIN"


class User(Base):
    """
    One row per normalized (trimmed, lower-cased) email.

    Federated logins attach to the row found by email; google_id is set
    when the account has signed in with Google.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    # Authentication credentials
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, nullable=False)
    hashed_password = Column(String, nullable=True)
    google_id = Column(String, unique=True, nullable=True, index=True)

    # Account status
    role = Column(Enum(UserRole, name="user_role"), default=UserRole.NONE, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)

    # Profile (managed by the onboarding/profile endpoints)
    location = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    maps_link = Column(String, nullable=True)
    profile_image = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"
