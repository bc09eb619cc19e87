"""
Database models package.
"""

from saveplate.models.user import User, UserRole

__all__ = ["User", "UserRole"]
