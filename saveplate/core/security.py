"""
Password hashing and bearer token signing.

Tokens are stateless HS256 JWTs carrying {id, email, type}. The token type
decides where a token may be used; the codec only checks signature, expiry
and structure.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from saveplate.core.exceptions import ConfigurationError, InvalidTokenError

# Password hashing context (bcrypt, cost factor 10)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    # Bcrypt has a 72-byte limit - truncate if necessary
    password_bytes = plain_password.encode('utf-8')[:72]
    return pwd_context.verify(password_bytes, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Note: Bcrypt has a 72-byte limit. Longer passwords are truncated.
    """
    password_bytes = password.encode('utf-8')[:72]
    return pwd_context.hash(password_bytes)


def dummy_verify() -> None:
    """Spend the same time as a real verification when there is no hash to check."""
    pwd_context.dummy_verify()


class TokenType(str, enum.Enum):
    EMAIL = "EmailToken"
    NORMAL = "NormalToken"
    REFRESH = "RefreshToken"


TOKEN_LIFETIMES: Dict[TokenType, timedelta] = {
    TokenType.EMAIL: timedelta(minutes=30),
    TokenType.NORMAL: timedelta(hours=720),
    TokenType.REFRESH: timedelta(hours=720),
}


@dataclass(frozen=True)
class TokenPayload:
    id: Optional[str]
    email: Optional[str]
    type: TokenType


class TokenCodec:
    """
    Signs and verifies bearer tokens with a server-wide secret.

    Built once at startup. An empty secret is rejected here so the process
    fails at boot instead of at the first request.
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ConfigurationError("JWT_SECRET is not configured")
        self._secret = secret
        self._algorithm = algorithm

    def issue(self, user_id, email: str, kind: TokenType, now: Optional[datetime] = None) -> str:
        """
        Create a signed token for a user.

        Args:
            user_id: User primary key (stored as a string)
            email: User email
            kind: Token type, which also selects the lifetime
            now: Issue time, defaults to the current UTC time

        Returns:
            Encoded JWT
        """
        issued_at = now or datetime.now(timezone.utc)
        claims = {
            "id": str(user_id),
            "email": email,
            "type": TokenType(kind).value,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + TOKEN_LIFETIMES[TokenType(kind)]).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def decode(self, token: str) -> TokenPayload:
        """
        Verify signature and expiry and return the payload.

        Raises:
            InvalidTokenError: Bad signature, expired, or malformed payload
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as e:
            raise InvalidTokenError("Token has expired") from e
        except JWTError as e:
            raise InvalidTokenError(str(e)) from e

        try:
            kind = TokenType(claims.get("type"))
        except ValueError as e:
            raise InvalidTokenError(f"Unknown token type: {claims.get('type')!r}") from e

        user_id = claims.get("id")
        email = claims.get("email")
        return TokenPayload(
            id=str(user_id) if user_id is not None else None,
            email=email if isinstance(email, str) and email else None,
            type=kind,
        )
