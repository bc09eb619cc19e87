import json
import os
from typing import List, Optional, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    PROJECT_NAME: str = "SavePlate API"
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # Database Settings
    POSTGRES_USER: str = "user"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "saveplate"
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis Settings (verification codes, OAuth state, rate limits)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_URL_OVERRIDE: Optional[str] = None

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_URL_OVERRIDE:
            return self.REDIS_URL_OVERRIDE
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # Token signing. Must be set: the app refuses to start without it.
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    # Frontend base URL used for magic links and OAuth redirects
    FRONTEND_URL: str = "http://localhost:3000"

    # Cookies
    COOKIE_DOMAIN: Optional[str] = None

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:3001/google-auth/callback/google"

    # Facebook Login
    FACEBOOK_APP_ID: str = ""
    FACEBOOK_APP_SECRET: str = ""
    FACEBOOK_GRAPH_VERSION: str = "v19.0"
    FACEBOOK_REDIRECT_URI: str = "http://localhost:3000/auth/facebook/callback"

    # Timeout (seconds) for identity provider calls
    OAUTH_HTTP_TIMEOUT: float = 10.0

    # Resend (transactional email)
    RESEND_API_KEY: str = ""
    RESEND_FROM_EMAIL: str = "no-reply@resend.ccdev.space"
    RESEND_FROM_NAME: str = "SavePlate"

    RATE_LIMIT_ENABLED: bool = True

    # CORS Settings - can be set as JSON string in .env
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[List[str], str]) -> List[str]:
        """Parse CORS origins from JSON string or list"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, split by comma
                return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("OAUTH_HTTP_TIMEOUT")
    @classmethod
    def cap_oauth_timeout(cls, v: float) -> float:
        """Provider calls must time out, and never later than 20 seconds."""
        if v <= 0 or v > 20:
            raise ValueError("OAUTH_HTTP_TIMEOUT must be in (0, 20] seconds")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True


def magic_link_inline_enabled() -> bool:
    """
    Whether magic links are returned in the response body instead of emailed.

    Read from the process environment on every call. Never true when
    ENVIRONMENT is production, whether that comes from the process
    environment or from the loaded settings (.env included), whatever
    MAGIC_LINK_INLINE says.
    """
    if os.getenv("ENVIRONMENT", "development").lower() == "production":
        return False
    if settings.is_production:
        return False
    return os.getenv("MAGIC_LINK_INLINE", "false").lower() in ("1", "true", "yes")


settings = Settings()
