import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Application
    PROJECT_NAME: str = "FunnyJoke API"
    PROJECT_DESCRIPTION: str = "Accounts and social sign-in for FunnyJoke"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    PORT: int = int(os.getenv("PORT", "3000"))

    # Sessions
    SESSION_SECRET: str = os.getenv("SESSION_SECRET", "dev-secret")
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "funnyjoke_session")
    SESSION_MAX_AGE: int = int(os.getenv("SESSION_MAX_AGE", str(14 * 24 * 3600)))  # 2 weeks

    # Public URLs (no trailing slash)
    BASE_URL: str = os.getenv("BASE_URL", "")
    OAUTH_CALLBACK_BASE: str = os.getenv("OAUTH_CALLBACK_BASE", "")

    # Storage
    USER_STORE: str = os.getenv("USER_STORE", "memory")  # memory | sql
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./funnyjoke.db")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_COLORS: bool = os.getenv("LOG_COLORS", "true").lower() == "true"

    # Google OAuth
    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")

    # Facebook OAuth (the app secret also signs data-deletion requests)
    FACEBOOK_CLIENT_ID: str = os.getenv("FACEBOOK_CLIENT_ID", "")
    FACEBOOK_CLIENT_SECRET: str = os.getenv("FACEBOOK_CLIENT_SECRET", "")

    # Sign in with Apple
    APPLE_CLIENT_ID: str = os.getenv("APPLE_CLIENT_ID", "")

    # Identity rules
    AVATAR_SIZE: int = int(os.getenv("AVATAR_SIZE", "128"))
    SIGNED_REQUEST_MAX_AGE_SECONDS: int = int(os.getenv("SIGNED_REQUEST_MAX_AGE_SECONDS", "86400"))  # 24h
    PASSWORD_MIN_LENGTH: int = 8
    NAME_MAX_LENGTH: int = 120

    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def google_enabled(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)

    @property
    def facebook_enabled(self) -> bool:
        return bool(self.FACEBOOK_CLIENT_ID and self.FACEBOOK_CLIENT_SECRET)

    @property
    def apple_enabled(self) -> bool:
        # The id_token arrives by form_post; only the audience has to be known
        return bool(self.APPLE_CLIENT_ID)

    @property
    def public_base_url(self) -> str:
        """Origin used for absolute links, without a trailing slash."""
        return _normalize_origin(self.BASE_URL) or f"http://localhost:{self.PORT}"

    def callback_url(self, path: str = "/") -> str:
        """Absolute OAuth callback URL. OAUTH_CALLBACK_BASE wins over BASE_URL (e.g. ngrok)."""
        origin = _normalize_origin(self.OAUTH_CALLBACK_BASE) or self.public_base_url
        safe_path = path if path.startswith("/") else f"/{path}"
        return f"{origin}{safe_path}"

    @property
    def deletion_status_base_url(self) -> str:
        return f"{self.public_base_url}{self.API_V1_PREFIX}/facebook/data-deletion/status"


def _normalize_origin(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = str(value).strip()
    return cleaned[:-1] if cleaned.endswith("/") else cleaned


settings = Settings()
