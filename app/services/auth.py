import re
import secrets
import string
from dataclasses import dataclass
from typing import Optional, Union

import bcrypt

from app.core.config import settings
from app.core.errors import ConflictError, ValidationError
from app.repositories.user_repo import UserRepository
from app.schemas.user import UserRecord
from app.utils.logger import auth_logger

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")


@dataclass(frozen=True)
class AuthFailure:
    """Uniform local-login failure. Never says which check failed."""

    reason: str = INVALID_CREDENTIALS_MESSAGE


def normalize_email(value: Optional[str]) -> Optional[str]:
    """Trim and lower-case; empty input means no email."""
    cleaned = str(value or "").strip().lower()
    return cleaned or None


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value or ""))


def sanitize_return_to(value: Optional[str]) -> Optional[str]:
    """Keep only plain internal paths like "/profile" or "/search?q=x"."""
    if not value:
        return None
    value = str(value)
    if re.match(r"^https?://", value, re.IGNORECASE) or value.startswith("//"):
        return None
    if not value.startswith("/") or _CONTROL_CHARS_RE.search(value):
        return None
    return value


class AuthService:
    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against a hash."""
        try:
            return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
        except ValueError:
            # Stored value is not a bcrypt hash
            return False

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Hash a password for storage."""
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
        return hashed.decode('utf-8')

    @staticmethod
    def generate_random_string(length: int = 32) -> str:
        """Generate a random string for confirmation codes and request IDs."""
        alphabet = string.ascii_letters + string.digits
        return "".join(secrets.choice(alphabet) for _ in range(length))

    @classmethod
    def verify_local_credentials(
        cls, email: str, password: str, repo: UserRepository
    ) -> Union[UserRecord, AuthFailure]:
        """
        Check an email/password pair.

        Unknown email, wrong password and social-only accounts (no password set)
        all produce the same AuthFailure so the response can't be used to probe
        which emails are registered.
        """
        clean_email = normalize_email(email)
        user = None
        if clean_email:
            user = repo.find_by_email(clean_email) or repo.find_by_username(clean_email)

        if not user or not user.password_hash:
            auth_logger.info("Local login rejected", context="login", known_user=bool(user))
            return AuthFailure()

        if not cls.verify_password(str(password or ""), user.password_hash):
            auth_logger.info("Local login rejected", context="login", user_id=user.id)
            return AuthFailure()

        auth_logger.success("Local login accepted", context="login", user_id=user.id)
        return user

    @classmethod
    def register_local_user(
        cls, email: str, password: str, repo: UserRepository, name: Optional[str] = None
    ) -> UserRecord:
        """Create a password account. Raises ValidationError or ConflictError."""
        clean_email = normalize_email(email)
        password = str(password or "")
        name = str(name or "").strip()

        if not clean_email or not password:
            raise ValidationError("Email and password are required")
        if not is_valid_email(clean_email):
            raise ValidationError("Please enter a valid email address")
        if len(password) < settings.PASSWORD_MIN_LENGTH:
            raise ValidationError(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters")
        if len(name) > settings.NAME_MAX_LENGTH:
            raise ValidationError("Name is too long")

        if repo.find_by_email(clean_email) or repo.find_by_username(clean_email):
            raise ConflictError("An account with that email already exists")

        # create() re-checks uniqueness atomically for concurrent sign-ups
        user = repo.create(
            email=clean_email,
            name=name or clean_email.split("@")[0],
            password_hash=cls.get_password_hash(password),
        )
        auth_logger.success("Registered local account", context="register", user_id=user.id)
        return user
