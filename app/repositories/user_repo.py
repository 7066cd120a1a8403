"""
User stores.

Both backends return `UserRecord` copies, never live objects, so callers can't
mutate stored state without going through `update`. Email is the uniqueness
key: `create` raises ConflictError instead of inserting a second account for
the same normalized email.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, IntegrityError, ValidationError
from app.core.providers import Provider
from app.models.user import User
from app.schemas.user import UserRecord
from app.utils.logger import db_logger

UPDATABLE_FIELDS = {
    "email",
    "username",
    "name",
    "password_hash",
    "avatar_url",
    "google_id",
    "facebook_id",
    "apple_id",
}


def _clean_email(value: Optional[str]) -> Optional[str]:
    cleaned = str(value or "").strip().lower()
    return cleaned or None


def _check_credentials(password_hash, google_id, facebook_id, apple_id, email) -> None:
    if not (password_hash or google_id or facebook_id or apple_id):
        raise ValidationError("A user needs a password or a provider id")
    if not email and not (google_id or facebook_id or apple_id):
        raise ValidationError("A user without email must have a provider id")


class UserRepository(ABC):
    """Storage contract used by the identity and auth services."""

    @abstractmethod
    def find_by_id(self, user_id) -> Optional[UserRecord]: ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def find_by_username(self, username: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def find_by_provider_id(self, provider: Provider, provider_id: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def create(
        self,
        *,
        email: Optional[str] = None,
        name: Optional[str] = None,
        password_hash: Optional[str] = None,
        avatar_url: Optional[str] = None,
        google_id: Optional[str] = None,
        facebook_id: Optional[str] = None,
        apple_id: Optional[str] = None,
    ) -> UserRecord:
        """Insert a record if its email is free; raise ConflictError otherwise."""

    @abstractmethod
    def update(self, user_id: int, **changes) -> Optional[UserRecord]: ...

    @abstractmethod
    def delete_by_provider_id(self, provider: Provider, provider_id: str) -> int:
        """Remove every record linked to the provider id. Returns the number removed."""


class InMemoryUserRepository(UserRepository):
    """List-backed store for development and tests."""

    def __init__(self, seed: Iterable[dict] = ()):
        self._lock = threading.Lock()
        self._users: List[dict] = []
        for raw in seed:
            email = _clean_email(raw.get("email") or raw.get("username"))
            user_id = raw.get("id")
            self._users.append({
                **{field: raw.get(field) for field in UPDATABLE_FIELDS},
                "id": int(user_id) if user_id is not None else None,
                "email": email,
                "username": email,
                "name": raw.get("name") or (email.split("@")[0] if email else None),
                "created_at": raw.get("created_at") or datetime.now(timezone.utc),
            })
        self._next_id = max((u["id"] for u in self._users if u["id"] is not None), default=0) + 1
        for user in self._users:
            if user["id"] is None:
                user["id"] = self._next_id
                self._next_id += 1

    @staticmethod
    def _to_record(user: Optional[dict]) -> Optional[UserRecord]:
        return UserRecord(**user) if user else None

    def _find(self, predicate) -> Optional[dict]:
        return next((u for u in self._users if predicate(u)), None)

    def find_by_id(self, user_id) -> Optional[UserRecord]:
        return self._to_record(self._find(lambda u: str(u["id"]) == str(user_id)))

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        wanted = _clean_email(email)
        if not wanted:
            return None
        return self._to_record(self._find(lambda u: u["email"] == wanted))

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        wanted = _clean_email(username)
        if not wanted:
            return None
        return self._to_record(self._find(lambda u: (u["username"] or "").lower() == wanted))

    def find_by_provider_id(self, provider: Provider, provider_id: str) -> Optional[UserRecord]:
        if not provider_id:
            return None
        field = Provider(provider).id_field
        return self._to_record(self._find(lambda u: u[field] == str(provider_id)))

    def create(self, *, email=None, name=None, password_hash=None, avatar_url=None,
               google_id=None, facebook_id=None, apple_id=None) -> UserRecord:
        email = _clean_email(email)
        _check_credentials(password_hash, google_id, facebook_id, apple_id, email)

        with self._lock:
            if email and self._find(lambda u: u["email"] == email):
                raise ConflictError()
            user = {
                "id": self._next_id,
                "email": email,
                "username": email,
                "name": name,
                "password_hash": password_hash,
                "avatar_url": avatar_url,
                "google_id": google_id,
                "facebook_id": facebook_id,
                "apple_id": apple_id,
                "created_at": datetime.now(timezone.utc),
            }
            self._next_id += 1
            self._users.append(user)
        return self._to_record(user)

    def update(self, user_id: int, **changes) -> Optional[UserRecord]:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        if "email" in changes:
            changes["email"] = _clean_email(changes["email"])

        with self._lock:
            user = self._find(lambda u: u["id"] == user_id)
            if user is None:
                return None
            new_email = changes.get("email")
            if new_email and self._find(lambda u: u["email"] == new_email and u["id"] != user_id):
                raise ConflictError()
            user.update(changes)
        return self._to_record(user)

    def delete_by_provider_id(self, provider: Provider, provider_id: str) -> int:
        if not provider_id:
            return 0
        field = Provider(provider).id_field
        with self._lock:
            before = len(self._users)
            self._users = [u for u in self._users if u[field] != str(provider_id)]
            return before - len(self._users)


class SqlUserRepository(UserRepository):
    """SQLAlchemy-backed store; the unique index on `users.email` enforces one account per email."""

    def __init__(self, db: Session):
        self.db = db

    def _first(self, stmt) -> Optional[UserRecord]:
        try:
            user = self.db.execute(stmt).scalars().first()
        except SQLAlchemyError as e:
            db_logger.error("User lookup failed", context="users", error=str(e))
            raise IntegrityError("User store unavailable") from e
        return UserRecord.model_validate(user) if user else None

    def find_by_id(self, user_id) -> Optional[UserRecord]:
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            return None
        return self._first(select(User).where(User.id == user_id))

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        wanted = _clean_email(email)
        if not wanted:
            return None
        return self._first(select(User).where(User.email == wanted))

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        wanted = _clean_email(username)
        if not wanted:
            return None
        return self._first(select(User).where(func.lower(User.username) == wanted))

    def find_by_provider_id(self, provider: Provider, provider_id: str) -> Optional[UserRecord]:
        if not provider_id:
            return None
        column = getattr(User, Provider(provider).id_field)
        return self._first(select(User).where(column == str(provider_id)).order_by(User.id))

    def create(self, *, email=None, name=None, password_hash=None, avatar_url=None,
               google_id=None, facebook_id=None, apple_id=None) -> UserRecord:
        email = _clean_email(email)
        _check_credentials(password_hash, google_id, facebook_id, apple_id, email)

        user = User(
            email=email,
            username=email,
            name=name,
            password_hash=password_hash,
            avatar_url=avatar_url,
            google_id=google_id,
            facebook_id=facebook_id,
            apple_id=apple_id,
        )
        try:
            self.db.add(user)
            self.db.commit()
        except SQLIntegrityError as e:
            self.db.rollback()
            db_logger.warning("Duplicate email on insert", context="users", email=email)
            raise ConflictError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            db_logger.error("User insert failed", context="users", error=str(e))
            raise IntegrityError("User store unavailable") from e

        self.db.refresh(user)
        return UserRecord.model_validate(user)

    def update(self, user_id: int, **changes) -> Optional[UserRecord]:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        if "email" in changes:
            changes["email"] = _clean_email(changes["email"])

        try:
            user = self.db.get(User, user_id)
            if user is None:
                return None
            for field, value in changes.items():
                setattr(user, field, value)
            self.db.commit()
        except SQLIntegrityError as e:
            self.db.rollback()
            raise ConflictError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            db_logger.error("User update failed", context="users", user_id=user_id, error=str(e))
            raise IntegrityError("User store unavailable") from e

        self.db.refresh(user)
        return UserRecord.model_validate(user)

    def delete_by_provider_id(self, provider: Provider, provider_id: str) -> int:
        if not provider_id:
            return 0
        column = getattr(User, Provider(provider).id_field)
        try:
            users = self.db.execute(select(User).where(column == str(provider_id))).scalars().all()
            for user in users:
                self.db.delete(user)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            db_logger.error("User delete failed", context="users", provider=Provider(provider).value, error=str(e))
            raise IntegrityError("User store unavailable") from e
        return len(users)


_memory_repository: Optional[InMemoryUserRepository] = None


def get_memory_repository() -> InMemoryUserRepository:
    """Process-wide in-memory store."""
    global _memory_repository
    if _memory_repository is None:
        _memory_repository = InMemoryUserRepository()
    return _memory_repository
