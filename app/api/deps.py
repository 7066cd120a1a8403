"""
API dependency injection module.

Provides the user store selected by settings.USER_STORE and the
session-based current-user lookups.
"""

from typing import Generator, Optional

from fastapi import Depends, HTTPException, Request, status

from app.core.config import settings
from app.db.session import SessionLocal
from app.repositories.user_repo import SqlUserRepository, UserRepository, get_memory_repository
from app.schemas.user import UserRecord

SESSION_USER_KEY = "user_id"


def get_repo() -> Generator[UserRepository, None, None]:
    """Yield the configured user store for one request."""
    if settings.USER_STORE == "sql":
        db = SessionLocal()
        try:
            yield SqlUserRepository(db)
        finally:
            db.close()
    else:
        yield get_memory_repository()


def login_session(request: Request, user: UserRecord) -> None:
    """Start a fresh session for the user, keeping only a pending returnTo."""
    return_to = request.session.get("return_to")
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id
    if return_to:
        request.session["return_to"] = return_to


def get_optional_user(
    request: Request, repo: UserRepository = Depends(get_repo)
) -> Optional[UserRecord]:
    user_id = request.session.get(SESSION_USER_KEY)
    if user_id is None:
        return None
    user = repo.find_by_id(user_id)
    if user is None:
        # Account was deleted while the session was alive
        request.session.clear()
    return user


def get_current_user(user: Optional[UserRecord] = Depends(get_optional_user)) -> UserRecord:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user
