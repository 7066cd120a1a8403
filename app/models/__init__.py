"""Database models."""

# Import all models here to ensure they're recognized by SQLAlchemy
from app.models.user import User

__all__ = [
    "User",
]
