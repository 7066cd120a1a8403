from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base_class import Base


class User(Base):
    __tablename__ = "users"
    # AUTOINCREMENT keeps SQLite from handing out ids of deleted rows again
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), unique=True, index=True, nullable=True)  # Null for email-less social logins
    username = Column(String(320), index=True, nullable=True)  # Legacy alias of email
    name = Column(String(120), nullable=True)
    password_hash = Column(String, nullable=True)  # Null for social-only accounts
    avatar_url = Column(String, nullable=True)
    google_id = Column(String, index=True, nullable=True)
    facebook_id = Column(String, index=True, nullable=True)
    apple_id = Column(String, index=True, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
