"""
User Service Database Models

SQLAlchemy models for the store of record.
"""

from datetime import datetime, timezone
from typing import Optional
import uuid

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..constants import MAX_USER_ID_LENGTH, MAX_USER_NAME_LENGTH, get_current_timestamp
from ..domain.users.entities import User


def generate_user_id() -> str:
    """Generate a new user id."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Canonical Base class for all database models."""

    pass


class UserRecord(Base):
    """User row. ``created_at`` is written on insert only."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(MAX_USER_ID_LENGTH), primary_key=True, default=generate_user_id
    )
    name: Mapped[Optional[str]] = mapped_column(
        String(MAX_USER_NAME_LENGTH), nullable=True
    )
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=get_current_timestamp, nullable=False
    )

    def to_entity(self) -> User:
        """Convert to the domain entity, normalizing naive timestamps to UTC."""
        created_at = self.created_at
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return User(id=self.id, name=self.name, age=self.age, created_at=created_at)

    def __repr__(self) -> str:
        return f"<UserRecord(id={self.id}, name={self.name})>"
