"""SQLAlchemy Declarative base and the mixins shared by ledger tables."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

UUID_STR = String(36)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return cls.__name__.lower()


class TimestampMixin:
    """Mixin adding a UTC creation timestamp."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class UserScopedMixin(TimestampMixin):
    """Mixin for entities owned by one user; rows go away with their user."""

    user_id: Mapped[str] = mapped_column(UUID_STR, ForeignKey("user.id", ondelete="cascade"), nullable=False, index=True)
