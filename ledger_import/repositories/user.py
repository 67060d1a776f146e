"""Repository for user entities."""
from __future__ import annotations

from sqlalchemy import select

from ledger_import.db.models import User

from .base import Repository


class UserRepository(Repository[User]):
    """User repository with simple CRUD helpers."""

    model = User

    def get_by_name(self, name: str) -> User | None:
        return self.session.scalar(select(self.model).where(self.model.name == name))
