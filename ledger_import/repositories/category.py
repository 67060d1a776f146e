"""Repository for category entities."""
from __future__ import annotations

from sqlalchemy import select

from ledger_import.db.models import Category

from .base import UserScopedRepository


class CategoryRepository(UserScopedRepository[Category]):
    model = Category

    def list_all_for_user(self, user_id: str) -> list[Category]:
        statement = select(self.model).where(self.model.user_id == user_id).order_by(self.model.name)
        return list(self.session.scalars(statement).all())
