"""Repository for account entities."""
from __future__ import annotations

from sqlalchemy import select

from ledger_import.core.user import UserContext
from ledger_import.db.models import Account

from .base import UserScopedRepository


class AccountRepository(UserScopedRepository[Account]):
    model = Account

    def list_all_for_user(self, user_id: str) -> list[Account]:
        statement = select(self.model).where(self.model.user_id == user_id).order_by(self.model.created_at)
        return list(self.session.scalars(statement).all())

    def get_by_name(self, user: UserContext, name: str) -> Account | None:
        statement = (
            select(self.model)
            .where(self.model.user_id == user.user_id)
            .where(self.model.name == name)
        )
        return self.session.scalar(statement)
