"""Repository for categorization rules."""
from __future__ import annotations

from sqlalchemy import select

from ledger_import.db.models import CategorizationRuleRecord

from .base import UserScopedRepository


class RuleRepository(UserScopedRepository[CategorizationRuleRecord]):
    model = CategorizationRuleRecord

    def list_enabled_for_user(self, user_id: str) -> list[CategorizationRuleRecord]:
        """Enabled rules in creation order; the rule engine applies priority ordering."""

        statement = (
            select(self.model)
            .where(self.model.user_id == user_id)
            .where(self.model.enabled.is_(True))
            .order_by(self.model.created_at)
        )
        return list(self.session.scalars(statement).all())

    def list_ordered_for_user(self, user_id: str) -> list[CategorizationRuleRecord]:
        statement = (
            select(self.model)
            .where(self.model.user_id == user_id)
            .order_by(self.model.priority, self.model.created_at)
        )
        return list(self.session.scalars(statement).all())
