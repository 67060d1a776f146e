"""Categorization rule management for a single user."""
from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_import.core.user import UserContext
from ledger_import.db.models import RuleMatchKind
from ledger_import.imports.rules import compile_rule_pattern
from ledger_import.repositories.account import AccountRepository
from ledger_import.repositories.category import CategoryRepository
from ledger_import.repositories.rule import RuleRepository
from ledger_import.repositories.storage import to_rule
from ledger_import.schemas.rules import CategorizationRule, CategorizationRuleCreate, RuleMatchType

from .exceptions import NotFoundError, ValidationError


class RuleService:
    def __init__(self, session: Session, user: UserContext) -> None:
        self.session = session
        self.user = user
        self.rules = RuleRepository(session)
        self.categories = CategoryRepository(session)
        self.accounts = AccountRepository(session)

    def create(self, payload: CategorizationRuleCreate) -> CategorizationRule:
        if self.categories.get_for_user(self.user, payload.category_id) is None:
            raise NotFoundError("Category not found")
        if payload.account_id and self.accounts.get_for_user(self.user, payload.account_id) is None:
            raise NotFoundError("Account not found")
        if payload.match_type is RuleMatchType.REGEX and compile_rule_pattern(payload.pattern) is None:
            raise ValidationError("Rule pattern is not a valid regular expression")

        data = payload.model_dump()
        data["match_type"] = RuleMatchKind(payload.match_type.value)
        record = self.rules.model(user_id=self.user.user_id, **data)
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return to_rule(record)

    def list(self) -> list[CategorizationRule]:
        """All rules, enabled or not, in evaluation order."""

        return [to_rule(record) for record in self.rules.list_ordered_for_user(self.user.user_id)]
