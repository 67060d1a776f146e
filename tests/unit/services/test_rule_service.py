"""Unit tests for category and rule management."""
from __future__ import annotations

import pytest

from ledger_import.core.user import UserContext
from ledger_import.schemas import AccountCreate, CategorizationRuleCreate, CategoryCreate, RuleMatchType
from ledger_import.services.account_service import AccountService
from ledger_import.services.category_service import CategoryService
from ledger_import.services.exceptions import ConflictError, NotFoundError, ValidationError
from ledger_import.services.rule_service import RuleService


def test_category_create_and_list(session, user_context: UserContext) -> None:
    service = CategoryService(session, user_context)

    service.create(CategoryCreate(name="  Mercado "))
    service.create(CategoryCreate(name="Alimentação"))

    assert [category.name for category in service.list()] == ["Alimentação", "Mercado"]


def test_category_duplicate_conflicts(session, user_context: UserContext) -> None:
    service = CategoryService(session, user_context)
    service.create(CategoryCreate(name="Mercado"))

    with pytest.raises(ConflictError):
        service.create(CategoryCreate(name="Mercado"))


def test_rule_create_and_list_in_priority_order(session, user_context: UserContext) -> None:
    category = CategoryService(session, user_context).create(CategoryCreate(name="Transporte"))
    service = RuleService(session, user_context)

    service.create(CategorizationRuleCreate(name="Posto", priority=20, pattern="posto", category_id=category.id))
    created = service.create(
        CategorizationRuleCreate(
            name="Uber",
            priority=10,
            match_type=RuleMatchType.REGEX,
            pattern=r"^uber\s",
            enabled=False,
            category_id=category.id,
        )
    )

    assert created.match_type is RuleMatchType.REGEX
    assert created.user_id == user_context.user_id
    assert [rule.name for rule in service.list()] == ["Uber", "Posto"]


def test_rule_requires_owned_category(session, user_context: UserContext) -> None:
    with pytest.raises(NotFoundError):
        RuleService(session, user_context).create(
            CategorizationRuleCreate(name="X", pattern="x", category_id="missing")
        )


def test_rule_requires_owned_account(session, user_context: UserContext) -> None:
    category = CategoryService(session, user_context).create(CategoryCreate(name="Mercado"))

    with pytest.raises(NotFoundError):
        RuleService(session, user_context).create(
            CategorizationRuleCreate(name="X", pattern="x", account_id="missing", category_id=category.id)
        )


def test_rule_scoped_to_account(session, user_context: UserContext) -> None:
    category = CategoryService(session, user_context).create(CategoryCreate(name="Mercado"))
    account = AccountService(session, user_context).create(AccountCreate(name="Conta"))

    rule = RuleService(session, user_context).create(
        CategorizationRuleCreate(name="X", pattern="x", account_id=account.id, category_id=category.id)
    )

    assert rule.account_id == account.id


def test_rule_rejects_invalid_regex(session, user_context: UserContext) -> None:
    category = CategoryService(session, user_context).create(CategoryCreate(name="Mercado"))

    with pytest.raises(ValidationError):
        RuleService(session, user_context).create(
            CategorizationRuleCreate(
                name="Broken", match_type=RuleMatchType.REGEX, pattern="([", category_id=category.id
            )
        )


def test_rule_payload_rejects_inverted_amount_bounds() -> None:
    with pytest.raises(ValueError):
        CategorizationRuleCreate(name="X", pattern="x", category_id="c", min_amount=50, max_amount=10)
