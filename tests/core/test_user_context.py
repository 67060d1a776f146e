"""Unit tests for user context utilities."""
from __future__ import annotations

import dataclasses

import pytest
from sqlalchemy.orm import Session

from ledger_import.core.user import UserContext, UserNotFoundError, load_user_context
from ledger_import.db.models import User


def test_user_context_is_immutable() -> None:
    context = UserContext(user_id="user-123", user_name="Ana")

    with pytest.raises(dataclasses.FrozenInstanceError):
        context.user_id = "user-999"  # type: ignore[misc]


def test_load_user_context_returns_bound_context(session: Session) -> None:
    user = User(name="Bruno")
    session.add(user)
    session.commit()

    context = load_user_context(session, user.id)

    assert context.user_id == str(user.id)
    assert context.user_name == "Bruno"


def test_load_user_context_missing_user_raises(session: Session) -> None:
    with pytest.raises(UserNotFoundError):
        load_user_context(session, "non-existent-user")
