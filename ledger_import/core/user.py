"""User context utilities keeping every query scoped to one owner."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from ledger_import.db.models import User


class UserAccessError(RuntimeError):
    """Base error for user access violations."""


class UserNotFoundError(UserAccessError):
    """Raised when a user cannot be located."""


@dataclass(slots=True, frozen=True)
class UserContext:
    """Runtime context binding operations to a specific user."""

    user_id: str
    user_name: str


def load_user_context(session: Session, user_id: str) -> UserContext:
    """Load a user from persistence and return a context wrapper."""

    user = session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")
    return UserContext(user_id=str(user.id), user_name=user.name)
