"""Repository handling idempotency key persistence."""
from __future__ import annotations

from sqlalchemy import select

from ledger_import.core.user import UserContext
from ledger_import.db.models import IdempotencyKey

from .base import UserScopedRepository


class IdempotencyRepository(UserScopedRepository[IdempotencyKey]):
    """Persist and retrieve idempotency key usages."""

    model = IdempotencyKey

    def get_key(self, user: UserContext, endpoint: str, key: str) -> IdempotencyKey | None:
        statement = (
            select(self.model)
            .where(self.model.user_id == user.user_id)
            .where(self.model.endpoint == endpoint)
            .where(self.model.key == key)
        )
        return self.session.scalar(statement)
