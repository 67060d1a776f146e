"""Repository for booked transactions."""
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select

from ledger_import.db.models import Transaction

from .base import UserScopedRepository

LOOKUP_CHUNK_SIZE = 500


class TransactionRepository(UserScopedRepository[Transaction]):
    model = Transaction

    def find_imported_hashes(self, user_id: str, hashes: Iterable[str]) -> set[str]:
        """Return the subset of ``hashes`` already stored for the user."""

        unique = sorted({value for value in hashes if value})
        found: set[str] = set()
        for start in range(0, len(unique), LOOKUP_CHUNK_SIZE):
            chunk = unique[start : start + LOOKUP_CHUNK_SIZE]
            statement = (
                select(self.model.imported_hash)
                .where(self.model.user_id == user_id)
                .where(self.model.imported_hash.in_(chunk))
            )
            found.update(self.session.scalars(statement).all())
        return found
