"""Repository abstractions for database access."""
from __future__ import annotations

from typing import Generic, Sequence, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from ledger_import.db.base import Base
from ledger_import.core.user import UserContext

ModelT = TypeVar("ModelT", bound=Base)


class Repository(Generic[ModelT]):
    """Base repository providing CRUD convenience helpers."""

    model: type[ModelT]

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, instance: ModelT) -> ModelT:
        self.session.add(instance)
        return instance

    def get(self, obj_id: str) -> ModelT | None:
        statement = self._base_query().where(self.model.id == obj_id)  # type: ignore[attr-defined]
        return self.session.scalar(statement)

    def list(self, offset: int = 0, limit: int = 100) -> Sequence[ModelT]:
        statement = self._base_query().offset(offset).limit(limit)
        return self.session.scalars(statement).all()

    def _base_query(self) -> Select[tuple[ModelT]]:
        return select(self.model)


class UserScopedRepository(Repository[ModelT]):
    """Repository enforcing per-user filtering."""

    def get_for_user(self, user: UserContext, obj_id: str) -> ModelT | None:
        statement = (
            self._base_query()
            .where(self.model.id == obj_id)  # type: ignore[attr-defined]
            .where(self.model.user_id == user.user_id)  # type: ignore[attr-defined]
        )
        return self.session.scalar(statement)

    def list_for_user(
        self,
        user: UserContext,
        offset: int = 0,
        limit: int = 100,
    ) -> Sequence[ModelT]:
        statement = (
            self._base_query()
            .where(self.model.user_id == user.user_id)  # type: ignore[attr-defined]
            .offset(offset)
            .limit(limit)
        )
        return self.session.scalars(statement).all()
