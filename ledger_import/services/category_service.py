"""Category service for a single user."""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_import.core.user import UserContext
from ledger_import.repositories.category import CategoryRepository
from ledger_import.schemas.rules import CategoryCreate, CategoryRead

from .exceptions import ConflictError


class CategoryService:
    def __init__(self, session: Session, user: UserContext) -> None:
        self.session = session
        self.user = user
        self.categories = CategoryRepository(session)

    def create(self, payload: CategoryCreate) -> CategoryRead:
        category = self.categories.model(user_id=self.user.user_id, name=payload.name.strip())
        self.session.add(category)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("Category name already exists") from exc
        self.session.refresh(category)
        return CategoryRead.model_validate(category)

    def list(self) -> list[CategoryRead]:
        return [CategoryRead.model_validate(row) for row in self.categories.list_all_for_user(self.user.user_id)]
