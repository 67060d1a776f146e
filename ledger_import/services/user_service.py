"""User service handling CRUD operations."""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_import.repositories.user import UserRepository
from ledger_import.schemas.user import UserCreate, UserRead

from .exceptions import ConflictError, NotFoundError


class UserService:
    """Service responsible for user lifecycle actions."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session)

    def create(self, payload: UserCreate) -> UserRead:
        user = self.users.model(name=payload.name)
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("User name already exists") from exc
        self.session.refresh(user)
        return UserRead.model_validate(user)

    def list(self) -> list[UserRead]:
        return [UserRead.model_validate(row) for row in self.users.list()]

    def get(self, user_id: str) -> UserRead:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return UserRead.model_validate(user)
