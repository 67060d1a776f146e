"""Account service for a single user."""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_import.core.user import UserContext
from ledger_import.repositories.account import AccountRepository
from ledger_import.schemas.account import AccountCreate, AccountRead

from .exceptions import ConflictError, NotFoundError, ValidationError


class AccountService:
    def __init__(self, session: Session, user: UserContext) -> None:
        self.session = session
        self.user = user
        self.accounts = AccountRepository(session)

    def create(self, payload: AccountCreate) -> AccountRead:
        if payload.parent_account_id is not None:
            parent = self.accounts.get_for_user(self.user, payload.parent_account_id)
            if parent is None:
                raise NotFoundError("Parent account not found")
            if parent.type == payload.type:
                raise ValidationError("Parent account must be of a different type")

        account = self.accounts.model(user_id=self.user.user_id, **payload.model_dump())
        self.session.add(account)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("Account name already exists") from exc
        self.session.refresh(account)
        return AccountRead.model_validate(account)

    def list(self, offset: int = 0, limit: int = 100) -> list[AccountRead]:
        rows = self.accounts.list_for_user(self.user, offset=offset, limit=limit)
        return [AccountRead.model_validate(row) for row in rows]
