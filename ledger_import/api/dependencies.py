"""FastAPI dependency utilities for user-scoped access."""
from __future__ import annotations

from uuid import UUID

from fastapi import Depends, HTTPException, Path, status
from sqlalchemy.orm import Session

from ledger_import.core.database import get_db_session
from ledger_import.core.settings import Settings, get_settings
from ledger_import.core.user import UserContext, UserNotFoundError, load_user_context
from ledger_import.services.account_service import AccountService
from ledger_import.services.category_service import CategoryService
from ledger_import.services.import_service import ImportService
from ledger_import.services.rule_service import RuleService
from ledger_import.services.user_service import UserService


def user_id_path(user_id: UUID = Path(..., description="User identifier")) -> str:
    """Validate user identifier extracted from path."""

    return str(user_id)


def get_user_context(
    user_id: str = Depends(user_id_path),
    session: Session = Depends(get_db_session),
) -> UserContext:
    """Resolve a user context for the request."""

    try:
        return load_user_context(session, user_id)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


def get_user_service(session: Session = Depends(get_db_session)) -> UserService:
    return UserService(session)


def get_account_service(
    user: UserContext = Depends(get_user_context),
    session: Session = Depends(get_db_session),
) -> AccountService:
    return AccountService(session, user)


def get_category_service(
    user: UserContext = Depends(get_user_context),
    session: Session = Depends(get_db_session),
) -> CategoryService:
    return CategoryService(session, user)


def get_rule_service(
    user: UserContext = Depends(get_user_context),
    session: Session = Depends(get_db_session),
) -> RuleService:
    return RuleService(session, user)


def get_import_service(
    user: UserContext = Depends(get_user_context),
    session: Session = Depends(get_db_session),
    settings: Settings = Depends(get_settings),
) -> ImportService:
    """Provide import service bound to user context; PDFs use the default pdfplumber extractor."""

    return ImportService(session, user, settings=settings)
