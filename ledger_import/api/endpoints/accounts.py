"""Account REST endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from ledger_import.api.dependencies import get_account_service
from ledger_import.api.errors import map_service_error
from ledger_import.schemas.account import AccountCreate, AccountRead
from ledger_import.services.account_service import AccountService
from ledger_import.services.exceptions import ServiceError

router = APIRouter(prefix="/users/{user_id}/accounts", tags=["accounts"])


@router.post("", response_model=AccountRead, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: AccountCreate,
    service: AccountService = Depends(get_account_service),
) -> AccountRead:
    """Create an account for the user."""

    try:
        return service.create(payload)
    except ServiceError as exc:
        raise map_service_error(exc) from exc


@router.get("", response_model=list[AccountRead])
def list_accounts(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    service: AccountService = Depends(get_account_service),
) -> list[AccountRead]:
    return service.list(offset=offset, limit=limit)
