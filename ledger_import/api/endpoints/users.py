"""User-related REST endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ledger_import.api.dependencies import get_user_service
from ledger_import.api.errors import map_service_error
from ledger_import.schemas.user import UserCreate, UserRead
from ledger_import.services.exceptions import ServiceError
from ledger_import.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    service: UserService = Depends(get_user_service),
) -> UserRead:
    """Create a new user."""

    try:
        return service.create(payload)
    except ServiceError as exc:
        raise map_service_error(exc) from exc


@router.get("", response_model=list[UserRead])
def list_users(
    service: UserService = Depends(get_user_service),
) -> list[UserRead]:
    """List available users."""

    return service.list()
