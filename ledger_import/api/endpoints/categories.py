"""Category and categorization rule REST endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ledger_import.api.dependencies import get_category_service, get_rule_service
from ledger_import.api.errors import map_service_error
from ledger_import.schemas.rules import CategorizationRule, CategorizationRuleCreate, CategoryCreate, CategoryRead
from ledger_import.services.category_service import CategoryService
from ledger_import.services.exceptions import ServiceError
from ledger_import.services.rule_service import RuleService

router = APIRouter(prefix="/users/{user_id}", tags=["categories"])


@router.post("/categories", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
def create_category(
    payload: CategoryCreate,
    service: CategoryService = Depends(get_category_service),
) -> CategoryRead:
    try:
        return service.create(payload)
    except ServiceError as exc:
        raise map_service_error(exc) from exc


@router.get("/categories", response_model=list[CategoryRead])
def list_categories(service: CategoryService = Depends(get_category_service)) -> list[CategoryRead]:
    return service.list()


@router.post("/rules", response_model=CategorizationRule, status_code=status.HTTP_201_CREATED)
def create_rule(
    payload: CategorizationRuleCreate,
    service: RuleService = Depends(get_rule_service),
) -> CategorizationRule:
    """Create a categorization rule; lower priority values run first."""

    try:
        return service.create(payload)
    except ServiceError as exc:
        raise map_service_error(exc) from exc


@router.get("/rules", response_model=list[CategorizationRule])
def list_rules(service: RuleService = Depends(get_rule_service)) -> list[CategorizationRule]:
    return service.list()
