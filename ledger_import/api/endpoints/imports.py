"""Statement import REST endpoints; the request body is the raw file."""
from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Header, Query, status

from ledger_import.api.dependencies import get_import_service
from ledger_import.api.errors import map_service_error
from ledger_import.schemas.imports import ImportCommitReport, ImportPreviewResponse
from ledger_import.services.exceptions import ServiceError
from ledger_import.services.import_service import ImportService

router = APIRouter(prefix="/users/{user_id}/imports", tags=["imports"])

RAW_FILE = Body(..., media_type="application/octet-stream")


@router.post("/parse", response_model=ImportPreviewResponse, status_code=status.HTTP_200_OK)
def parse_import(
    content: bytes = RAW_FILE,
    source_type: str = Query(..., description="csv, ofx or pdf"),
    file_name: str | None = Query(default=None, max_length=255),
    service: ImportService = Depends(get_import_service),
) -> ImportPreviewResponse:
    """Parse a statement and return drafts and diagnostics without saving anything."""

    try:
        return service.preview(content, source_type, file_name)
    except ServiceError as exc:
        raise map_service_error(exc) from exc


@router.post("", response_model=ImportCommitReport, status_code=status.HTTP_200_OK)
def commit_import(
    content: bytes = RAW_FILE,
    source_type: str = Query(..., description="csv, ofx or pdf"),
    file_name: str | None = Query(default=None, max_length=255),
    default_account_id: str | None = Query(default=None),
    card_payment_target_account_id: str | None = Query(default=None),
    apply_rules: bool = Query(default=True),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    service: ImportService = Depends(get_import_service),
) -> ImportCommitReport:
    """Import a statement with idempotency protection."""

    try:
        return service.import_document(
            content,
            source_type,
            idempotency_key,
            file_name=file_name,
            default_account_id=default_account_id,
            apply_rules=apply_rules,
            card_payment_target_account_id=card_payment_target_account_id,
        )
    except ServiceError as exc:
        raise map_service_error(exc) from exc
