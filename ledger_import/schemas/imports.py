"""Schemas for statement import previews and commit reports."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class RowDiagnosticRead(BaseModel):
    """Outcome of a single parsed row."""

    line: int
    status: str
    reason: str
    message: str
    raw: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True, frozen=True)


class DuplicateDetails(BaseModel):
    in_database: int = 0
    in_payload: int = 0

    model_config = ConfigDict(frozen=True)


class InvalidDetails(BaseModel):
    """Breakdown of ``invalid_rows`` by cause; the fields add up to ``invalid_rows``."""

    missing_account: int = 0
    invalid_row: int = 0
    invalid_date: int = 0
    invalid_transfer: int = 0
    credit_invoice_not_routed: int = 0

    model_config = ConfigDict(frozen=True)


class ImportedRange(BaseModel):
    start: datetime | None = None
    end: datetime | None = None

    model_config = ConfigDict(frozen=True)


class ImportCommitReport(BaseModel):
    """Summary emitted once at the end of an import run.

    Every parsed row is counted in exactly one of ``imported``, ``duplicates``,
    ``invalid_rows``, ``error_rows`` or ``ignored_rows``.
    """

    batch_id: str | None = None
    total_rows: int = 0
    valid_rows: int = 0
    ignored_rows: int = 0
    error_rows: int = 0
    imported: int = 0
    skipped: int = 0
    duplicates: int = 0
    invalid_rows: int = 0
    records_created: int = 0
    categorized: int = 0
    transfer_created: int = 0
    card_payment_detected: int = 0
    card_payment_not_converted: int = 0
    skipped_card_payment_lines: int = 0
    credit_invoice_rows_reassigned: int = 0
    duplicate_details: DuplicateDetails = Field(default_factory=DuplicateDetails)
    invalid_details: InvalidDetails = Field(default_factory=InvalidDetails)
    imported_range: ImportedRange = Field(default_factory=ImportedRange)
    document_type: str | None = None
    issuer_profile: str | None = None
    warnings: list[str] = Field(default_factory=list)
    diagnostics: list[RowDiagnosticRead] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class DocumentClassificationRead(BaseModel):
    document_type: str
    issuer_profile: str
    score: float = Field(ge=0, le=1)
    confidence: str

    model_config = ConfigDict(frozen=True)


class DraftTransactionRead(BaseModel):
    """A parsed row shown in the import preview."""

    date: datetime
    description: str
    normalized_description: str
    amount: float
    type: str
    external_id: str | None = None
    balance_after: float | None = None
    account_hint: str | None = None
    document_type: str | None = None
    installment: dict[str, Any] | None = None

    @field_serializer("date")
    def _serialize_date(self, value: datetime) -> str:
        return value.date().isoformat()


class ImportPreviewResponse(BaseModel):
    """Parse-only result: drafts plus everything needed to review them."""

    source_type: str
    classification: DocumentClassificationRead
    summary: dict[str, Any]
    transactions: list[DraftTransactionRead]
    diagnostics: list[RowDiagnosticRead]
    metadata: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
