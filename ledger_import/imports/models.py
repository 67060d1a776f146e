"""Value types flowing through the statement import pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

SOURCE_TYPES = ("csv", "ofx", "pdf")


class DocumentType(str, Enum):
    """Kind of statement a document represents."""

    BANK_STATEMENT = "bank_statement"
    CREDIT_CARD_INVOICE = "credit_card_invoice"
    UNKNOWN = "unknown"


class RowStatus(str, Enum):
    OK = "ok"
    IGNORED = "ignored"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class RawImportDocument:
    """Uploaded file plus the caller's declared source type and hints."""

    content: bytes
    source_type: str
    account_id: str | None = None
    file_name: str | None = None


@dataclass(slots=True, frozen=True)
class DocumentClassification:
    """Detected document type and issuer profile with a confidence score."""

    document_type: DocumentType
    issuer_profile: str = "unknown"
    score: float = 1.0

    @property
    def confidence_label(self) -> str:
        if self.score >= 0.8:
            return "high"
        if self.score >= 0.55:
            return "medium"
        return "low"


@dataclass(slots=True, frozen=True)
class InstallmentInfo:
    """An "installment N of M" marker found in a description."""

    current_installment: int
    total_installments: int
    remaining_installments: int
    marker: str
    base_description: str
    normalized_base_description: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "current_installment": self.current_installment,
            "total_installments": self.total_installments,
            "remaining_installments": self.remaining_installments,
            "marker": self.marker,
            "base_description": self.base_description,
            "normalized_base_description": self.normalized_base_description,
        }


@dataclass(slots=True)
class ParsedDraftTransaction:
    """One statement line as produced by a parser.

    Positive amounts are credits/income and negative amounts are debits/expenses,
    whatever the source format.
    """

    date: datetime
    description: str
    normalized_description: str
    amount: float
    external_id: str | None = None
    raw: dict[str, str] = field(default_factory=dict)
    balance_after: float | None = None
    account_hint: str | None = None
    account_id: str | None = None
    category_id: str | None = None
    transfer_to_account_id: str | None = None
    document_type: DocumentType | None = None
    installment: InstallmentInfo | None = None

    @property
    def type(self) -> str:
        return "income" if self.amount >= 0 else "expense"


@dataclass(slots=True)
class RowDiagnostic:
    """Per-row outcome surfaced to the user for correction."""

    line: int
    status: RowStatus
    reason: str
    message: str
    raw: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ParseSummary:
    total_rows: int = 0
    valid_rows: int = 0
    ignored_rows: int = 0
    error_rows: int = 0
    reasons: dict[str, int] = field(default_factory=dict)

    def record(self, diagnostic: RowDiagnostic) -> None:
        self.total_rows += 1
        if diagnostic.status is RowStatus.OK:
            self.valid_rows += 1
        elif diagnostic.status is RowStatus.IGNORED:
            self.ignored_rows += 1
        else:
            self.error_rows += 1
        self.reasons[diagnostic.reason] = self.reasons.get(diagnostic.reason, 0) + 1


@dataclass(slots=True)
class ParseOutcome:
    """Result of the parsing stage for any source type."""

    source_type: str
    transactions: list[ParsedDraftTransaction]
    diagnostics: list[RowDiagnostic]
    summary: ParseSummary
    classification: DocumentClassification
    account_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class AccountRef:
    """Read-only view of a user account used for routing rows."""

    id: str
    name: str
    type: str
    institution: str | None = None
    parent_account_id: str | None = None


@dataclass(slots=True, frozen=True)
class CategoryRef:
    id: str
    name: str


@dataclass(slots=True)
class TransactionRecord:
    """A normalized transaction ready to be persisted."""

    account_id: str
    date: datetime
    description: str
    normalized_description: str
    amount: float
    imported_hash: str
    external_id: str | None = None
    category_id: str | None = None
    category_source: str = "none"
    transfer_group_id: str | None = None
    transfer_peer_account_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        if self.transfer_group_id:
            return "transfer"
        return "income" if self.amount >= 0 else "expense"


@dataclass(slots=True)
class CommitBatch:
    """Everything a single atomic storage commit receives."""

    source_type: str
    file_name: str | None
    transactions: list[TransactionRecord]
    summary: dict[str, Any] = field(default_factory=dict)
