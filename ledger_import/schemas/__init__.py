"""Pydantic schemas exposed by the API layer."""
from .account import AccountCreate, AccountRead
from .imports import (
    DocumentClassificationRead,
    DraftTransactionRead,
    DuplicateDetails,
    ImportCommitReport,
    ImportedRange,
    ImportPreviewResponse,
    InvalidDetails,
    RowDiagnosticRead,
)
from .rules import (
    CategorizationRule,
    CategorizationRuleCreate,
    CategoryCreate,
    CategoryRead,
    RuleMatchType,
)
from .user import UserCreate, UserRead

__all__ = [
    "AccountCreate",
    "AccountRead",
    "CategorizationRule",
    "CategorizationRuleCreate",
    "CategoryCreate",
    "CategoryRead",
    "DocumentClassificationRead",
    "DraftTransactionRead",
    "DuplicateDetails",
    "ImportCommitReport",
    "ImportedRange",
    "ImportPreviewResponse",
    "InvalidDetails",
    "RowDiagnosticRead",
    "RuleMatchType",
    "UserCreate",
    "UserRead",
]
