"""Collaborators the import pipeline is wired with."""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Protocol

from .models import AccountRef, CategoryRef, CommitBatch
from .pdf_parser import PdfTextExtractor
from .rules import RuleLike

if TYPE_CHECKING:
    from ledger_import.schemas.imports import ImportCommitReport

__all__ = ["ImportObserver", "ImportStorage", "PdfTextExtractor", "RulesSource"]


class ImportStorage(Protocol):
    """Persistence used by an import run. ``commit_batch`` is all-or-nothing."""

    def find_fingerprints(self, user_id: str, fingerprints: Iterable[str]) -> set[str]:
        ...

    def commit_batch(self, user_id: str, batch: CommitBatch) -> str:
        ...

    def list_accounts(self, user_id: str) -> Sequence[AccountRef]:
        ...

    def list_categories(self, user_id: str) -> Sequence[CategoryRef]:
        ...


class RulesSource(Protocol):
    def list_enabled_rules(self, user_id: str) -> Sequence[RuleLike]:
        ...


class ImportObserver(Protocol):
    def on_import_completed(self, user_id: str, report: "ImportCommitReport") -> None:
        ...
