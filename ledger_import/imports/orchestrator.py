"""Import run state machine: parse, normalize, dedupe, categorize, reconcile, commit."""
from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from ledger_import.core.settings import Settings, get_settings
from ledger_import.schemas.imports import (
    DuplicateDetails,
    ImportCommitReport,
    ImportedRange,
    InvalidDetails,
    RowDiagnosticRead,
)
from ledger_import.services.exceptions import (
    CommitFailedError,
    ImportFailedError,
    InvalidAmountError,
    InvalidDateError,
    RowError,
    ValidationError,
)

from .csv_parser import CsvMapping
from .fingerprints import create_imported_hash
from .installments import extract_installment_info
from .models import (
    AccountRef,
    CommitBatch,
    InstallmentInfo,
    ParsedDraftTransaction,
    ParseOutcome,
    RawImportDocument,
    TransactionRecord,
)
from .normalizer import normalize_description, parse_flexible_date
from .ports import ImportObserver, ImportStorage, PdfTextExtractor, RulesSource
from .reconciliation import (
    AccountDirectory,
    TransferPlan,
    build_transfer_pair,
    is_card_payment,
    is_credit_card_invoice,
    plan_transfer,
    should_skip_card_payment_line,
)
from .registry import ParserContext, parse_document
from .rules import CategorizationResult, RuleCandidate, categorize_row
from .text import build_merchant_key

logger = logging.getLogger(__name__)


class ImportStage(str, Enum):
    PARSING = "parsing"
    NORMALIZING = "normalizing"
    DEDUPLICATING = "deduplicating"
    CATEGORIZING = "categorizing"
    RECONCILING = "reconciling"
    COMMITTING = "committing"
    DONE = "done"
    ERROR = "error"


@dataclass(slots=True)
class ImportOptions:
    """Per-run choices; ``None`` flags fall back to the settings defaults."""

    default_account_id: str | None = None
    apply_rules: bool = True
    card_payment_target_account_id: str | None = None
    skip_card_payment_lines: bool | None = None
    convert_card_payments_to_transfer: bool | None = None
    csv_mapping: CsvMapping | None = None
    file_name: str | None = None


@dataclass(slots=True)
class _StagedRow:
    draft: ParsedDraftTransaction
    account: AccountRef
    date: datetime
    description: str
    normalized_description: str
    amount: float
    installment: InstallmentInfo | None = None
    transfer: TransferPlan | None = None
    fingerprint: str | None = None
    category: CategorizationResult | None = None

    @property
    def keys(self) -> list[str]:
        if self.transfer is not None:
            return [self.transfer.out_hash, self.transfer.in_hash]
        return [self.fingerprint] if self.fingerprint else []


@dataclass(slots=True)
class _Counters:
    missing_account: int = 0
    invalid_row: int = 0
    invalid_date: int = 0
    invalid_transfer: int = 0
    credit_invoice_not_routed: int = 0
    credit_invoice_reassigned: int = 0
    skipped_card_payment_lines: int = 0
    card_payment_detected: int = 0
    card_payment_not_converted: int = 0
    duplicates_in_database: int = 0
    duplicates_in_payload: int = 0
    categorized: int = 0
    transfer_created: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def invalid_rows(self) -> int:
        return (
            self.missing_account
            + self.invalid_row
            + self.invalid_date
            + self.invalid_transfer
            + self.credit_invoice_not_routed
        )


class ImportOrchestrator:
    """Runs one statement import for one user against injected collaborators.

    Rows are processed sequentially. Batch-level failures move the run to the
    ERROR stage and re-raise; per-row problems only bump report counters.
    Nothing is written before the COMMITTING stage, and the storage commit is a
    single all-or-nothing call.
    """

    def __init__(
        self,
        storage: ImportStorage,
        rules_source: RulesSource,
        extractor: PdfTextExtractor | None = None,
        observer: ImportObserver | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.storage = storage
        self.rules_source = rules_source
        self.extractor = extractor
        self.observer = observer
        self.settings = settings or get_settings()
        self.stage: ImportStage | None = None

    def _enter(self, stage: ImportStage) -> None:
        logger.debug("Import stage %s -> %s", self.stage.value if self.stage else None, stage.value)
        self.stage = stage

    def parse(self, document: RawImportDocument, options: ImportOptions | None = None) -> ParseOutcome:
        """Run only the parsing stage; used for previews."""

        options = options or ImportOptions()
        self._enter(ImportStage.PARSING)
        context = ParserContext(
            header_scan_rows=self.settings.csv_header_scan_rows,
            mapping_confidence_warning=self.settings.mapping_confidence_warning,
            extractor=self.extractor,
            csv_mapping=options.csv_mapping,
        )
        try:
            outcome = parse_document(document, context)
        except ImportFailedError as exc:
            logger.warning("Import aborted while parsing %s: %s", document.source_type, exc)
            self._enter(ImportStage.ERROR)
            raise
        logger.debug(
            "Parsed %s document: rows=%s valid=%s type=%s issuer=%s",
            outcome.source_type,
            outcome.summary.total_rows,
            outcome.summary.valid_rows,
            outcome.classification.document_type.value,
            outcome.classification.issuer_profile,
        )
        return outcome

    def run(
        self,
        user_id: str,
        document: RawImportDocument,
        options: ImportOptions | None = None,
    ) -> ImportCommitReport:
        """Parse a document and commit its rows, returning the run report."""

        options = options or ImportOptions()
        if options.file_name is None and document.file_name:
            options = replace(options, file_name=document.file_name)
        outcome = self.parse(document, options)
        return self.commit_rows(user_id, outcome.transactions, options, outcome)

    def commit_rows(
        self,
        user_id: str,
        drafts: Sequence[ParsedDraftTransaction],
        options: ImportOptions | None = None,
        outcome: ParseOutcome | None = None,
    ) -> ImportCommitReport:
        """Run every stage after parsing for drafts the caller already holds."""

        options = options or ImportOptions()
        total_rows = outcome.summary.total_rows if outcome else len(drafts)
        if total_rows > self.settings.max_import_rows:
            self._enter(ImportStage.ERROR)
            raise ValidationError(
                f"Import has {total_rows} rows; the limit is {self.settings.max_import_rows}"
            )

        counters = _Counters()
        if outcome is not None:
            counters.warnings.extend(outcome.warnings)

        try:
            self._enter(ImportStage.NORMALIZING)
            staged = self._normalize(user_id, drafts, options, counters)

            self._enter(ImportStage.DEDUPLICATING)
            survivors = self._deduplicate(user_id, staged, outcome, counters)

            self._enter(ImportStage.CATEGORIZING)
            self._categorize(user_id, survivors, options, counters)

            self._enter(ImportStage.RECONCILING)
            records = self._reconcile(survivors, outcome, counters)

            self._enter(ImportStage.COMMITTING)
            batch_id = self._commit(user_id, records, options, outcome, counters)
        except Exception:
            self._enter(ImportStage.ERROR)
            raise

        report = self._build_report(batch_id, drafts, records, survivors, outcome, counters, total_rows)
        self._enter(ImportStage.DONE)
        logger.info(
            "Import committed: user=%s batch=%s total=%s imported=%s duplicates=%s invalid=%s errors=%s ignored=%s",
            user_id,
            batch_id,
            report.total_rows,
            report.imported,
            report.duplicates,
            report.invalid_rows,
            report.error_rows,
            report.ignored_rows,
        )
        self._notify(user_id, report)
        return report

    def _normalize(
        self,
        user_id: str,
        drafts: Sequence[ParsedDraftTransaction],
        options: ImportOptions,
        counters: _Counters,
    ) -> list[_StagedRow]:
        directory = AccountDirectory(self.storage.list_accounts(user_id))
        skip_lines = self._flag(options.skip_card_payment_lines, self.settings.skip_card_payment_lines)
        convert_payments = self._flag(
            options.convert_card_payments_to_transfer, self.settings.convert_card_payments_to_transfer
        )

        staged: list[_StagedRow] = []
        for draft in drafts:
            account = directory.resolve(draft, options.default_account_id)
            if account is None:
                counters.missing_account += 1
                continue

            if is_credit_card_invoice(draft.document_type) and account.type != "credit":
                card = directory.resolve_credit_invoice_account(draft, account, options.default_account_id)
                if card is None:
                    counters.credit_invoice_not_routed += 1
                    continue
                account = card
                counters.credit_invoice_reassigned += 1

            try:
                parsed_date = parse_flexible_date(draft.date)
                amount = float(draft.amount)
                if not math.isfinite(amount):
                    raise InvalidAmountError(f"Amount is not finite: {draft.amount!r}")
            except InvalidDateError:
                counters.invalid_date += 1
                continue
            except (RowError, TypeError, ValueError):
                counters.invalid_row += 1
                continue

            description = " ".join((draft.description or "").split())
            if not description:
                counters.invalid_row += 1
                continue
            normalized = normalize_description(description)

            if should_skip_card_payment_line(account, normalized, skip_lines):
                counters.skipped_card_payment_lines += 1
                continue

            row = _StagedRow(
                draft=draft,
                account=account,
                date=parsed_date,
                description=description,
                normalized_description=normalized,
                amount=round(amount, 2),
                installment=draft.installment or extract_installment_info(description),
            )
            if not self._plan_transfer(user_id, row, directory, options, convert_payments, counters):
                counters.invalid_transfer += 1
                continue
            staged.append(row)
        return staged

    def _plan_transfer(
        self,
        user_id: str,
        row: _StagedRow,
        directory: AccountDirectory,
        options: ImportOptions,
        convert_payments: bool,
        counters: _Counters,
    ) -> bool:
        """Attach a transfer plan when the row moves money between own accounts.

        Returns False when the row asks for a transfer that cannot be built.
        """

        explicit_target_id = (row.draft.transfer_to_account_id or "").strip() or None
        card_payment = convert_payments and is_card_payment(row.account, row.amount, row.normalized_description)
        if card_payment:
            counters.card_payment_detected += 1
        if explicit_target_id is None and not card_payment:
            return True

        target = directory.get(explicit_target_id)
        if card_payment:
            if explicit_target_id is None:
                target = directory.resolve_card_payment_target(row.account, [options.card_payment_target_account_id])
            if target is None or target.type != "credit":
                counters.card_payment_not_converted += 1
                target = None

        if target is None:
            return explicit_target_id is None
        if target.id == row.account.id:
            return False

        row.transfer = plan_transfer(
            user_id,
            row.date,
            row.amount,
            row.normalized_description,
            row.account,
            target,
            row.draft.external_id,
            from_card_payment=card_payment,
        )
        return True

    def _deduplicate(
        self,
        user_id: str,
        staged: list[_StagedRow],
        outcome: ParseOutcome | None,
        counters: _Counters,
    ) -> list[_StagedRow]:
        source_type = outcome.source_type if outcome else "manual"
        for row in staged:
            if row.transfer is None:
                row.fingerprint = create_imported_hash(
                    user_id,
                    source_type,
                    row.date,
                    row.amount,
                    row.normalized_description,
                    row.account.id,
                    row.draft.external_id,
                )

        lookup = [key for row in staged for key in row.keys]
        existing = set(self.storage.find_fingerprints(user_id, lookup)) if lookup else set()

        seen: set[str] = set()
        survivors: list[_StagedRow] = []
        for row in staged:
            keys = row.keys
            if any(key in existing for key in keys):
                counters.duplicates_in_database += 1
                continue
            if any(key in seen for key in keys):
                counters.duplicates_in_payload += 1
                continue
            seen.update(keys)
            survivors.append(row)
        return survivors

    def _categorize(
        self,
        user_id: str,
        survivors: list[_StagedRow],
        options: ImportOptions,
        counters: _Counters,
    ) -> None:
        ordinary = [row for row in survivors if row.transfer is None]
        if not ordinary:
            return

        rules: Sequence[Any] = ()
        categories: Sequence[Any] = ()
        if options.apply_rules:
            rules = self.rules_source.list_enabled_rules(user_id)
            categories = self.storage.list_categories(user_id)

        for row in ordinary:
            if row.draft.category_id:
                row.category = CategorizationResult(row.draft.category_id, "manual")
                continue
            if not options.apply_rules:
                row.category = CategorizationResult(None)
                continue
            candidate = RuleCandidate(
                description=row.description,
                normalized_description=row.normalized_description,
                amount=row.amount,
                account_id=row.account.id,
            )
            row.category = categorize_row(candidate, rules, categories)
            if row.category.category_id:
                counters.categorized += 1

    def _reconcile(
        self,
        survivors: list[_StagedRow],
        outcome: ParseOutcome | None,
        counters: _Counters,
    ) -> list[TransactionRecord]:
        source_type = outcome.source_type if outcome else "manual"
        records: list[TransactionRecord] = []
        for row in survivors:
            raw = self._build_raw(row, source_type)
            if row.transfer is not None:
                records.extend(
                    build_transfer_pair(
                        row.transfer,
                        row.date,
                        row.description,
                        row.normalized_description,
                        row.amount,
                        row.draft.external_id,
                        raw,
                    )
                )
                counters.transfer_created += 1
                continue

            category = row.category or CategorizationResult(None)
            raw["category_source"] = category.source
            raw["matched_rule"] = category.matched_rule
            records.append(
                TransactionRecord(
                    account_id=row.account.id,
                    date=row.date,
                    description=row.description,
                    normalized_description=row.normalized_description,
                    amount=row.amount,
                    imported_hash=row.fingerprint or "",
                    external_id=row.draft.external_id,
                    category_id=category.category_id,
                    category_source=category.source,
                    raw=raw,
                )
            )

        if counters.card_payment_not_converted:
            counters.warnings.append(
                f"{counters.card_payment_not_converted} card payment(s) were not converted to transfers: "
                "no unique credit account to receive them."
            )
        return records

    @staticmethod
    def _build_raw(row: _StagedRow, source_type: str) -> dict[str, Any]:
        raw: dict[str, Any] = dict(row.draft.raw)
        document_type = row.draft.document_type
        raw.update(
            {
                "balance_after": row.draft.balance_after,
                "merchant_key": build_merchant_key(row.description),
                "source_type": source_type,
                "document_type": document_type.value if document_type else None,
            }
        )
        if row.installment is not None:
            raw["installment"] = row.installment.as_dict()
        return raw

    def _commit(
        self,
        user_id: str,
        records: list[TransactionRecord],
        options: ImportOptions,
        outcome: ParseOutcome | None,
        counters: _Counters,
    ) -> str:
        batch = CommitBatch(
            source_type=outcome.source_type if outcome else "manual",
            file_name=options.file_name,
            transactions=records,
            summary={
                "records": len(records),
                "duplicates": counters.duplicates_in_database + counters.duplicates_in_payload,
                "invalid_rows": counters.invalid_rows,
            },
        )
        try:
            return self.storage.commit_batch(user_id, batch)
        except ImportFailedError:
            raise
        except Exception as exc:
            logger.error("Import commit failed for user %s: %s", user_id, exc)
            raise CommitFailedError("Import batch could not be committed") from exc

    def _build_report(
        self,
        batch_id: str,
        drafts: Sequence[ParsedDraftTransaction],
        records: list[TransactionRecord],
        survivors: list[_StagedRow],
        outcome: ParseOutcome | None,
        counters: _Counters,
        total_rows: int,
    ) -> ImportCommitReport:
        imported = len(survivors)
        dates = [record.date for record in records]
        summary = outcome.summary if outcome else None
        classification = outcome.classification if outcome else None
        diagnostics = outcome.diagnostics if outcome else []
        return ImportCommitReport(
            batch_id=batch_id,
            total_rows=total_rows,
            valid_rows=summary.valid_rows if summary else len(drafts),
            ignored_rows=(summary.ignored_rows if summary else 0) + counters.skipped_card_payment_lines,
            error_rows=summary.error_rows if summary else 0,
            imported=imported,
            skipped=total_rows - imported,
            duplicates=counters.duplicates_in_database + counters.duplicates_in_payload,
            invalid_rows=counters.invalid_rows,
            records_created=len(records),
            categorized=counters.categorized,
            transfer_created=counters.transfer_created,
            card_payment_detected=counters.card_payment_detected,
            card_payment_not_converted=counters.card_payment_not_converted,
            skipped_card_payment_lines=counters.skipped_card_payment_lines,
            credit_invoice_rows_reassigned=counters.credit_invoice_reassigned,
            duplicate_details=DuplicateDetails(
                in_database=counters.duplicates_in_database,
                in_payload=counters.duplicates_in_payload,
            ),
            invalid_details=InvalidDetails(
                missing_account=counters.missing_account,
                invalid_row=counters.invalid_row,
                invalid_date=counters.invalid_date,
                invalid_transfer=counters.invalid_transfer,
                credit_invoice_not_routed=counters.credit_invoice_not_routed,
            ),
            imported_range=ImportedRange(start=min(dates), end=max(dates)) if dates else ImportedRange(),
            document_type=classification.document_type.value if classification else None,
            issuer_profile=classification.issuer_profile if classification else None,
            warnings=list(counters.warnings),
            diagnostics=[
                RowDiagnosticRead(
                    line=item.line,
                    status=item.status.value,
                    reason=item.reason,
                    message=item.message,
                    raw=item.raw,
                )
                for item in diagnostics
            ],
        )

    def _notify(self, user_id: str, report: ImportCommitReport) -> None:
        if self.observer is None:
            return
        try:
            self.observer.on_import_completed(user_id, report)
        except Exception:
            logger.exception("Import observer failed for user %s", user_id)

    @staticmethod
    def _flag(value: bool | None, default: bool) -> bool:
        return default if value is None else value
