"""Service running statement imports for one user."""
from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_import.core.settings import Settings
from ledger_import.core.user import UserContext
from ledger_import.db.models import IdempotencyKey
from ledger_import.imports.models import ParseOutcome, RawImportDocument
from ledger_import.imports.orchestrator import ImportOptions, ImportOrchestrator
from ledger_import.imports.ports import ImportObserver, PdfTextExtractor
from ledger_import.repositories.account import AccountRepository
from ledger_import.repositories.idempotency import IdempotencyRepository
from ledger_import.repositories.storage import SqlImportStorage, SqlRulesSource
from ledger_import.schemas.imports import (
    DocumentClassificationRead,
    DraftTransactionRead,
    ImportCommitReport,
    ImportPreviewResponse,
    RowDiagnosticRead,
)
from ledger_import.utils.hash import content_hash, stable_hash

from .exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ImportService:
    """Wire the import orchestrator to SQL storage and add idempotent commits."""

    IDEMPOTENCY_ENDPOINT = "statement_import"

    def __init__(
        self,
        session: Session,
        user: UserContext,
        extractor: PdfTextExtractor | None = None,
        observer: ImportObserver | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session = session
        self.user = user
        self.accounts = AccountRepository(session)
        self.idempotency = IdempotencyRepository(session)
        self.orchestrator = ImportOrchestrator(
            storage=SqlImportStorage(session, autocommit=False),
            rules_source=SqlRulesSource(session),
            extractor=extractor,
            observer=observer,
            settings=settings,
        )

    def preview(self, content: bytes, source_type: str, file_name: str | None = None) -> ImportPreviewResponse:
        """Parse a document without touching storage."""

        self._ensure_content(content)
        outcome = self.orchestrator.parse(RawImportDocument(content, source_type, file_name=file_name))
        return self._serialize_preview(outcome)

    def import_document(
        self,
        content: bytes,
        source_type: str,
        idempotency_key: str | None,
        file_name: str | None = None,
        default_account_id: str | None = None,
        apply_rules: bool = True,
        card_payment_target_account_id: str | None = None,
    ) -> ImportCommitReport:
        if idempotency_key is None:
            raise ValidationError("Idempotency-Key header is required for imports")
        self._ensure_content(content)

        payload_hash = stable_hash(
            [
                source_type,
                file_name,
                default_account_id,
                apply_rules,
                card_payment_target_account_id,
                content_hash(content),
            ]
        )
        existing = self.idempotency.get_key(self.user, self.IDEMPOTENCY_ENDPOINT, idempotency_key)
        if existing:
            if existing.payload_hash != payload_hash:
                raise ConflictError("Idempotency key re-used with different payload")
            return ImportCommitReport.model_validate(existing.response_body or {})

        for account_id in (default_account_id, card_payment_target_account_id):
            if account_id and self.accounts.get_for_user(self.user, account_id) is None:
                raise NotFoundError(f"Account {account_id} not found")

        report = self.orchestrator.run(
            self.user.user_id,
            RawImportDocument(content, source_type, file_name=file_name),
            ImportOptions(
                default_account_id=default_account_id,
                apply_rules=apply_rules,
                card_payment_target_account_id=card_payment_target_account_id,
                file_name=file_name,
            ),
        )

        record = IdempotencyKey(
            user_id=self.user.user_id,
            endpoint=self.IDEMPOTENCY_ENDPOINT,
            key=idempotency_key,
            payload_hash=payload_hash,
            response_status=200,
            response_body=report.model_dump(mode="json"),
        )
        self.session.add(record)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            winner = self.idempotency.get_key(self.user, self.IDEMPOTENCY_ENDPOINT, idempotency_key)
            if winner is not None and winner.payload_hash == payload_hash:
                logger.info("Concurrent import with key %s already committed; replaying it", idempotency_key)
                return ImportCommitReport.model_validate(winner.response_body or {})
            raise ConflictError("Idempotency key was used concurrently") from exc
        return report

    @staticmethod
    def _ensure_content(content: bytes) -> None:
        if not content:
            raise ValidationError("Uploaded file is empty")

    @staticmethod
    def _serialize_preview(outcome: ParseOutcome) -> ImportPreviewResponse:
        classification = outcome.classification
        summary = outcome.summary
        return ImportPreviewResponse(
            source_type=outcome.source_type,
            classification=DocumentClassificationRead(
                document_type=classification.document_type.value,
                issuer_profile=classification.issuer_profile,
                score=classification.score,
                confidence=classification.confidence_label,
            ),
            summary={
                "total_rows": summary.total_rows,
                "valid_rows": summary.valid_rows,
                "ignored_rows": summary.ignored_rows,
                "error_rows": summary.error_rows,
                "reasons": dict(summary.reasons),
            },
            transactions=[
                DraftTransactionRead(
                    date=draft.date,
                    description=draft.description,
                    normalized_description=draft.normalized_description,
                    amount=draft.amount,
                    type=draft.type,
                    external_id=draft.external_id,
                    balance_after=draft.balance_after,
                    account_hint=draft.account_hint,
                    document_type=draft.document_type.value if draft.document_type else None,
                    installment=draft.installment.as_dict() if draft.installment else None,
                )
                for draft in outcome.transactions
            ],
            diagnostics=[
                RowDiagnosticRead(
                    line=item.line,
                    status=item.status.value,
                    reason=item.reason,
                    message=item.message,
                    raw=item.raw,
                )
                for item in outcome.diagnostics
            ],
            metadata=outcome.metadata,
            warnings=list(outcome.warnings),
        )
