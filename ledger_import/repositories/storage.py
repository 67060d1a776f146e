"""SQLAlchemy implementations of the import pipeline's storage collaborators."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_import.db.models import CategorizationRuleRecord, ImportBatch, Transaction, TransactionType
from ledger_import.imports.models import AccountRef, CategoryRef, CommitBatch
from ledger_import.schemas.rules import CategorizationRule
from ledger_import.services.exceptions import CommitFailedError

from .account import AccountRepository
from .category import CategoryRepository
from .import_batch import ImportBatchRepository
from .rule import RuleRepository
from .transaction import TransactionRepository

logger = logging.getLogger(__name__)


class SqlImportStorage:
    """Reads accounts and fingerprints and commits a batch in one database transaction.

    With ``autocommit=False`` the batch is only flushed, so the caller can add its
    own records and commit or roll back everything together.
    """

    def __init__(self, session: Session, autocommit: bool = True) -> None:
        self.session = session
        self.autocommit = autocommit
        self.accounts = AccountRepository(session)
        self.categories = CategoryRepository(session)
        self.batches = ImportBatchRepository(session)
        self.transactions = TransactionRepository(session)

    def find_fingerprints(self, user_id: str, fingerprints: Iterable[str]) -> set[str]:
        return self.transactions.find_imported_hashes(user_id, fingerprints)

    def list_accounts(self, user_id: str) -> list[AccountRef]:
        return [
            AccountRef(
                id=account.id,
                name=account.name,
                type=account.type.value,
                institution=account.institution,
                parent_account_id=account.parent_account_id,
            )
            for account in self.accounts.list_all_for_user(user_id)
        ]

    def list_categories(self, user_id: str) -> list[CategoryRef]:
        return [CategoryRef(id=category.id, name=category.name) for category in self.categories.list_all_for_user(user_id)]

    def commit_batch(self, user_id: str, batch: CommitBatch) -> str:
        """Persist the batch and all of its rows, or nothing at all."""

        record = ImportBatch(
            user_id=user_id,
            source_type=batch.source_type,
            file_name=batch.file_name,
            total_imported=len(batch.transactions),
            summary=batch.summary,
        )
        try:
            self.batches.add(record)
            self.session.flush()
            self.session.add_all(
                [
                    Transaction(
                        user_id=user_id,
                        account_id=item.account_id,
                        category_id=item.category_id,
                        import_batch_id=record.id,
                        date=item.date,
                        description=item.description,
                        normalized_description=item.normalized_description,
                        amount=Decimal(f"{item.amount:.2f}"),
                        type=TransactionType(item.type),
                        external_id=item.external_id,
                        imported_hash=item.imported_hash,
                        category_source=item.category_source,
                        transfer_group_id=item.transfer_group_id,
                        transfer_peer_account_id=item.transfer_peer_account_id,
                        raw=item.raw,
                    )
                    for item in batch.transactions
                ]
            )
            self.session.flush()
            if self.autocommit:
                self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("Rolled back import batch for user %s: %s", user_id, exc)
            raise CommitFailedError("Import batch could not be committed") from exc
        return record.id


class SqlRulesSource:
    def __init__(self, session: Session) -> None:
        self.rules = RuleRepository(session)

    def list_enabled_rules(self, user_id: str) -> list[CategorizationRule]:
        return [to_rule(record) for record in self.rules.list_enabled_for_user(user_id)]


def to_rule(record: CategorizationRuleRecord) -> CategorizationRule:
    return CategorizationRule(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        priority=record.priority,
        enabled=record.enabled,
        match_type=record.match_type.value,
        pattern=record.pattern,
        account_id=record.account_id,
        min_amount=record.min_amount,
        max_amount=record.max_amount,
        category_id=record.category_id,
    )
