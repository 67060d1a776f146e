"""ORM model definitions for the ledger import service."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import UUID_STR, Base, TimestampMixin, UserScopedMixin

DELETE_CASCADE = "all, delete-orphan"

CURRENCY_CODE = String(3)
DEFAULT_CURRENCY = "BRL"


class AccountType(str, Enum):
    """Kinds of accounts a user can import into."""

    CHECKING = "checking"
    CREDIT = "credit"
    CASH = "cash"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class RuleMatchKind(str, Enum):
    CONTAINS = "contains"
    REGEX = "regex"


class User(Base, TimestampMixin):
    """Owner of accounts, categories, rules and transactions."""

    id: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    accounts: Mapped[list["Account"]] = relationship("Account", back_populates="user", cascade=DELETE_CASCADE)
    categories: Mapped[list["Category"]] = relationship("Category", back_populates="user", cascade=DELETE_CASCADE)
    rules: Mapped[list["CategorizationRuleRecord"]] = relationship(
        "CategorizationRuleRecord", back_populates="user", cascade=DELETE_CASCADE
    )
    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="user", cascade=DELETE_CASCADE
    )


class Account(UserScopedMixin, Base):
    """Bank account, card or wallet that transactions are booked against."""

    id: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[AccountType] = mapped_column(
        SQLEnum(AccountType, name="account_type"), default=AccountType.CHECKING, nullable=False
    )
    institution: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(CURRENCY_CODE, nullable=False, default=DEFAULT_CURRENCY)
    parent_account_id: Mapped[str | None] = mapped_column(
        UUID_STR, ForeignKey("account.id", ondelete="set null"), nullable=True
    )

    user: Mapped[User] = relationship("User", back_populates="accounts")

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_account_name_per_user"),
    )


class Category(UserScopedMixin, Base):
    id: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="categories")

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_name_per_user"),
    )


class CategorizationRuleRecord(UserScopedMixin, Base):
    """Persisted categorization rule evaluated in ascending priority order."""

    id: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=lambda: str(uuid4()))
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    match_type: Mapped[RuleMatchKind] = mapped_column(
        SQLEnum(RuleMatchKind, name="rule_match_type"), default=RuleMatchKind.CONTAINS, nullable=False
    )
    pattern: Mapped[str] = mapped_column(String(255), nullable=False)
    account_id: Mapped[str | None] = mapped_column(
        UUID_STR, ForeignKey("account.id", ondelete="cascade"), nullable=True
    )
    min_amount: Mapped[float | None] = mapped_column(Numeric(18, 2, asdecimal=False), nullable=True)
    max_amount: Mapped[float | None] = mapped_column(Numeric(18, 2, asdecimal=False), nullable=True)
    category_id: Mapped[str] = mapped_column(UUID_STR, ForeignKey("category.id", ondelete="cascade"), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="rules")

    __table_args__ = (
        Index("ix_rule_priority", "user_id", "enabled", "priority"),
    )


class ImportBatch(UserScopedMixin, Base):
    """One committed import run."""

    id: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=lambda: str(uuid4()))
    source_type: Mapped[str] = mapped_column(String(16), nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_imported: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    transactions: Mapped[list["Transaction"]] = relationship("Transaction", back_populates="import_batch")


class Transaction(UserScopedMixin, Base):
    """A booked transaction; transfers are two rows sharing ``transfer_group_id``."""

    id: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=lambda: str(uuid4()))
    account_id: Mapped[str] = mapped_column(UUID_STR, ForeignKey("account.id", ondelete="cascade"), nullable=False)
    category_id: Mapped[str | None] = mapped_column(
        UUID_STR, ForeignKey("category.id", ondelete="set null"), nullable=True
    )
    import_batch_id: Mapped[str | None] = mapped_column(
        UUID_STR, ForeignKey("importbatch.id", ondelete="set null"), nullable=True
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    normalized_description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    type: Mapped[TransactionType] = mapped_column(SQLEnum(TransactionType, name="transaction_type"), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    imported_hash: Mapped[str] = mapped_column(String(80), nullable=False)
    category_source: Mapped[str] = mapped_column(String(32), nullable=False, default="none")
    transfer_group_id: Mapped[str | None] = mapped_column(UUID_STR, nullable=True)
    transfer_peer_account_id: Mapped[str | None] = mapped_column(UUID_STR, nullable=True)
    raw: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    user: Mapped[User] = relationship("User", back_populates="transactions")
    import_batch: Mapped[ImportBatch | None] = relationship("ImportBatch", back_populates="transactions")

    __table_args__ = (
        UniqueConstraint("user_id", "imported_hash", name="uq_transaction_imported_hash"),
        Index("ix_transaction_date", "user_id", "date"),
        Index("ix_transaction_transfer_group", "transfer_group_id"),
    )


class IdempotencyKey(UserScopedMixin, Base):
    """Persisted idempotency key usage for POST operations."""

    id: Mapped[str] = mapped_column(UUID_STR, primary_key=True, default=lambda: str(uuid4()))
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(128), nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    response_status: Mapped[int] = mapped_column(nullable=False)
    response_body: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", "key", name="uq_idempotency_key"),
    )


__all__ = [
    "User",
    "Account",
    "Category",
    "CategorizationRuleRecord",
    "ImportBatch",
    "Transaction",
    "IdempotencyKey",
    "AccountType",
    "TransactionType",
    "RuleMatchKind",
]
