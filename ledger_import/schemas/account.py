"""Pydantic schemas for account operations."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from ledger_import.db.models import AccountType


class AccountCreate(BaseModel):
    """Payload to create an account; cards may point at the checking account that pays them."""

    name: str = Field(..., min_length=1, max_length=255)
    type: AccountType = AccountType.CHECKING
    institution: str | None = Field(default=None, max_length=255)
    currency: str = Field(default="BRL", min_length=3, max_length=3)
    parent_account_id: str | None = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class AccountRead(BaseModel):
    id: str
    user_id: str
    name: str
    type: AccountType
    institution: str | None = None
    currency: str
    parent_account_id: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True
