"""Pydantic schemas for categories and categorization rules."""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class RuleMatchType(str, Enum):
    CONTAINS = "contains"
    REGEX = "regex"


class CategorizationRule(BaseModel):
    """A user-defined rule assigning a category to matching transactions."""

    id: str
    user_id: str
    name: str
    priority: int = 100
    enabled: bool = True
    match_type: RuleMatchType = RuleMatchType.CONTAINS
    pattern: str
    account_id: str | None = None
    min_amount: float | None = None
    max_amount: float | None = None
    category_id: str

    class Config:
        from_attributes = True


class CategorizationRuleCreate(BaseModel):
    """Payload to create a categorization rule."""

    name: str = Field(..., min_length=1, max_length=120)
    priority: int = Field(default=100, ge=0)
    enabled: bool = True
    match_type: RuleMatchType = RuleMatchType.CONTAINS
    pattern: str = Field(..., min_length=1, max_length=255)
    account_id: str | None = None
    min_amount: float | None = Field(default=None, ge=0)
    max_amount: float | None = Field(default=None, ge=0)
    category_id: str

    @model_validator(mode="after")
    def check_amount_bounds(self) -> "CategorizationRuleCreate":
        if self.min_amount is not None and self.max_amount is not None and self.min_amount > self.max_amount:
            raise ValueError("min_amount must not exceed max_amount")
        return self


class CategoryCreate(BaseModel):
    """Payload to create a category."""

    name: str = Field(..., min_length=1, max_length=120)


class CategoryRead(BaseModel):
    id: str
    user_id: str
    name: str
    created_at: datetime

    class Config:
        from_attributes = True
