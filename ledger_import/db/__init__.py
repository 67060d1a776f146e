"""Database package exposing declarative base and ORM models."""

from .base import Base, TimestampMixin, UserScopedMixin
from . import models

__all__ = ["Base", "TimestampMixin", "UserScopedMixin", "models"]
