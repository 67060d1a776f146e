"""Repository for import batches."""
from __future__ import annotations

from ledger_import.db.models import ImportBatch

from .base import UserScopedRepository


class ImportBatchRepository(UserScopedRepository[ImportBatch]):
    model = ImportBatch
