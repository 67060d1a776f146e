"""Root API router for REST endpoints."""
from fastapi import APIRouter

from ledger_import.api.endpoints import accounts, categories, imports, users

router = APIRouter()


@router.get("/health", tags=["health"], summary="Health check")
def health_check() -> dict[str, str]:
    """Return basic service health information."""

    return {"status": "ok"}


router.include_router(users.router)
router.include_router(accounts.router)
router.include_router(categories.router)
router.include_router(imports.router)
