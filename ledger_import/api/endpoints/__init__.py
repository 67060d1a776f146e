"""REST endpoint routers exposed by the API."""
from . import accounts, categories, imports, users

__all__ = [
    "accounts",
    "categories",
    "imports",
    "users",
]
