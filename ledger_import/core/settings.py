"""Application settings and environment loading utilities."""
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings


BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BASE_DIR / ".env"

load_dotenv(dotenv_path=ENV_FILE)


class Settings(BaseSettings):
    """Central application configuration."""

    app_name: str = "Ledger Import API"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    database_url: str = Field(
        default="sqlite:///./data/dev.db",
        description="SQLAlchemy database URL",
        alias="DATABASE_URL",
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    max_import_rows: int = Field(default=5000, alias="MAX_IMPORT_ROWS", gt=0)
    csv_header_scan_rows: int = Field(default=30, alias="CSV_HEADER_SCAN_ROWS", gt=0)
    mapping_confidence_warning: float = Field(default=0.6, alias="MAPPING_CONFIDENCE_WARNING", ge=0, le=1)
    skip_card_payment_lines: bool = Field(default=True, alias="SKIP_CARD_PAYMENT_LINES")
    convert_card_payments_to_transfer: bool = Field(default=True, alias="CONVERT_CARD_PAYMENTS_TO_TRANSFER")

    class Config:
        env_file = ENV_FILE
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True


@lru_cache
def get_settings() -> "Settings":
    """Return cached settings instance."""

    return Settings()
