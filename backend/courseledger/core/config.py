# backend/courseledger/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


_BACKEND_ROOT = Path(__file__).resolve().parents[2]

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = _BACKEND_ROOT / ".env"
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="local", description="Deployment environment name")
    log_level: str = Field(default="INFO")

    database_url: str = Field(
        default="sqlite:///" + str(_BACKEND_ROOT / "courseledger.db"),
        description="SQLAlchemy database URL",
    )
    database_echo: bool = Field(default=False)

    # Calendar semantics: issued/effective dates and proration use this zone
    business_timezone: str = Field(default="Europe/Berlin")
    currency: str = Field(default="EUR", description="Single ISO 4217 code per deployment")

    invoice_number_prefix: str = Field(default="RE-")
    credit_note_prefix: str = Field(default="GS-")
    invoice_number_width: int = Field(default=6, ge=1, le=12)

    redis_url: Optional[str] = Field(
        default=None,
        description="When set, booking locks are taken in Redis instead of in-process",
    )
    lock_namespace: str = Field(default="courseledger")
    booking_lock_ttl_seconds: int = Field(default=30, ge=1)
    booking_lock_wait_seconds: float = Field(default=5.0, ge=0)

    export_batch_size: int = Field(default=200, ge=1, le=5000)
    default_page_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    datev_consultant_number: int = Field(default=1001)
    datev_client_number: int = Field(default=1)
    datev_revenue_account: int = Field(
        default=8100, description="Revenue account for tax-exempt course fees"
    )
    datev_debtor_account: int = Field(default=10000)
    datev_fiscal_year_start_month: int = Field(default=1, ge=1, le=12)
    datev_account_length: int = Field(default=4, ge=4, le=8)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("currency")
    @classmethod
    def _validate_currency(cls, value: str) -> str:
        normalized = (value or "").strip().upper()
        if len(normalized) != 3 or not normalized.isalpha():
            raise ValueError(f"currency must be a 3-letter ISO code, got {value!r}")
        return normalized

    @field_validator("business_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
