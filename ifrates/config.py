"""
Configuration for the interface rate processor.

We use pydantic-settings (Pydantic v2) to load settings from:
- environment variables
- a local `.env` file in the project root
"""

from datetime import timedelta
from enum import Enum
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class RateCalculationMethod(str, Enum):
    """Which timestamp a row's counter reading is stamped with."""

    FAST = "fast"          # one wall-clock timestamp for the whole cycle
    ACCURATE = "accurate"  # per-row poll timestamp from the store, when known


class Settings(BaseSettings):
    """
    Application-wide settings.

    Environment variables (with defaults):

    - DATABASE_URL:            SQLAlchemy URL, default SQLite file "ifrates.db"
    - POLL_INTERVAL_SECONDS:   How often the collector runs a cycle (default: 10)
    - MIN_DELTA_SECONDS:       Shorter deltas reuse the previous rate (default: 5)
    - MAX_DELTA_SECONDS:       Longer deltas reset rate history (default: 600)
    - RATE_CALCULATION_METHOD: "fast" or "accurate" (default: fast)
    - POLLED_TABLES:           Comma-separated list, e.g. "iftable,ifxtable"
    - LOG_LEVEL:               DEBUG, INFO, WARNING, ERROR (default: INFO)
    - LOG_JSON:                "1" for JSON log lines instead of rich console
    """

    database_url: str = "sqlite:///./ifrates.db"

    poll_interval_seconds: int = 10

    min_delta_seconds: float = 5.0
    max_delta_seconds: float = 600.0

    rate_calculation_method: RateCalculationMethod = RateCalculationMethod.FAST

    # Populated from POLLED_TABLES env; parsed below rather than as JSON.
    polled_tables: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["iftable", "ifxtable"])

    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("polled_tables", mode="before")
    @classmethod
    def parse_polled_tables(cls, v):
        """
        Allow POLLED_TABLES to be specified as:

        - "iftable"            -> ["iftable"]
        - "iftable, ifxtable"  -> ["iftable", "ifxtable"]
        - ["ifxtable"]         -> ["ifxtable"]
        """
        if isinstance(v, str):
            return [p.strip().lower() for p in v.split(",") if p.strip()]
        return v

    @property
    def min_delta(self) -> timedelta:
        return timedelta(seconds=self.min_delta_seconds)

    @property
    def max_delta(self) -> timedelta:
        return timedelta(seconds=self.max_delta_seconds)


# Single global settings object
settings = Settings()
