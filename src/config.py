from __future__ import annotations

from datetime import timedelta
from functools import cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    reporting_currency: str = "EUR"
    long_term_days: int = 365
    fiat_currencies: tuple[str, ...] = ("EUR", "USD", "GBP", "CHF", "PLN", "JPY", "CAD", "AUD")

    # Price history lookups
    price_tolerance: timedelta = timedelta(hours=1)
    price_padding: timedelta = timedelta(days=7)
    price_max_span: timedelta = timedelta(hours=400)

    model_config = SettingsConfigDict(env_prefix="GAINS_", env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
