import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        auth_secret: str,
        auth_token_max_age_secs: int,
        store_timeout_secs: float,
        summary_repair_minutes: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.auth_secret = auth_secret
        self.auth_token_max_age_secs = auth_token_max_age_secs
        self.store_timeout_secs = store_timeout_secs
        self.summary_repair_minutes = summary_repair_minutes


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("EXPENSES_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "expenses.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("EXPENSES_TIMEZONE", "Europe/Berlin")
    auth_secret = os.getenv(
        "EXPENSES_AUTH_SECRET",
        "5d1c0f7e4a9b2e86c3f0a71d94be2c58f6a03d7e91b4c2a8e5f7d0b3c6a9e142",
    )
    auth_token_max_age_secs = int(
        os.getenv("EXPENSES_AUTH_TOKEN_MAX_AGE_SECS", "86400")
    )
    store_timeout_secs = float(os.getenv("EXPENSES_STORE_TIMEOUT_SECS", "5"))
    summary_repair_minutes = int(os.getenv("EXPENSES_SUMMARY_REPAIR_MINUTES", "60"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        auth_secret=auth_secret,
        auth_token_max_age_secs=auth_token_max_age_secs,
        store_timeout_secs=store_timeout_secs,
        summary_repair_minutes=summary_repair_minutes,
    )
