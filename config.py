import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        data_dir: Path,
        timezone: str,
        token_secret: str,
        token_max_age_secs: int,
        blob_dir: Path,
        blob_base_url: str,
        reminder_hour: int,
        log_level: str,
        dev_tokens: bool,
    ) -> None:
        self.database_url = database_url
        self.data_dir = data_dir
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_max_age_secs = token_max_age_secs
        self.blob_dir = blob_dir
        self.blob_base_url = blob_base_url
        self.reminder_hour = reminder_hour
        self.log_level = log_level
        self.dev_tokens = dev_tokens


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Asia/Kolkata")
    token_secret = os.getenv(
        "BUDGET_TOKEN_SECRET",
        "3f1c9a6d0b7e42e8a5d4c2b19e7f60a1c8d3e5f7a9b2c4d6e8f0a1b3c5d7e9f1",
    )
    token_max_age_secs = int(os.getenv("BUDGET_TOKEN_MAX_AGE_SECS", str(30 * 24 * 3600)))
    blob_dir = Path(
        os.getenv("BUDGET_BLOB_DIR", str(data_dir / "profile-images"))
    ).resolve()
    blob_base_url = os.getenv("BUDGET_BLOB_BASE_URL", "/blobs/profile-images")
    reminder_hour = int(os.getenv("BUDGET_REMINDER_HOUR", "9"))
    log_level = os.getenv("BUDGET_LOG_LEVEL", "INFO")
    dev_tokens = os.getenv("BUDGET_DEV_TOKENS", "").lower() in ("1", "true", "yes")
    return Settings(
        database_url=database_url,
        data_dir=data_dir,
        timezone=timezone,
        token_secret=token_secret,
        token_max_age_secs=token_max_age_secs,
        blob_dir=blob_dir,
        blob_base_url=blob_base_url,
        reminder_hour=reminder_hour,
        log_level=log_level,
        dev_tokens=dev_tokens,
    )
