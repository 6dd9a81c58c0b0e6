import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        token_secret: str,
        token_max_age_hours: int,
        job_secret: str,
        batch_size: int,
        max_amount_cents: int,
        backdate_days: int,
        notification_retention_days: int,
        loan_reminder_days: int,
        scheduler_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.token_secret = token_secret
        self.token_max_age_hours = token_max_age_hours
        self.job_secret = job_secret
        self.batch_size = batch_size
        self.max_amount_cents = max_amount_cents
        self.backdate_days = backdate_days
        self.notification_retention_days = notification_retention_days
        self.loan_reminder_days = loan_reminder_days
        self.scheduler_enabled = scheduler_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "America/Santiago")
    token_secret = os.getenv(
        "LEDGER_TOKEN_SECRET",
        "5c1f0e8e2d7a4b3c9f61a0d2e4b8c7f3a9d6e2b1c0f4a7e8d3b6c9f2a1e0d4b7",
    )
    token_max_age_hours = int(os.getenv("LEDGER_TOKEN_MAX_AGE_HOURS", "12"))
    # Shared secret for the /jobs endpoints; empty disables them over HTTP.
    job_secret = os.getenv("LEDGER_JOB_SECRET", "")
    # Upper bound on deletes committed together during a reset.
    batch_size = int(os.getenv("LEDGER_BATCH_SIZE", "500"))
    max_amount_cents = int(os.getenv("LEDGER_MAX_AMOUNT_CENTS", "100000000"))
    backdate_days = int(os.getenv("LEDGER_BACKDATE_DAYS", "365"))
    notification_retention_days = int(
        os.getenv("LEDGER_NOTIFICATION_RETENTION_DAYS", "30")
    )
    loan_reminder_days = int(os.getenv("LEDGER_LOAN_REMINDER_DAYS", "3"))
    scheduler_enabled = _env_flag("LEDGER_SCHEDULER_ENABLED", "true")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        token_secret=token_secret,
        token_max_age_hours=token_max_age_hours,
        job_secret=job_secret,
        batch_size=batch_size,
        max_amount_cents=max_amount_cents,
        backdate_days=backdate_days,
        notification_retention_days=notification_retention_days,
        loan_reminder_days=loan_reminder_days,
        scheduler_enabled=scheduler_enabled,
    )
