import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        currency_symbol: str,
        number_grouping: str,
        notification_fetch_limit: int,
        alert_function_url: Optional[str],
        email_timeout_secs: float,
        email_workers: int,
        resend_api_key: Optional[str],
        from_email: str,
        app_url: str,
        alert_function_secret: Optional[str],
        email_login_enabled: bool,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.currency_symbol = currency_symbol
        self.number_grouping = number_grouping
        self.notification_fetch_limit = notification_fetch_limit
        self.alert_function_url = alert_function_url
        self.email_timeout_secs = email_timeout_secs
        self.email_workers = email_workers
        self.resend_api_key = resend_api_key
        self.from_email = from_email
        self.app_url = app_url
        self.alert_function_secret = alert_function_secret
        self.email_login_enabled = email_login_enabled


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCEOS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "financeos.db"
    database_url = os.getenv("FINANCEOS_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCEOS_TIMEZONE", "Asia/Kolkata")
    session_secret = os.getenv(
        "FINANCEOS_SESSION_SECRET",
        "3f0c8e6f4b1d2a97c5e8b0a6d4f2c1e9a7b5d3f1e0c2a4b6d8f0e1c3a5b7d9f2",
    )
    session_max_age_hours = int(os.getenv("FINANCEOS_SESSION_MAX_AGE_HOURS", "12"))
    currency_symbol = os.getenv("FINANCEOS_CURRENCY_SYMBOL", "₹")
    number_grouping = os.getenv("FINANCEOS_NUMBER_GROUPING", "indian")
    notification_fetch_limit = int(
        os.getenv("FINANCEOS_NOTIFICATION_FETCH_LIMIT", "50")
    )
    alert_function_url = os.getenv("FINANCEOS_ALERT_FUNCTION_URL") or None
    email_timeout_secs = float(os.getenv("FINANCEOS_EMAIL_TIMEOUT_SECS", "10"))
    email_workers = int(os.getenv("FINANCEOS_EMAIL_WORKERS", "2"))
    resend_api_key = os.getenv("FINANCEOS_RESEND_API_KEY") or None
    from_email = os.getenv("FINANCEOS_FROM_EMAIL", "noreply@aura-finance.app")
    app_url = os.getenv("FINANCEOS_APP_URL", "https://aura-finance.app").rstrip("/")
    alert_function_secret = os.getenv("FINANCEOS_ALERT_FUNCTION_SECRET") or None
    # Passwordless sign-in; disable when an external auth service fronts the app.
    email_login_enabled = os.getenv("FINANCEOS_EMAIL_LOGIN", "1").lower() in {
        "1",
        "true",
        "yes",
    }
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        currency_symbol=currency_symbol,
        number_grouping=number_grouping,
        notification_fetch_limit=notification_fetch_limit,
        alert_function_url=alert_function_url,
        email_timeout_secs=email_timeout_secs,
        email_workers=email_workers,
        resend_api_key=resend_api_key,
        from_email=from_email,
        app_url=app_url,
        alert_function_secret=alert_function_secret,
        email_login_enabled=email_login_enabled,
    )
