"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from
environment variables.  Defaults are provided for all fields so the
API starts with no configuration at all; in a production deployment
override them via environment variables.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Taskflow API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Optional path of a log file.  When empty only the console handler
    # is attached.
    log_file: str = os.getenv("LOG_FILE", "")
    secret_key: str = os.getenv("SECRET_KEY", "change_me")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24)))

    # Optional static token for super‑administrator API access.  Requests
    # carrying this token are treated as the first super administrator.
    # Intended for the external cron trigger (see scripts/trigger_cron.py).
    super_admin_static_token: str = os.getenv("SUPER_ADMIN_TOKEN", "")

    # Path or connection string for the SQLite database.  Relative paths
    # are resolved against the project root by ``core.db``.
    database_url: str = os.getenv("DATABASE_URL", "taskflow.db")

    # Business timezone.  "Today", "end of day" and the cron schedule are
    # all evaluated in this zone.
    timezone: str = os.getenv("TIMEZONE", "Asia/Manila")

    # Background jobs (overdue sweep and routinary task creation).
    cron_enabled: bool = _env_bool("CRON_ENABLED", "true")
    cron_hour: int = int(os.getenv("CRON_HOUR", "0"))
    cron_minute: int = int(os.getenv("CRON_MINUTE", "0"))

    # Forgot‑password throttling: one request per email per 24 hours.
    password_reset_window_seconds: int = int(os.getenv("PASSWORD_RESET_WINDOW_SECONDS", str(24 * 60 * 60)))
    password_reset_max_requests: int = int(os.getenv("PASSWORD_RESET_MAX_REQUESTS", "1"))
    password_reset_token_minutes: int = int(os.getenv("PASSWORD_RESET_TOKEN_MINUTES", "60"))

    # Public URL of the web client, used to build password reset links.
    app_url: str = os.getenv("APP_URL", "http://localhost:3000")

    # Outgoing mail.  When ``smtp_host`` is empty, reset links are only
    # written to the log (development mode).
    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_user: str = os.getenv("SMTP_USER", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "")
    smtp_from: str = os.getenv("SMTP_FROM", "no-reply@taskflow.local")


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables
# should be set before importing this module.
settings = Settings()
