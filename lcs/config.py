# lcs/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal
from urllib.parse import quote


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    run_mode: Literal["all", "web", "worker"] = "all"
    log_level: str = "INFO"

    # Database
    expected_schema_version: str = "002_signal_queue.sql"  # Update on deploy when new migrations are added
    database_url: str | None = None
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: str = ""
    pgdatabase: str = "postgres"
    pg_pool_min: int = 2
    pg_pool_max: int = 20
    pg_connect_timeout: int = 5
    pg_statement_timeout_ms: int = 30000
    pg_idle_in_tx_timeout_ms: int = 30000

    # Security
    admin_token: str | None = None  # Bearer token for POST /signals
    allowed_origins: list[str] = ["*"]

    # Capacity gate
    founder_calendar_available: bool = True  # Global kill switch: false drops every signal
    agent_daily_cap: int = 50

    # Suppression gate
    min_contact_interval_days: int = 14
    company_weekly_cap: int = 3

    # Freshness gate (days a data source stays fresh)
    freshness_window_people: int = 30
    freshness_window_dol: int = 90
    freshness_window_blog: int = 60
    freshness_window_sitemap: int = 60

    # Dispatch
    default_channel: Literal["MG", "HR", "SH"] = "MG"
    default_agent_number: str = "UNASSIGNED"
    adapter_timeout_seconds: float = 25.0

    # Mailgun (MG)
    mailgun_api_key: str | None = None
    mailgun_base_url: str = "https://api.mailgun.net/v3"
    mailgun_sender_domain: str | None = None  # e.g., "mg.example.com"
    mailgun_sender_email: str | None = None  # e.g., "outreach@mg.example.com"
    mailgun_webhook_signing_key: str | None = None

    # HeyReach (HR)
    heyreach_api_key: str | None = None
    heyreach_base_url: str = "https://api.heyreach.io/api/public"

    # Monitoring & Metrics
    enable_metrics: bool = True
    metrics_token: str | None = None  # If not set, /metrics is open

    # Signal Worker (DB-backed queue)
    signal_worker_enabled: bool = False          # Master switch, enable explicitly in worker service
    signal_worker_poll_interval: float = 2.0     # Seconds between polls when idle
    signal_worker_batch_size: int = 10           # Signals claimed per poll cycle
    signal_worker_stale_timeout: int = 300       # Reset signals stuck 'PROCESSING' for this long (seconds)
    orbt_requeue_enabled: bool = True            # Enqueue AUTO_RETRY / ALT_CHANNEL attempts
    orbt_retry_delay_seconds: int = 900          # Delay before a requeued attempt becomes claimable

    # Feature Flags
    require_webhook_validation: bool = True

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url

        return (
            f"postgresql://{quote(self.pguser, safe='')}:{quote(self.pgpassword, safe='')}"
            f"@{self.pghost}:{self.pgport}/{self.pgdatabase}"
        )

    @property
    def mailgun_enabled(self) -> bool:
        """Check if Mailgun is configured"""
        return bool(self.mailgun_api_key and self.mailgun_sender_domain)

    @property
    def heyreach_enabled(self) -> bool:
        return bool(self.heyreach_api_key)

    @property
    def freshness_windows(self) -> dict[str, int]:
        """Freshness window (days) per data source, keyed by source name"""
        return {
            "PEOPLE": self.freshness_window_people,
            "DOL": self.freshness_window_dol,
            "BLOG": self.freshness_window_blog,
            "SITEMAP": self.freshness_window_sitemap,
        }

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []

        required_fields = [
            ("admin_token", self.admin_token),
        ]

        # The default channel must be able to deliver
        if self.default_channel == "MG":
            required_fields.extend([
                ("mailgun_api_key", self.mailgun_api_key),
                ("mailgun_sender_domain", self.mailgun_sender_domain),
            ])
        elif self.default_channel == "HR":
            required_fields.append(("heyreach_api_key", self.heyreach_api_key))

        if self.require_webhook_validation:
            required_fields.append(("mailgun_webhook_signing_key", self.mailgun_webhook_signing_key))

        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    # --- Admin / Security ---
    if s.is_production and not s.admin_token:
        warnings.append("prod: admin_token is missing (POST /signals will reject every request).")

    if s.is_production and s.allowed_origins == ["*"]:
        warnings.append("prod: allowed_origins=['*'] (CORS is wide open).")

    # --- Metrics exposure ---
    if s.enable_metrics and not s.metrics_token:
        warnings.append("enable_metrics=True but metrics_token is not set: /metrics is public.")

    # --- Dispatch policy ---
    if not s.founder_calendar_available:
        warnings.append("founder_calendar_available=False: every signal will be dropped by the capacity gate.")

    if s.agent_daily_cap <= 0:
        warnings.append(f"agent_daily_cap={s.agent_daily_cap}: agents can never send.")

    if s.company_weekly_cap <= 0:
        warnings.append(f"company_weekly_cap={s.company_weekly_cap}: every company is throttled.")

    # --- Provider configuration ---
    if not s.mailgun_enabled:
        warnings.append("Mailgun is not configured (MG sends will fail validation).")
    elif not s.mailgun_sender_email:
        warnings.append("mailgun_sender_email is not set (sender defaults to noreply@<domain>).")

    if not s.heyreach_enabled:
        warnings.append("HeyReach is not configured (HR sends will fail validation).")

    if s.require_webhook_validation and not s.mailgun_webhook_signing_key:
        warnings.append("require_webhook_validation=True but mailgun_webhook_signing_key is not set.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    # Logging is not configured yet at import time
    for msg in warn_on_risky_config(s):
        print(f"[WARN][config] {msg}")

settings = Settings()
validate_or_warn(settings)
