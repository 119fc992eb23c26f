"""Ballotguard configuration via pydantic-settings."""

import json
import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
    "code_pepper": "insecure-code-pepper-change-me",
    "audit_hmac_key": "insecure-audit-key-change-me",
    "api_key": "insecure-admin-key-change-me",
}


class BallotguardSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BALLOTGUARD_")

    environment: str = "development"
    secret_key: str = "insecure-dev-key-change-me"
    code_pepper: str = "insecure-code-pepper-change-me"
    audit_hmac_key: str = "insecure-audit-key-change-me"

    # Audit HMAC keyring: JSON dict mapping version (int) to key string.
    # When set, audit_hmac_key is ignored.
    audit_hmac_keys: str = ""

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/ballotguard.db"
    db_retry_attempts: int = 3
    db_retry_backoff: float = 0.1  # seconds, doubled per attempt

    # API
    api_title: str = "Ballotguard"
    api_version: str = "0.1.0"
    api_key: str = "insecure-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]
    log_level: str = "INFO"

    # Secret codes
    code_max_attempts: int = 3
    code_lockout_minutes: int = 15

    # Rate & anomaly guard
    rate_limit_window: int = 900  # seconds
    rate_limit_max_requests: int = 100
    failed_attempt_window: int = 900
    failed_attempt_threshold: int = 5
    burst_window: int = 60
    burst_threshold: int = 20
    off_hours_start: int = 6  # hour < start is off-hours
    off_hours_end: int = 22  # hour > end is off-hours
    rate_guard_fail_open: bool = True
    rate_counter_backend: str = "memory"
    # Peers whose X-Forwarded-For is believed; empty means the socket address is used
    trusted_proxies: list[str] = []

    # Audit
    audit_retention_days: int = 730

    # Scheduler
    scheduler_enabled: bool = True
    phase_tick_interval: int = 60  # seconds
    audit_purge_interval: int = 86400
    reminder_interval: int = 86400  # also the look-ahead window

    # Notifications
    notify_provider: str = ""  # "sendgrid", "resend" or "" for log-only
    notify_api_key: str = ""
    notify_from_email: str = "elections@ballotguard.local"
    notify_from_name: str = "Election Office"

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    @property
    def audit_keyring(self) -> dict[int, str]:
        """Return the audit HMAC keyring as {version_int: key_str}.

        If audit_hmac_keys is set, parse it as JSON.
        Otherwise, fall back to scalar audit_hmac_key as version 0.
        """
        if self.audit_hmac_keys:
            try:
                raw = json.loads(self.audit_hmac_keys)
            except (json.JSONDecodeError, TypeError) as exc:
                raise ValueError(
                    "BALLOTGUARD_AUDIT_HMAC_KEYS must be valid JSON "
                    f"(e.g. '{{\"0\": \"key\"}}'), got: {self.audit_hmac_keys!r}"
                ) from exc
            return {int(k): v for k, v in raw.items()}
        return {0: self.audit_hmac_key}

    @property
    def current_audit_key(self) -> str:
        """Return the audit HMAC key for the current (highest) version."""
        ring = self.audit_keyring
        return ring[max(ring.keys())]

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"BALLOTGUARD_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default keys; set BALLOTGUARD_SECRET_KEY, "
                "BALLOTGUARD_CODE_PEPPER, BALLOTGUARD_AUDIT_HMAC_KEY, "
                "BALLOTGUARD_API_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> BallotguardSettings:
    settings = BallotguardSettings()
    settings.validate_for_production()
    return settings
