from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """
    Simple configuration (controlled through environment variables).
    """

    # At most 20; larger values are refused by HistoryStore.
    history_size: int = int(os.getenv("SMARTMONITOR_HISTORY_SIZE", 20))
    analysis_interval_seconds: float = float(os.getenv("SMARTMONITOR_ANALYSIS_INTERVAL_SEC", 30))
    analysis_reject_when_busy: bool = _env_flag("SMARTMONITOR_ANALYSIS_REJECT_WHEN_BUSY")
    device_id: str = os.getenv("SMARTMONITOR_DEVICE_ID", "ESP32-001")
    api_key: str = os.getenv("API_KEY", "dev-1234")
    dashboard_limit: int = int(os.getenv("SMARTMONITOR_DASHBOARD_LIMIT", 100))
    run_log_limit: int = int(os.getenv("SMARTMONITOR_RUN_LOG_LIMIT", 50))
    slack_webhook: str = os.getenv("SMARTMONITOR_SLACK_WEBHOOK", "")
    smtp_host: str = os.getenv("SMARTMONITOR_SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMARTMONITOR_SMTP_PORT", 587))
    smtp_username: str = os.getenv("SMARTMONITOR_SMTP_USERNAME", "")
    smtp_password: str = os.getenv("SMARTMONITOR_SMTP_PASSWORD", "")
    smtp_sender: str = os.getenv("SMARTMONITOR_SMTP_SENDER", "alerts@example.com")
    smtp_recipients: str = os.getenv("SMARTMONITOR_SMTP_RECIPIENTS", "")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
