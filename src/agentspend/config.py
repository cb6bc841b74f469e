"""Configuration management for agentspend."""

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path))


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    value = float(raw)
    if value <= 0:
        raise ValueError(f"{name} must be > 0")
    return value


def _optional_path(name: str) -> Path | None:
    raw = os.getenv(name, "").strip()
    return _expand(raw) if raw else None


DATA_DIR = _expand(os.getenv("AGENTSPEND_DATA_DIR", "~/.agentspend"))
DASHBOARD_HOST = os.getenv("AGENTSPEND_DASHBOARD_HOST", "127.0.0.1")
DASHBOARD_PORT = int(os.getenv("AGENTSPEND_DASHBOARD_PORT", "3334"))
RETENTION_DAYS = int(os.getenv("AGENTSPEND_RETENTION_DAYS", "90"))

BUDGET_DAILY = _optional_float("AGENTSPEND_BUDGET_DAILY")
BUDGET_WEEKLY = _optional_float("AGENTSPEND_BUDGET_WEEKLY")
BUDGET_MONTHLY = _optional_float("AGENTSPEND_BUDGET_MONTHLY")
BUDGET_DEDUP = os.getenv("AGENTSPEND_BUDGET_DEDUP", "period")

PRICING_PATH = _optional_path("AGENTSPEND_PRICING_PATH")
PRICING_OVERRIDES_PATH = _optional_path("AGENTSPEND_PRICING_OVERRIDES")

ALERT_CHANNEL = os.getenv("AGENTSPEND_ALERT_CHANNEL", "log")
ALERT_WEBHOOK_URL = os.getenv("AGENTSPEND_ALERT_WEBHOOK_URL") or None
TELEGRAM_BOT_TOKEN = os.getenv("AGENTSPEND_TELEGRAM_BOT_TOKEN") or None
TELEGRAM_CHAT_ID = os.getenv("AGENTSPEND_TELEGRAM_CHAT_ID") or None

# Alert delivery timeouts (seconds)
CONNECT_TIMEOUT = 5
OVERALL_TIMEOUT = 10

# Query API bounds
MAX_TREND_DAYS = 90
MAX_LATEST_RECORDS = 100


class BudgetConfig(BaseModel):
    """Spend ceilings in USD. A period left as None is not checked."""

    daily: float | None = None
    weekly: float | None = None
    monthly: float | None = None
    dedup: Literal["period", "date"] = "period"

    def configured(self) -> dict[str, float]:
        periods = {"daily": self.daily, "weekly": self.weekly, "monthly": self.monthly}
        return {period: amount for period, amount in periods.items() if amount}


class Settings(BaseModel):
    """Everything the runtime needs, gathered in one place."""

    data_dir: Path = DATA_DIR
    dashboard_host: str = DASHBOARD_HOST
    dashboard_port: int = DASHBOARD_PORT
    retention_days: int = RETENTION_DAYS
    budget: BudgetConfig = BudgetConfig()
    pricing_path: Path | None = None
    pricing_overrides_path: Path | None = None
    alert_channel: str = "log"
    alert_webhook_url: str | None = None
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=DATA_DIR,
            dashboard_host=DASHBOARD_HOST,
            dashboard_port=DASHBOARD_PORT,
            retention_days=RETENTION_DAYS,
            budget=BudgetConfig(
                daily=BUDGET_DAILY,
                weekly=BUDGET_WEEKLY,
                monthly=BUDGET_MONTHLY,
                dedup=BUDGET_DEDUP,
            ),
            pricing_path=PRICING_PATH,
            pricing_overrides_path=PRICING_OVERRIDES_PATH,
            alert_channel=ALERT_CHANNEL,
            alert_webhook_url=ALERT_WEBHOOK_URL,
            telegram_bot_token=TELEGRAM_BOT_TOKEN,
            telegram_chat_id=TELEGRAM_CHAT_ID,
        )
