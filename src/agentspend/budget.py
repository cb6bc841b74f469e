"""Budget ceilings and deduplicated threshold alerts.

For every configured period the tracker finds the highest threshold the
current spend has reached. If that threshold has not yet been alerted for the
current dedup bucket it is recorded and an alert string is produced.

Two dedup keyings are supported:

* ``period`` - one bucket per period instance (``daily:2026-10-19``,
  ``weekly:2026-W43``, ``monthly:2026-10``). A weekly alert fires once per
  ISO week, a monthly alert once per calendar month.
* ``date`` - a single bucket keyed by today's date shared by all periods, so
  weekly and monthly alerts can fire again on each new day.
"""

import calendar
import logging
from datetime import date
from pathlib import Path

from pydantic import ValidationError

from .config import BudgetConfig
from .ledger import write_json_atomic
from .models import BudgetLine, BudgetState, BudgetStatus, Projections, _utcnow
from .query import QueryEngine

logger = logging.getLogger("agentspend")

THRESHOLDS = (100, 95, 80, 50)
TOP_ITEMS_THRESHOLD = 80

PERIOD_LABELS = {"daily": "today", "weekly": "this week", "monthly": "this month"}


def bucket_key(period: str, today: date, dedup: str) -> str:
    if dedup == "date":
        return today.isoformat()
    if period == "weekly":
        iso = today.isocalendar()
        return f"weekly:{iso.year}-W{iso.week:02d}"
    if period == "monthly":
        return f"monthly:{today:%Y-%m}"
    return f"daily:{today.isoformat()}"


class BudgetTracker:
    def __init__(self, config: BudgetConfig, query: QueryEngine, state_path: Path, clock=_utcnow):
        self.config = config
        self.query = query
        self.state_path = Path(state_path)
        self.clock = clock
        self.state = BudgetState()

    def init(self):
        if not self.state_path.exists():
            return
        try:
            text = self.state_path.read_text(encoding="utf-8", errors="replace")
            self.state = BudgetState.model_validate_json(text)
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable budget state %s: %s", self.state_path, e)

    def _save(self):
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            write_json_atomic(self.state_path, self.state.model_dump_json())
        except OSError:
            logger.exception("Failed to write budget state")

    def _spent(self, period: str) -> float:
        if period == "weekly":
            return self.query.week_to_date().cost
        if period == "monthly":
            return self.query.month_to_date().cost
        return self.query.today().cost

    def check_budgets(self) -> list[str]:
        """Return alert strings for thresholds newly crossed. Empty when nothing fires."""
        store = self.query.store
        with store.lock:
            store.ensure_current_date()
            today = date.fromisoformat(store.current_date)
            configured = self.config.configured()
            keys = {period: bucket_key(period, today, self.config.dedup) for period in PERIOD_LABELS}

            current = set(keys.values())
            self.state.alerts_sent = {
                key: sent for key, sent in self.state.alerts_sent.items() if key in current
            }

            alerts = []
            for period, budget in configured.items():
                sent = self.state.alerts_sent.setdefault(keys[period], [])
                alert = self._check_threshold(period, self._spent(period), budget, sent)
                if alert:
                    alerts.append(alert)

            self.state.last_check = self.clock().timestamp()
            if alerts:
                self._save()
            return alerts

    def _check_threshold(self, period: str, spent: float, budget: float, sent: list[str]) -> str | None:
        pct = spent / budget * 100
        for threshold in THRESHOLDS:
            if pct < threshold:
                continue
            key = f"{period}-{threshold}"
            if key in sent:
                return None
            sent.append(key)
            logger.info("Budget threshold %s crossed: $%.2f of $%.2f", key, spent, budget)
            return self._format_alert(period, spent, budget, pct)
        return None

    def _format_alert(self, period: str, spent: float, budget: float, pct: float) -> str:
        remaining = budget - spent
        msg = f"${spent:.2f} of ${budget:.2f} {PERIOD_LABELS[period]} ({round(pct)}%)."
        if remaining > 0:
            msg += f" ${remaining:.2f} remaining."
        else:
            msg += " budget exceeded!"

        if pct >= TOP_ITEMS_THRESHOLD:
            top = [
                f"{session.key.split(':')[-1] or session.key} (${session.cost:.2f})"
                for session in self.query.top_sessions(3)
            ]
            if top:
                msg += f" top costs: {', '.join(top)}."
        return msg

    def status(self) -> BudgetStatus:
        status = BudgetStatus()
        for period, budget in self.config.configured().items():
            spent = self._spent(period)
            line = BudgetLine(
                budget=budget,
                spent=spent,
                remaining=max(0.0, budget - spent),
                pct=round(spent / budget * 100),
            )
            setattr(status, period, line)

        now = self.clock()
        hours_today = now.hour + now.minute / 60
        if hours_today > 1:
            daily_rate = self.query.today().cost / (hours_today / 24)
            days_in_month = calendar.monthrange(now.year, now.month)[1]
            status.projections = Projections(
                daily_rate=round(daily_rate, 2),
                projected_monthly=round(daily_rate * days_in_month, 2),
            )
        return status
