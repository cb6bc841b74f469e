"""Wires the metering pipeline together for a host agent runtime."""

import logging
import threading

from .alerts import AlertChannel, build_channel
from .budget import BudgetTracker
from .config import Settings
from .models import CostRecord, _utcnow
from .pricing import PricingResolver, get_pricing_data, load_overrides, load_pricing
from .query import QueryEngine
from .reports import TOOLS
from .store import Store
from .tracker import Tracker

logger = logging.getLogger("agentspend")

ALERT_PREFIX = "spend alert: "


class MeterRuntime:
    def __init__(
        self,
        settings: Settings,
        resolver: PricingResolver,
        channel: AlertChannel,
        clock=_utcnow,
        background_delivery: bool = True,
    ):
        self.settings = settings
        self.resolver = resolver
        self.channel = channel
        self.background_delivery = background_delivery
        self.store = Store(settings.data_dir, clock=clock)
        self.query = QueryEngine(self.store)
        self.tracker = Tracker(resolver, self.store, clock=clock)
        self.budget = BudgetTracker(
            settings.budget, self.query, settings.data_dir / "budget-state.json", clock=clock
        )
        self.tools = {tool.name: tool for tool in TOOLS}

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> "MeterRuntime":
        settings = settings or Settings.from_env()
        data = load_pricing(settings.pricing_path) if settings.pricing_path else get_pricing_data()
        resolver = PricingResolver(data, load_overrides(settings.pricing_overrides_path))
        runtime = cls(settings, resolver, build_channel(settings), **kwargs)
        runtime.init()
        return runtime

    def init(self):
        self.store.init()
        self.budget.init()
        deleted = self.store.cleanup_retention(self.settings.retention_days)
        if deleted:
            logger.info(
                "Cleaned up %d old record files (retention: %d days)", deleted, self.settings.retention_days
            )
        logger.info("Cost tracking active, data in %s", self.settings.data_dir)

    def on_agent_end(self, event, ctx) -> CostRecord | None:
        """Host hook: meter the turn, then check budgets and dispatch any alerts."""
        record = self.tracker.track(event, ctx)
        if record is None:
            return None
        try:
            alerts = self.budget.check_budgets()
        except Exception:
            logger.exception("Budget check failed")
            return record
        if alerts:
            self._dispatch(ALERT_PREFIX + "\n".join(alerts))
        return record

    def _dispatch(self, text: str):
        if not self.background_delivery:
            self._deliver(text)
            return
        threading.Thread(target=self._deliver, args=(text,), name="agentspend-alert", daemon=True).start()

    def _deliver(self, text: str):
        try:
            self.channel.deliver(text)
        except Exception:
            logger.exception("Alert delivery via %s raised", self.channel.name)

    def run_tool(self, name: str) -> str:
        """Render a tool report by name. Raises KeyError for unknown tools."""
        return self.tools[name].render(self.query, self.budget)
