"""Totals for today, week-to-date, month-to-date and trailing-day trends.

Each calendar date is resolved from the richest source available: the live
in-memory totals for the current day, then a precomputed DailyAggregate,
then a replay of the raw record log. A date with none of these counts as zero.
"""

import logging
from datetime import date, timedelta

from .models import BucketStat, CostRecord, RangeTotals, SessionCost, Totals, TrendPoint
from .store import Store

logger = logging.getLogger("agentspend")

DIMENSIONS = ("model", "type", "session")


def _days(start: date, end: date):
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


class QueryEngine:
    def __init__(self, store: Store):
        self.store = store

    def _current_day(self) -> date:
        self.store.ensure_current_date()
        return date.fromisoformat(self.store.current_date)

    def day_totals(self, day: str) -> Totals:
        with self.store.lock:
            if day == self.store.current_date:
                return self.store.current_totals()
            agg = self.store.log.read_aggregate(day)
            if agg is not None:
                return agg
            try:
                records = self.store.log.read_records(day)
            except OSError as e:
                logger.warning("Cannot read records for %s: %s", day, e)
                records = []
            totals = Totals()
            for record in records:
                totals.add(record)
            return totals

    def sum_range(self, start: date, end: date) -> RangeTotals:
        with self.store.lock:
            self.store.ensure_current_date()
            result = RangeTotals(start=start.isoformat(), end=end.isoformat())
            for day in _days(start, end):
                result.merge(self.day_totals(day.isoformat()))
            return result

    def today(self) -> RangeTotals:
        with self.store.lock:
            today = self._current_day()
            return self.sum_range(today, today)

    def week_to_date(self) -> RangeTotals:
        """Monday 00:00 UTC through now."""
        with self.store.lock:
            today = self._current_day()
            return self.sum_range(today - timedelta(days=today.weekday()), today)

    def month_to_date(self) -> RangeTotals:
        with self.store.lock:
            today = self._current_day()
            return self.sum_range(today.replace(day=1), today)

    def trend(self, days: int) -> list[TrendPoint]:
        """Exactly ``days`` points ending today, oldest first, zero-filled."""
        with self.store.lock:
            today = self._current_day()
            points = []
            for offset in range(days - 1, -1, -1):
                day = (today - timedelta(days=offset)).isoformat()
                totals = self.day_totals(day)
                points.append(TrendPoint(date=day, cost=totals.cost, records=totals.records))
            return points

    def latest(self, limit: int = 10) -> list[CostRecord]:
        """Most recent records of the current day, newest first."""
        if limit <= 0:
            return []
        records = self.store.today_records()
        return records[-limit:][::-1]

    def breakdown(self, dimension: str) -> dict[str, BucketStat]:
        if dimension not in DIMENSIONS:
            raise ValueError(f"Unknown breakdown dimension: {dimension!r} (expected one of {DIMENSIONS})")
        with self.store.lock:
            if dimension == "model":
                return self.store.current_totals().by_model
            if dimension == "type":
                return self.store.current_totals().by_type
            result: dict[str, BucketStat] = {}
            for record in self.store.today_records():
                stat = result.setdefault(record.session_key, BucketStat())
                stat.cost += record.cost
                stat.records += 1
            return result

    def top_sessions(self, limit: int = 3) -> list[SessionCost]:
        by_session = self.breakdown("session")
        ranked = sorted(by_session.items(), key=lambda item: (-item[1].cost, item[0]))
        return [SessionCost(key=key, cost=stat.cost) for key, stat in ranked[:limit]]
