"""In-memory cache of the current day, backed by the record log.

The Store owns exactly one "current date" together with that day's records
and running totals. Every public operation first calls ensure_current_date(),
which compacts the previous day into a DailyAggregate when the wall-clock
date has moved on.
"""

import logging
import threading
from datetime import date, timedelta
from pathlib import Path

from .ledger import RecordLog, aggregate_records
from .models import CostRecord, DailyAggregate, DaySnapshot, Totals, _utcnow

logger = logging.getLogger("agentspend")


class Store:
    def __init__(self, data_dir: Path, clock=_utcnow):
        self.log = RecordLog(data_dir)
        self.clock = clock
        # Guards the cache, rollover and budget state across threads.
        self.lock = threading.RLock()
        self.current_date = ""
        self._records: list[CostRecord] = []
        self._totals = Totals()

    def init(self):
        with self.lock:
            self.log.init()
            self.current_date = self.today()
            self._load_current_day()

    def today(self) -> str:
        return self.clock().date().isoformat()

    def _load_current_day(self):
        self._records = []
        self._totals = Totals()

        if self.log.has_records(self.current_date):
            try:
                records = self.log.read_records(self.current_date)
            except OSError as e:
                logger.warning("Cannot read records for %s: %s", self.current_date, e)
            else:
                if records:
                    for record in records:
                        self._records.append(record)
                        self._totals.add(record)
                    return

        snapshot = self.log.read_snapshot()
        if snapshot is not None and snapshot.date == self.current_date:
            self._totals = snapshot.totals
            logger.info("Restored totals for %s from snapshot", self.current_date)

    def ensure_current_date(self) -> bool:
        """Roll the cached day over if the date has changed. Returns True on rollover."""
        with self.lock:
            today = self.today()
            if today == self.current_date:
                return False
            previous = self.current_date
            if previous:
                logger.info("Day rollover %s -> %s", previous, today)
                self.roll(previous)
            self.current_date = today
            self._load_current_day()
            return True

    def roll(self, day: str) -> DailyAggregate | None:
        """Compact the raw log for ``day`` into a DailyAggregate.

        Safe to call repeatedly: the result depends only on the raw log.
        Returns None when there is nothing to roll.
        """
        with self.lock:
            try:
                records = self.log.read_records(day)
            except OSError as e:
                logger.warning("Cannot roll %s: %s", day, e)
                return None
            if not records:
                return None
            agg = aggregate_records(records, day)
            try:
                self.log.write_aggregate(agg)
            except OSError:
                logger.exception("Failed to write aggregate for %s", day)
            return agg

    def append(self, record: CostRecord):
        with self.lock:
            self.ensure_current_date()
            try:
                self.log.append(self.current_date, record)
            except OSError:
                logger.exception("Failed to append record %s", record.id)
            self._records.append(record)
            self._totals.add(record)
            self._save_snapshot()

    def _save_snapshot(self):
        snapshot = DaySnapshot(date=self.current_date, totals=self._totals, saved_at=self.clock())
        try:
            self.log.write_snapshot(snapshot)
        except OSError:
            logger.exception("Failed to write snapshot")

    def current_totals(self) -> Totals:
        with self.lock:
            self.ensure_current_date()
            return self._totals.model_copy(deep=True)

    def today_records(self) -> list[CostRecord]:
        with self.lock:
            self.ensure_current_date()
            return list(self._records)

    def cleanup_retention(self, retention_days: int) -> int:
        """Delete raw logs older than ``today - retention_days``. Aggregates are kept.

        A day without an aggregate is rolled first so it stays queryable; its log
        is kept when that roll does not produce an aggregate on disk.
        Returns the number of deleted log files.
        """
        with self.lock:
            self.ensure_current_date()
            cutoff = (date.fromisoformat(self.current_date) - timedelta(days=retention_days)).isoformat()
            deleted = 0
            for day in self.log.record_dates():
                if day >= cutoff:
                    break
                if self.log.read_aggregate(day) is None and not self._preserve(day):
                    continue
                try:
                    self.log.delete_records(day)
                except OSError as e:
                    logger.warning("Cannot delete records for %s: %s", day, e)
                    continue
                deleted += 1
            return deleted

    def _preserve(self, day: str) -> bool:
        """Roll ``day`` ahead of deletion. False when its records would be lost."""
        try:
            records = self.log.read_records(day)
        except OSError as e:
            logger.warning("Keeping records for %s, cannot read them: %s", day, e)
            return False
        if not records:
            return True
        self.roll(day)
        if self.log.read_aggregate(day) is None:
            logger.warning("Keeping records for %s, aggregate was not written", day)
            return False
        return True
