"""Date-partitioned JSON storage for cost records and daily aggregates.

Layout under the data directory::

    records/<YYYY-MM-DD>.jsonl          one CostRecord per line, append-only
    aggregates/daily/<YYYY-MM-DD>.json  DailyAggregate written at rollover
    state.json                          snapshot of the current day's totals

Full-file writes go through write_json_atomic so a crash never leaves a
half-written file in place. The record logs are appended to, so a crash can
leave at most one truncated trailing line, which readers skip.
"""

import logging
import os
from pathlib import Path

from pydantic import ValidationError

from .models import CostRecord, DailyAggregate, DaySnapshot, SessionCost

logger = logging.getLogger("agentspend")

TOP_SESSIONS = 10


def write_json_atomic(path: Path, payload: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(payload, encoding="utf-8")
    os.replace(tmp, path)


def aggregate_records(records: list[CostRecord], date: str) -> DailyAggregate:
    """Fold one day's records into a DailyAggregate. Pure and deterministic."""
    agg = DailyAggregate(date=date, pricing_version=records[0].pricing_version if records else 0)
    by_session: dict[str, float] = {}
    for record in records:
        agg.add(record)
        by_session[record.session_key] = by_session.get(record.session_key, 0.0) + record.cost

    ranked = sorted(by_session.items(), key=lambda item: (-item[1], item[0]))
    agg.top_sessions = [SessionCost(key=key, cost=cost) for key, cost in ranked[:TOP_SESSIONS]]
    return agg


class RecordLog:
    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.records_dir = self.data_dir / "records"
        self.daily_dir = self.data_dir / "aggregates" / "daily"
        self.snapshot_path = self.data_dir / "state.json"

    def init(self):
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self.daily_dir.mkdir(parents=True, exist_ok=True)

    def records_path(self, date: str) -> Path:
        return self.records_dir / f"{date}.jsonl"

    def aggregate_path(self, date: str) -> Path:
        return self.daily_dir / f"{date}.json"

    # --- Raw records ---

    def append(self, date: str, record: CostRecord):
        with open(self.records_path(date), "a", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")

    def has_records(self, date: str) -> bool:
        return self.records_path(date).exists()

    def read_records(self, date: str) -> list[CostRecord]:
        """All parsable records for a date. Raises OSError if the file exists but cannot be read."""
        path = self.records_path(date)
        if not path.exists():
            return []
        records = []
        # Undecodable bytes become U+FFFD; a torn trailing line then fails validation.
        with open(path, encoding="utf-8", errors="replace") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(CostRecord.model_validate_json(line))
                except ValidationError:
                    logger.debug("Skipping malformed record %s:%d", path.name, lineno)
        return records

    def record_dates(self) -> list[str]:
        if not self.records_dir.exists():
            return []
        return sorted(p.stem for p in self.records_dir.glob("*.jsonl"))

    def delete_records(self, date: str):
        self.records_path(date).unlink(missing_ok=True)

    # --- Daily aggregates ---

    def read_aggregate(self, date: str) -> DailyAggregate | None:
        path = self.aggregate_path(date)
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
            return DailyAggregate.model_validate_json(text)
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable aggregate %s: %s", path.name, e)
            return None

    def write_aggregate(self, agg: DailyAggregate):
        write_json_atomic(self.aggregate_path(agg.date), agg.model_dump_json())

    # --- Current-day snapshot ---

    def read_snapshot(self) -> DaySnapshot | None:
        if not self.snapshot_path.exists():
            return None
        try:
            text = self.snapshot_path.read_text(encoding="utf-8", errors="replace")
            return DaySnapshot.model_validate_json(text)
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable snapshot: %s", e)
            return None

    def write_snapshot(self, snapshot: DaySnapshot):
        write_json_atomic(self.snapshot_path, snapshot.model_dump_json())
