"""Tests for the record log, the current-day cache and day rollover."""

from datetime import timedelta

import pytest

from agentspend.ledger import RecordLog, aggregate_records
from agentspend.models import DaySnapshot, Totals
from agentspend.query import QueryEngine
from agentspend.store import Store

from .conftest import START, make_record

TODAY = START.date().isoformat()
YESTERDAY = (START.date() - timedelta(days=1)).isoformat()


def _ingest_example(store):
    store.append(make_record(0.10, "claude-opus-4", "chat"))
    store.append(make_record(0.05, "claude-sonnet-4", "heartbeat"))
    store.append(make_record(0.20, "claude-opus-4", "chat"))


def test_append_updates_running_totals(store):
    _ingest_example(store)

    totals = store.current_totals()
    assert totals.cost == pytest.approx(0.35)
    assert totals.records == 3
    assert totals.by_model["claude-opus-4"].cost == pytest.approx(0.30)
    assert totals.by_model["claude-opus-4"].records == 2
    assert totals.by_type["heartbeat"].cost == pytest.approx(0.05)


def test_append_writes_one_line_per_record(store):
    _ingest_example(store)

    lines = store.log.records_path(TODAY).read_text().splitlines()
    assert len(lines) == 3
    assert [r.id for r in store.log.read_records(TODAY)] == [r.id for r in store.today_records()]


def test_append_saves_snapshot(store):
    _ingest_example(store)

    snapshot = store.log.read_snapshot()
    assert snapshot.date == TODAY
    assert snapshot.totals.records == 3


def test_current_totals_is_a_copy(store):
    store.append(make_record(1.0))
    copy = store.current_totals()
    copy.cost = 999
    assert store.current_totals().cost == pytest.approx(1.0)


def test_restart_rebuilds_from_log(tmp_path, clock):
    first = Store(tmp_path, clock=clock)
    first.init()
    _ingest_example(first)

    second = Store(tmp_path, clock=clock)
    second.init()
    assert second.current_totals().cost == pytest.approx(0.35)
    assert len(second.today_records()) == 3


def test_malformed_lines_are_skipped(tmp_path, clock):
    store = Store(tmp_path, clock=clock)
    store.init()
    store.append(make_record(0.5))
    with open(store.log.records_path(TODAY), "a") as f:
        f.write("not json\n")
        f.write('{"id": "trunc')

    reloaded = Store(tmp_path, clock=clock)
    reloaded.init()
    assert reloaded.current_totals().records == 1
    assert reloaded.current_totals().cost == pytest.approx(0.5)


def test_snapshot_used_when_log_is_missing(tmp_path, clock):
    log = RecordLog(tmp_path)
    log.init()
    totals = Totals(cost=4.2, records=7)
    log.write_snapshot(DaySnapshot(date=TODAY, totals=totals))

    store = Store(tmp_path, clock=clock)
    store.init()
    assert store.current_totals().cost == pytest.approx(4.2)
    assert store.current_totals().records == 7
    assert store.today_records() == []


def test_stale_snapshot_is_ignored(tmp_path, clock):
    log = RecordLog(tmp_path)
    log.init()
    log.write_snapshot(DaySnapshot(date=YESTERDAY, totals=Totals(cost=4.2, records=7)))

    store = Store(tmp_path, clock=clock)
    store.init()
    assert store.current_totals().records == 0


def test_log_wins_over_snapshot(tmp_path, clock):
    log = RecordLog(tmp_path)
    log.init()
    log.append(TODAY, make_record(0.25))
    log.write_snapshot(DaySnapshot(date=TODAY, totals=Totals(cost=4.2, records=7)))

    store = Store(tmp_path, clock=clock)
    store.init()
    assert store.current_totals().cost == pytest.approx(0.25)
    assert store.current_totals().records == 1


def test_failed_log_write_still_counts_in_memory(store, monkeypatch):
    def boom(date, record):
        raise OSError("disk full")

    monkeypatch.setattr(store.log, "append", boom)
    store.append(make_record(0.3))
    assert store.current_totals().cost == pytest.approx(0.3)


class TestRollover:
    def test_no_rollover_on_same_day(self, store):
        assert store.ensure_current_date() is False

    def test_append_after_midnight_rolls_previous_day(self, store, clock):
        _ingest_example(store)
        clock.advance(days=1)
        store.append(make_record(1.0))

        agg = store.log.read_aggregate(TODAY)
        assert agg is not None
        assert agg.cost == pytest.approx(0.35)
        assert agg.records == 3
        assert store.current_date == (START.date() + timedelta(days=1)).isoformat()
        assert store.current_totals().cost == pytest.approx(1.0)

    def test_read_after_midnight_rolls_too(self, store, clock):
        _ingest_example(store)
        clock.advance(days=1)

        assert store.ensure_current_date() is True
        assert store.log.read_aggregate(TODAY).cost == pytest.approx(0.35)
        assert store.current_totals().records == 0

    def test_roll_is_idempotent(self, store):
        _ingest_example(store)
        store.roll(TODAY)
        first = store.log.aggregate_path(TODAY).read_bytes()
        store.roll(TODAY)
        assert store.log.aggregate_path(TODAY).read_bytes() == first

    def test_roll_without_log_is_a_no_op(self, store):
        assert store.roll("2020-01-01") is None
        assert not store.log.aggregate_path("2020-01-01").exists()

    def test_aggregate_ranks_top_sessions(self):
        records = [
            make_record(0.5, session_key="agent:main:main"),
            make_record(0.7, session_key="agent:main:cron:digest"),
            make_record(0.4, session_key="agent:main:main"),
        ]
        agg = aggregate_records(records, TODAY)
        assert [s.key for s in agg.top_sessions] == ["agent:main:main", "agent:main:cron:digest"]
        assert agg.top_sessions[0].cost == pytest.approx(0.9)
        assert agg.pricing_version == 3


class TestRetention:
    def test_removes_only_logs_older_than_window(self, store):
        today = START.date()
        for offset in range(1, 121):
            day = (today - timedelta(days=offset)).isoformat()
            store.log.append(day, make_record(0.01 * offset))
        old_day = (today - timedelta(days=100)).isoformat()
        edge_day = (today - timedelta(days=90)).isoformat()

        deleted = store.cleanup_retention(90)

        assert deleted == 30
        remaining = store.log.record_dates()
        assert len(remaining) == 90
        assert min(remaining) == edge_day
        assert not store.log.has_records(old_day)

        # Rolled before deletion, so still queryable.
        query = QueryEngine(store)
        assert query.day_totals(old_day).cost == pytest.approx(1.0)
        assert query.day_totals(old_day).records == 1

    def test_existing_aggregate_is_kept(self, store):
        day = (START.date() - timedelta(days=200)).isoformat()
        store.log.append(day, make_record(2.0))
        store.roll(day)
        before = store.log.aggregate_path(day).read_bytes()

        assert store.cleanup_retention(90) == 1
        assert store.log.aggregate_path(day).read_bytes() == before

    def test_log_kept_when_aggregate_cannot_be_written(self, store, monkeypatch):
        day = (START.date() - timedelta(days=100)).isoformat()
        store.log.append(day, make_record(2.0))

        def disk_full(agg):
            raise OSError("disk full")

        monkeypatch.setattr(store.log, "write_aggregate", disk_full)
        assert store.cleanup_retention(90) == 0
        assert store.log.has_records(day)
        assert QueryEngine(store).day_totals(day).cost == pytest.approx(2.0)

    def test_log_kept_when_unreadable(self, store, monkeypatch):
        day = (START.date() - timedelta(days=100)).isoformat()
        store.log.append(day, make_record(2.0))

        def unreadable(date):
            raise OSError("permission denied")

        monkeypatch.setattr(store.log, "read_records", unreadable)
        assert store.cleanup_retention(90) == 0
        assert store.log.has_records(day)

    def test_keeps_todays_log(self, store):
        store.append(make_record(0.1))
        assert store.cleanup_retention(1) == 0
        assert store.log.has_records(TODAY)


def test_undecodable_bytes_are_skipped(tmp_path, clock):
    store = Store(tmp_path, clock=clock)
    store.init()
    store.append(make_record(0.5))
    with open(store.log.records_path(TODAY), "ab") as f:
        f.write(b'{"id": "x", "session_key": "agent:caf\xc3')
    with open(store.log.records_path(YESTERDAY), "wb") as f:
        f.write(make_record(1.25).model_dump_json().encode() + b"\n\xff\xfe\n")

    reloaded = Store(tmp_path, clock=clock)
    reloaded.init()
    assert reloaded.current_totals().records == 1
    assert QueryEngine(reloaded).week_to_date().cost == pytest.approx(1.75)


def test_snapshot_used_when_log_has_no_valid_records(tmp_path, clock):
    log = RecordLog(tmp_path)
    log.init()
    log.records_path(TODAY).write_text("garbage\n{\"id\": 1}\n")
    log.write_snapshot(DaySnapshot(date=TODAY, totals=Totals(cost=4.2, records=7)))

    store = Store(tmp_path, clock=clock)
    store.init()
    assert store.current_totals().cost == pytest.approx(4.2)
