"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from agentspend import config
from agentspend.cli import cli


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    path = tmp_path / "data"
    monkeypatch.setattr(config, "DATA_DIR", path)
    return path


@pytest.fixture
def event_file(tmp_path):
    path = tmp_path / "event.json"
    path.write_text(json.dumps({
        "messages": [
            {"role": "user", "content": "summarize the inbox"},
            {"role": "assistant", "model": "openai/gpt-4o", "usage": {"input": 200_000, "output": 10_000}},
        ],
        "durationMs": 800,
    }))
    return path


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_ingest_then_check(data_dir, event_file):
    runner = CliRunner()
    result = runner.invoke(cli, ["ingest", str(event_file), "--session-key", "agent:main:main"])
    assert result.exit_code == 0, result.output
    assert "Recorded" in result.output
    assert "gpt-4o" in result.output
    assert len(list((data_dir / "records").glob("*.jsonl"))) == 1

    result = runner.invoke(cli, ["check"])
    assert result.exit_code == 0
    # 200k * $2.50/M + 10k * $10/M
    assert "today: $0.60 (1 runs)" in result.output


def test_ingest_empty_event(data_dir, tmp_path):
    path = tmp_path / "empty.json"
    path.write_text('{"messages": []}')
    result = CliRunner().invoke(cli, ["ingest", str(path)])
    assert result.exit_code == 0
    assert "No record produced" in result.output


def test_ingest_invalid_json(data_dir, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{nope")
    result = CliRunner().invoke(cli, ["ingest", str(path)])
    assert result.exit_code != 0
    assert "Invalid event JSON" in result.output


def test_breakdown_and_budget(data_dir, event_file, monkeypatch):
    monkeypatch.setattr(config, "BUDGET_DAILY", 1.0)
    runner = CliRunner()
    runner.invoke(cli, ["ingest", str(event_file)])

    result = runner.invoke(cli, ["breakdown"])
    assert "top sessions today:" in result.output

    result = runner.invoke(cli, ["budget"])
    assert "daily: $0.60 / $1.00 (60%)" in result.output


def test_trend(data_dir):
    result = CliRunner().invoke(cli, ["trend", "--days", "3"])
    assert result.exit_code == 0
    assert "TOTAL" in result.output


def test_trend_bounds(data_dir):
    assert CliRunner().invoke(cli, ["trend", "--days", "0"]).exit_code != 0


def test_tail(data_dir, event_file):
    runner = CliRunner()
    runner.invoke(cli, ["ingest", str(event_file), "-s", "cron:inbox"])
    result = runner.invoke(cli, ["tail", "-n", "5"])
    assert result.exit_code == 0
    assert "gpt-4o" in result.output


def test_cleanup(data_dir, monkeypatch):
    # Keep startup retention from deleting the file first.
    monkeypatch.setattr(config, "RETENTION_DAYS", 100_000)
    (data_dir / "records").mkdir(parents=True)
    (data_dir / "records" / "2001-01-01.jsonl").write_text("")
    result = CliRunner().invoke(cli, ["cleanup", "--days", "30"])
    assert result.exit_code == 0
    assert "Deleted 1 record file(s) older than 30 days." in result.output
