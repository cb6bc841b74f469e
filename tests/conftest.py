"""Shared fixtures: a controllable clock, the packaged pricing table and a store."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from agentspend.models import CostRecord
from agentspend.pricing import PricingResolver, load_pricing
from agentspend.query import QueryEngine
from agentspend.store import Store

# A Wednesday; the ISO week started on Monday 2026-10-19.
START = datetime(2026, 10, 21, 12, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_record(
    cost: float = 0.1,
    model: str = "claude-opus-4",
    trace_type: str = "chat",
    session_key: str = "agent:main:main",
    **kwargs,
) -> CostRecord:
    is_subagent = ":subagent:" in session_key
    fields = dict(
        id=uuid.uuid4().hex[:12],
        ts=int(START.timestamp()),
        session_key=session_key,
        model=model,
        input_tokens=1000,
        output_tokens=200,
        cost=cost,
        trace_type=trace_type,
        is_subagent=is_subagent,
        parent_session=session_key.split(":subagent:")[0] + ":main" if is_subagent else None,
        pricing_version=3,
    )
    fields.update(kwargs)
    return CostRecord(**fields)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def pricing():
    return load_pricing()


@pytest.fixture
def resolver(pricing):
    return PricingResolver(pricing)


@pytest.fixture
def store(tmp_path, clock):
    s = Store(tmp_path / "data", clock=clock)
    s.init()
    return s


@pytest.fixture
def query(store):
    return QueryEngine(store)
