"""Pydantic models for agentspend records, aggregates and host events."""

import math
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CostSource = Literal["provider", "calculated", "override"]
TraceType = Literal["chat", "heartbeat", "cron", "subagent"]

RECORD_VERSION = 2


def _utcnow():
    return datetime.now(UTC)


# --- Records and aggregates ---


class CostRecord(BaseModel):
    """One metered agent turn. Never modified after it is written."""

    model_config = ConfigDict(frozen=True)

    id: str
    ts: int
    session_key: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    thinking_tokens: int = 0
    cost: float = Field(0.0, ge=0)
    cost_source: CostSource = "calculated"
    trace_type: TraceType = "chat"
    tools: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    is_subagent: bool = False
    parent_session: str | None = None
    record_version: int = RECORD_VERSION
    pricing_version: int = 0

    @model_validator(mode="after")
    def _check_lineage(self):
        if self.is_subagent != (self.parent_session is not None):
            raise ValueError("parent_session must be set exactly when is_subagent is true")
        return self


class BucketStat(BaseModel):
    cost: float = 0.0
    records: int = 0


class SessionCost(BaseModel):
    key: str
    cost: float


class Totals(BaseModel):
    """Running sums over a set of records."""

    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    thinking_tokens: int = 0
    records: int = 0
    by_model: dict[str, BucketStat] = Field(default_factory=dict)
    by_type: dict[str, BucketStat] = Field(default_factory=dict)

    def add(self, record: CostRecord) -> None:
        self.cost += record.cost
        self.input_tokens += record.input_tokens
        self.output_tokens += record.output_tokens
        self.cache_read_tokens += record.cache_read_tokens
        self.cache_write_tokens += record.cache_write_tokens
        self.thinking_tokens += record.thinking_tokens
        self.records += 1
        _bump(self.by_model, record.model, record.cost, 1)
        _bump(self.by_type, record.trace_type, record.cost, 1)

    def merge(self, other: "Totals") -> None:
        self.cost += other.cost
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_read_tokens += other.cache_read_tokens
        self.cache_write_tokens += other.cache_write_tokens
        self.thinking_tokens += other.thinking_tokens
        self.records += other.records
        for key, stat in other.by_model.items():
            _bump(self.by_model, key, stat.cost, stat.records)
        for key, stat in other.by_type.items():
            _bump(self.by_type, key, stat.cost, stat.records)


def _bump(buckets: dict[str, BucketStat], key: str, cost: float, records: int) -> None:
    stat = buckets.setdefault(key, BucketStat())
    stat.cost += cost
    stat.records += records


class DailyAggregate(Totals):
    """Point-in-time rollup of one UTC calendar day."""

    date: str
    top_sessions: list[SessionCost] = Field(default_factory=list)
    pricing_version: int = 0


class RangeTotals(Totals):
    start: str
    end: str


class TrendPoint(BaseModel):
    date: str
    cost: float = 0.0
    records: int = 0


class DaySnapshot(BaseModel):
    """Current-day totals persisted after every append."""

    date: str
    totals: Totals
    saved_at: datetime = Field(default_factory=_utcnow)


# --- Budgets ---


class BudgetState(BaseModel):
    alerts_sent: dict[str, list[str]] = Field(default_factory=dict)
    last_check: float = 0.0


class BudgetLine(BaseModel):
    budget: float
    spent: float
    remaining: float
    pct: int


class Projections(BaseModel):
    daily_rate: float
    projected_monthly: float


class BudgetStatus(BaseModel):
    daily: BudgetLine | None = None
    weekly: BudgetLine | None = None
    monthly: BudgetLine | None = None
    projections: Projections | None = None

    def lines(self) -> dict[str, BudgetLine]:
        periods = {"daily": self.daily, "weekly": self.weekly, "monthly": self.monthly}
        return {period: line for period, line in periods.items() if line is not None}


# --- Pricing table ---


class ModelPricing(BaseModel):
    """Per-million-token rates for one model."""

    model_config = ConfigDict(populate_by_name=True)

    provider: str
    input: float = Field(ge=0)
    output: float = Field(ge=0)
    cache_read: float | None = Field(None, alias="cacheRead")
    cache_write: float | None = Field(None, alias="cacheWrite")
    effective_date: str = Field(alias="effectiveDate")
    note: str | None = None


class PricingOverride(BaseModel):
    """User-supplied rates for one model. Missing input/output rates count as 0."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    input: float | None = None
    output: float | None = None
    cache_read: float | None = Field(None, alias="cacheRead")
    cache_write: float | None = Field(None, alias="cacheWrite")


class PricingData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: int
    updated_at: str = Field(alias="updatedAt")
    models: dict[str, ModelPricing]
    aliases: dict[str, str] = Field(default_factory=dict)
    provider_prefixes: list[str] = Field(default_factory=list, alias="providerPrefixes")


# --- Host events ---
#
# Hosts send loosely typed payloads. Odd values are coerced or dropped field by
# field so one bad field never loses the whole turn.


def _as_number(value, cast):
    """Non-negative ``cast`` of a number or numeric string; anything else is 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return cast(0)
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return cast(0)
    if not math.isfinite(number) or number < 0:
        return cast(0)
    return cast(number)


def _as_str(value) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


class _HostModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UsageCost(_HostModel):
    total: float = 0.0

    @field_validator("total", mode="before")
    @classmethod
    def _coerce_total(cls, value):
        return _as_number(value, float)


class Usage(_HostModel):
    """Token counts reported for a single message."""

    input: int = 0
    output: int = 0
    cache_read: int = Field(0, alias="cacheRead")
    cache_write: int = Field(0, alias="cacheWrite")
    cost: UsageCost | None = None

    @field_validator("input", "output", "cache_read", "cache_write", mode="before")
    @classmethod
    def _coerce_count(cls, value):
        return _as_number(value, int)

    @field_validator("cost", mode="before")
    @classmethod
    def _coerce_cost(cls, value):
        if isinstance(value, (dict, UsageCost)):
            return value
        if isinstance(value, (int, float, str)) and not isinstance(value, bool):
            return {"total": value}
        return None


class ContentBlock(_HostModel):
    type: str = ""
    name: str | None = None
    text: str | None = None
    thinking: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value):
        return _as_str(value) or ""

    @field_validator("name", "text", "thinking", mode="before")
    @classmethod
    def _coerce_str(cls, value):
        return _as_str(value)


class Message(_HostModel):
    role: str = ""
    model: str | None = None
    usage: Usage | None = None
    content: str | list[ContentBlock] | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _coerce_role(cls, value):
        return _as_str(value) or ""

    @field_validator("model", mode="before")
    @classmethod
    def _coerce_model(cls, value):
        return _as_str(value)

    @field_validator("usage", mode="before")
    @classmethod
    def _drop_foreign_usage(cls, value):
        return value if isinstance(value, (dict, Usage)) else None

    @field_validator("content", mode="before")
    @classmethod
    def _drop_foreign_blocks(cls, value):
        if isinstance(value, list):
            return [block for block in value if isinstance(block, (dict, ContentBlock))]
        if isinstance(value, str):
            return value
        return None

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            return "".join(block.text or "" for block in self.content)
        return ""


class CompletionEvent(_HostModel):
    """What the host delivers after every agent turn."""

    messages: list[Message] = Field(default_factory=list)
    duration_ms: int = Field(0, alias="durationMs")

    @field_validator("messages", mode="before")
    @classmethod
    def _drop_foreign_messages(cls, value):
        if not isinstance(value, list):
            return []
        return [message for message in value if isinstance(message, (dict, Message))]

    @field_validator("duration_ms", mode="before")
    @classmethod
    def _coerce_duration(cls, value):
        return _as_number(value, int)


class SessionContext(_HostModel):
    session_key: str = Field("unknown", alias="sessionKey")

    @field_validator("session_key", mode="before")
    @classmethod
    def _default_key(cls, value):
        return _as_str(value) or "unknown"
