"""Plain-text reports returned to the agent by the host's tool-call mechanism."""

from dataclasses import dataclass
from typing import Callable

from .budget import BudgetTracker
from .models import CostRecord
from .query import QueryEngine

NOTE = "note: current run cost not yet included."

HEARTBEAT_SUGGESTION_RUNS = 6
DOMINANT_MODEL_PCT = 80


def _label(session_key: str, segments: int = 2) -> str:
    return ":".join(session_key.split(":")[-segments:])


def spend_check(query: QueryEngine, budget: BudgetTracker) -> str:
    """How much have I spent?"""
    today = query.today()
    week = query.week_to_date()
    month = query.month_to_date()
    status = budget.status()

    lines = []
    for name, totals, line in (
        ("today", today, status.daily),
        ("week", week, status.weekly),
        ("month", month, status.monthly),
    ):
        text = f"{name}: ${totals.cost:.2f} ({totals.records} runs)"
        if line is not None:
            text += f" - {line.pct}% of ${line.budget:.2f} budget"
        lines.append(text)

    if today.by_model:
        lines += ["", "by model (today):"]
        for model, stat in sorted(today.by_model.items(), key=lambda item: -item[1].cost):
            lines.append(f"  {model}: ${stat.cost:.2f} ({stat.records} runs)")

    if today.by_type:
        lines += ["", "by type (today):"]
        for trace_type, stat in today.by_type.items():
            lines.append(f"  {trace_type}: ${stat.cost:.2f} ({stat.records} runs)")

    lines += ["", NOTE]
    return "\n".join(lines)


def spend_breakdown(query: QueryEngine) -> str:
    """What is my most expensive task?"""
    records = query.store.today_records()
    if not records:
        return "no cost records today yet."

    by_session: dict[str, list[CostRecord]] = {}
    for record in records:
        by_session.setdefault(record.session_key, []).append(record)

    ranked = sorted(by_session.items(), key=lambda item: -sum(r.cost for r in item[1]))
    lines = ["top sessions today:"]
    for session_key, session_records in ranked[:10]:
        cost = sum(r.cost for r in session_records)
        models = ", ".join(dict.fromkeys(r.model for r in session_records))
        lines.append(f"  {_label(session_key)}: ${cost:.2f} ({len(session_records)} runs, {models})")

    cron = [r for r in records if r.trace_type == "cron"]
    if cron:
        lines += ["", "cron jobs:"]
        by_job: dict[str, list[float]] = {}
        for record in cron:
            by_job.setdefault(_label(record.session_key, 1), []).append(record.cost)
        for job, costs in sorted(by_job.items(), key=lambda item: -sum(item[1])):
            lines.append(f"  {job}: ${sum(costs):.2f} ({len(costs)} runs)")

    subagents = [r for r in records if r.is_subagent]
    if subagents:
        lines += ["", "sub-agents:"]
        lines.append(f"  total: ${sum(r.cost for r in subagents):.2f} ({len(subagents)} runs)")
        by_parent: dict[str, float] = {}
        for record in subagents:
            parent = record.parent_session or "unknown"
            by_parent[parent] = by_parent.get(parent, 0.0) + record.cost
        for parent, cost in sorted(by_parent.items(), key=lambda item: -item[1]):
            lines.append(f"  parent {_label(parent)}: ${cost:.2f}")

    heartbeats = [r for r in records if r.trace_type == "heartbeat"]
    if heartbeats:
        lines += ["", f"heartbeats: ${sum(r.cost for r in heartbeats):.2f} ({len(heartbeats)} runs)"]

    lines += ["", NOTE]
    return "\n".join(lines)


def spend_budget(budget: BudgetTracker, query: QueryEngine) -> str:
    """Am I near my limit?"""
    status = budget.status()
    periods = status.lines()
    if not periods:
        return "\n".join([
            "no budgets configured.",
            "set AGENTSPEND_BUDGET_DAILY / AGENTSPEND_BUDGET_WEEKLY / AGENTSPEND_BUDGET_MONTHLY",
        ])

    lines = [
        f"{period}: ${line.spent:.2f} / ${line.budget:.2f} ({line.pct}%) - ${line.remaining:.2f} remaining"
        for period, line in periods.items()
    ]

    if status.projections is not None:
        lines += [
            "",
            f"projected daily rate: ${status.projections.daily_rate:.2f}",
            f"projected monthly: ${status.projections.projected_monthly:.2f}",
        ]

    suggestions = _suggestions(query.store.today_records())
    if suggestions:
        lines += ["", "suggestions:"]
        lines += [f"  - {s}" for s in suggestions]
    return "\n".join(lines)


def _suggestions(records: list[CostRecord]) -> list[str]:
    suggestions = []

    heartbeats = [r for r in records if r.trace_type == "heartbeat"]
    if len(heartbeats) >= HEARTBEAT_SUGGESTION_RUNS:
        cost = sum(r.cost for r in heartbeats)
        suggestions.append(
            f"heartbeats cost ${cost:.2f}/day ({len(heartbeats)} runs x ${cost / len(heartbeats):.3f})"
            " - consider extending the interval"
        )

    by_model: dict[str, float] = {}
    for record in records:
        by_model[record.model] = by_model.get(record.model, 0.0) + record.cost
    total = sum(by_model.values())
    if len(by_model) > 1 and total > 0:
        model, cost = max(by_model.items(), key=lambda item: item[1])
        pct = cost / total * 100
        if pct > DOMINANT_MODEL_PCT:
            suggestions.append(
                f"{model} accounts for {round(pct)}% of costs - consider a cheaper model for routine tasks"
            )

    return suggestions


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    render: Callable[[QueryEngine, BudgetTracker], str]


TOOLS = [
    ToolSpec(
        name="spend_check",
        description="Check current spend - today, this week, this month. Shows model breakdown and budget status.",
        render=spend_check,
    ),
    ToolSpec(
        name="spend_breakdown",
        description="Cost breakdown - top sessions, cron jobs, sub-agents, heartbeats.",
        render=lambda query, budget: spend_breakdown(query),
    ),
    ToolSpec(
        name="spend_budget",
        description="Budget status - remaining budget per period, projections and suggestions.",
        render=lambda query, budget: spend_budget(budget, query),
    ),
]
