"""Turns host completion events into cost records."""

import logging
import math
import uuid

from .models import CompletionEvent, CostRecord, Message, SessionContext, TraceType, _utcnow
from .pricing import PricingResolver
from .store import Store

logger = logging.getLogger("agentspend")

USER_ROLES = frozenset(["user", "human"])
TOOL_BLOCK_TYPES = frozenset(["toolCall", "tool_use"])
HEARTBEAT_MARKERS = ("Read HEARTBEAT.md", "heartbeat")
SUBAGENT_MARKER = ":subagent:"

# Rough estimate used for thinking blocks, which carry no token count.
CHARS_PER_TOKEN = 4


def split_turn(messages: list[Message]) -> tuple[Message | None, list[Message]]:
    """Return the user message that opened the current turn and the messages after it."""
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].role in USER_ROLES:
            return messages[index], messages[index + 1:]
    return None, messages


def detect_trace_type(session_key: str, prompt: Message | None) -> TraceType:
    if SUBAGENT_MARKER in session_key:
        return "subagent"
    if ":cron:" in session_key or "cron-" in session_key:
        return "cron"
    if prompt is not None:
        text = prompt.text()
        if any(marker in text for marker in HEARTBEAT_MARKERS):
            return "heartbeat"
    return "chat"


def parent_session(session_key: str) -> str | None:
    if SUBAGENT_MARKER not in session_key:
        return None
    return session_key.split(SUBAGENT_MARKER)[0] + ":main"


class Tracker:
    def __init__(self, resolver: PricingResolver, store: Store, clock=_utcnow):
        self.resolver = resolver
        self.store = store
        self.clock = clock

    def track(self, event, ctx) -> CostRecord | None:
        """Meter one agent turn. Never raises; returns None when nothing was recorded."""
        try:
            record = self.build_record(event, ctx)
            if record is None:
                return None
            self.store.append(record)
        except Exception:
            logger.exception("Failed to track agent turn")
            return None
        logger.info(
            "REC %s model=%s in=%d out=%d cost=$%.4f (%s)",
            record.session_key,
            record.model,
            record.input_tokens,
            record.output_tokens,
            record.cost,
            record.cost_source,
        )
        return record

    def build_record(self, event, ctx) -> CostRecord | None:
        event = CompletionEvent.model_validate(event or {})
        ctx = SessionContext.model_validate(ctx or {})
        if not event.messages:
            return None

        prompt, turn = split_turn(event.messages)

        input_tokens = output_tokens = cache_read = cache_write = 0
        thinking_tokens = 0
        provider_cost = 0.0
        model = ""
        tools: set[str] = set()

        for msg in turn:
            if msg.usage is not None:
                input_tokens += msg.usage.input
                output_tokens += msg.usage.output
                cache_read += msg.usage.cache_read
                cache_write += msg.usage.cache_write
                if msg.usage.cost is not None:
                    provider_cost += msg.usage.cost.total

            if msg.model and not model:
                model = msg.model

            if msg.role == "assistant" and isinstance(msg.content, list):
                for block in msg.content:
                    if block.type in TOOL_BLOCK_TYPES and block.name:
                        tools.add(block.name)
                    elif block.type == "thinking" and block.thinking:
                        thinking_tokens += math.ceil(len(block.thinking) / CHARS_PER_TOKEN)

        model = model or "unknown"
        cost, source = self.resolver.resolve(
            model, input_tokens, output_tokens, cache_read, cache_write,
            provider_cost if provider_cost > 0 else None,
        )

        session_key = ctx.session_key
        parent = parent_session(session_key)
        return CostRecord(
            id=uuid.uuid4().hex[:12],
            ts=int(self.clock().timestamp()),
            session_key=session_key,
            model=self.resolver.normalize(model),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_read_tokens=cache_read,
            cache_write_tokens=cache_write,
            thinking_tokens=thinking_tokens,
            cost=round(cost, 6),
            cost_source=source,
            trace_type=detect_trace_type(session_key, prompt),
            tools=sorted(tools),
            duration_ms=event.duration_ms,
            is_subagent=parent is not None,
            parent_session=parent,
            pricing_version=self.resolver.version,
        )
