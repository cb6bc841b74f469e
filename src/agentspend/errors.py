"""Exceptions raised by agentspend."""


class AgentSpendError(Exception):
    """Base class for agentspend errors."""


class PricingNotFoundError(AgentSpendError):
    """Raised when no pricing table can be loaded from any known location."""
