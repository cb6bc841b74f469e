"""agentspend - cost metering and budget alerts for agent runtimes."""

__version__ = "0.1.0"
