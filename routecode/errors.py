"""Structured error types for the agent system."""

from typing import Optional


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


class ToolError(AgentError):
    """Error raised during tool execution."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name} error: {message}")


class TransportError(AgentError):
    """Raised when the model API cannot be reached or keeps failing."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class RunInProgressError(AgentError):
    """Raised when a run or plan is started while another one is active."""

    def __init__(self):
        super().__init__("A run is already in progress. Wait for it to finish.")


class NoPendingPlanError(AgentError):
    """Raised when /execute is requested without a stored plan."""

    def __init__(self):
        super().__init__("No pending plan. Use /plan <task> first.")


class ShellTimeoutError(AgentError):
    """Raised when a shell command exceeds its timeout."""

    def __init__(self, timeout: float, partial_output: str = ""):
        self.timeout = timeout
        self.partial_output = partial_output
        super().__init__(f"Timed out after {timeout:g}s")
