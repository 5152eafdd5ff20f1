"""Small value types shared by the run and planning controllers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

__all__ = ["TokenUsage", "AgentRunState", "PendingPlan", "RunOutcome", "PlanOutcome"]


@dataclass
class TokenUsage:
    input: int = 0
    output: int = 0

    def add(self, other: "TokenUsage") -> None:
        self.input += max(0, int(other.input or 0))
        self.output += max(0, int(other.output or 0))

    @property
    def total(self) -> int:
        return self.input + self.output

    def copy(self) -> "TokenUsage":
        return TokenUsage(self.input, self.output)

    def to_dict(self) -> Dict[str, int]:
        return {"input": self.input, "output": self.output}

    @classmethod
    def from_dict(cls, data: Any) -> "TokenUsage":
        if not isinstance(data, dict):
            return cls()
        try:
            return cls(max(0, int(data.get("input", 0))), max(0, int(data.get("output", 0))))
        except (TypeError, ValueError):
            return cls()


class AgentRunState(str, Enum):
    """User-facing progress state. Informational only."""
    IDLE = "idle"
    THINKING = "thinking"
    STREAMING = "streaming"
    TOOL_CALLING = "tool_calling"
    EXECUTING = "executing"
    WAITING = "waiting"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class PendingPlan:
    task: str
    plan_text: str


@dataclass
class RunOutcome:
    status: str  # complete | stopped | error | incomplete
    message: str = ""
    steps: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def ok(self) -> bool:
        return self.status == "complete"


@dataclass
class PlanOutcome:
    status: str  # planned | no_plan | stopped | error
    plan: Optional[PendingPlan] = None
    message: str = ""
