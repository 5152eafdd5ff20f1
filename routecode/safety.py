"""Confirmation policy for tool calls that change files or run commands."""

from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from rich.console import Console

from .logger import get_logger
from .prompter import Prompter
from .rendering import build_confirmation_panel
from .tools.registry import CRITICAL_TOOLS, DANGEROUS_TOOLS

__all__ = ["SafetyLevel", "GateDecision", "SafetyGate", "requires_confirmation",
           "DENIAL_MESSAGE"]

_log = get_logger(__name__)

DENIAL_MESSAGE = ("User denied this operation. Please ask for user consent before "
                  "retrying, or try a different approach.")

CONFIRM_PROMPT = "  Allow? (y/yes to confirm): "


class SafetyLevel(str, Enum):
    FULL = "full"
    DELETE_ONLY = "delete-only"
    OFF = "off"

    def next(self) -> "SafetyLevel":
        order = _LEVEL_ORDER
        return order[(order.index(self) + 1) % len(order)]

    @classmethod
    def parse(cls, value) -> "SafetyLevel":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("_", "-")
        for level in cls:
            if level.value == text:
                return level
        raise ValueError(f"Unknown safety level: {value!r} (expected full, delete-only or off)")

    @property
    def description(self) -> str:
        return {
            "full": "confirm every file change and command",
            "delete-only": "confirm deletes and commands only",
            "off": "no confirmations",
        }[self.value]


_LEVEL_ORDER = [SafetyLevel.FULL, SafetyLevel.DELETE_ONLY, SafetyLevel.OFF]


class GateDecision(str, Enum):
    AUTO = "auto"
    APPROVED = "approved"
    DENIED = "denied"


def requires_confirmation(level: SafetyLevel, tool_name: str) -> bool:
    if level == SafetyLevel.FULL:
        return tool_name in DANGEROUS_TOOLS or tool_name in CRITICAL_TOOLS
    if level == SafetyLevel.DELETE_ONLY:
        return tool_name in CRITICAL_TOOLS
    return False


class SafetyGate:
    def __init__(self, prompter: Prompter, level: SafetyLevel = SafetyLevel.FULL,
                 console: Optional[Console] = None, cwd: str = "."):
        self.prompter = prompter
        self.level = SafetyLevel.parse(level)
        self.console = console or prompter.console
        self.cwd = cwd

    def execute(self, name: str, args: Dict[str, Any],
                invoke: Callable[[Dict[str, Any]], str]) -> Tuple[str, GateDecision]:
        """Run ``invoke(args)`` if allowed. Never raises."""
        decision = GateDecision.AUTO
        if requires_confirmation(self.level, name):
            self.console.print()
            self.console.print(build_confirmation_panel(name, args, self.cwd))
            if not self.prompter.confirm(CONFIRM_PROMPT):
                _log.info("User denied %s", name)
                return DENIAL_MESSAGE, GateDecision.DENIED
            decision = GateDecision.APPROVED

        try:
            return invoke(args), decision
        except Exception as e:
            _log.info("Tool %s raised %s: %s", name, type(e).__name__, e)
            return f"Error: {type(e).__name__}: {e}", decision
