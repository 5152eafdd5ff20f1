"""Conversation persistence: the working directory's history file."""

import json
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from .logger import get_logger
from .models import TokenUsage

__all__ = ["HistoryStore", "MAX_HISTORY_MESSAGES"]

_log = get_logger(__name__)

MAX_HISTORY_MESSAGES = 50


class HistoryStore:
    """Reads and writes ``{"messages": [...], "tokens": {...}}``."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Tuple[List[Dict[str, Any]], TokenUsage]:
        """Return saved messages and token totals.

        A missing, unreadable or malformed file yields an empty history.
        """
        if not self.path.is_file():
            return [], TokenUsage()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            _log.warning("Could not load history from %s: %s", self.path, e)
            return [], TokenUsage()

        if not isinstance(data, dict):
            _log.warning("Ignoring history file %s: unexpected format", self.path)
            return [], TokenUsage()

        messages = data.get("messages") or []
        if not isinstance(messages, list):
            messages = []
        messages = [m for m in messages if isinstance(m, dict) and m.get("role")]
        return messages, TokenUsage.from_dict(data.get("tokens"))

    def save(self, messages: List[Dict[str, Any]], usage: TokenUsage):
        """Write the history. Raises OSError if the file cannot be written."""
        data = {"messages": messages, "tokens": usage.to_dict()}
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    def clear(self):
        if self.path.is_file():
            self.path.unlink()
