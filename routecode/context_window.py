"""Context window token budget and message trimming logic."""

import json
import math
from typing import Any, Callable, Dict, List, Optional, Tuple

from .logger import get_logger

__all__ = ["ContextBudgetManager", "MAX_CONTEXT_TOKENS", "SYSTEM_PROMPT_RESERVE"]

_log = get_logger(__name__)

MAX_CONTEXT_TOKENS = 100_000
SYSTEM_PROMPT_RESERVE = 1_500
CHARS_PER_TOKEN = 4
PER_MESSAGE_OVERHEAD = 4

TrimCallback = Callable[[int, int, int], None]


class ContextBudgetManager:
    """Estimate conversation cost with a fixed chars-per-token ratio and trim
    the oldest messages to fit.

    The ratio is an approximation, not a tokenizer; it is the same for every
    model.
    """

    def __init__(self, max_context_tokens: int = MAX_CONTEXT_TOKENS,
                 system_prompt_reserve: int = SYSTEM_PROMPT_RESERVE,
                 chars_per_token: float = CHARS_PER_TOKEN,
                 per_message_overhead: int = PER_MESSAGE_OVERHEAD,
                 model: Optional[str] = None):
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.max_context_tokens = max_context_tokens
        self.system_prompt_reserve = system_prompt_reserve
        self.chars_per_token = chars_per_token
        self.per_message_overhead = per_message_overhead
        self.model = model

    @property
    def available_tokens(self) -> int:
        return self.max_context_tokens - self.system_prompt_reserve

    def estimate_tokens(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)

    def estimate_message_tokens(self, msg: Dict[str, Any]) -> int:
        tokens = self.per_message_overhead
        content = msg.get("content")
        if isinstance(content, str):
            tokens += self.estimate_tokens(content)
        elif content:
            tokens += self.estimate_tokens(json.dumps(content, ensure_ascii=False))
        tool_calls = msg.get("tool_calls")
        if tool_calls:
            try:
                tokens += self.estimate_tokens(json.dumps(tool_calls, ensure_ascii=False))
            except (TypeError, ValueError):
                tokens += 100
        return tokens

    def estimate_messages(self, messages: List[Dict[str, Any]]) -> int:
        return sum(self.estimate_message_tokens(m) for m in messages)

    def trim(self, messages: List[Dict[str, Any]],
             on_trimmed: Optional[TrimCallback] = None) -> List[Dict[str, Any]]:
        """Drop the oldest messages so the estimate fits the budget.

        The number to drop is computed once from the average message cost and
        removed in a single slice. At least one message is always kept, and a
        history that already fits is returned as the same list object.
        """
        available = self.available_tokens
        estimated = self.estimate_messages(messages)
        if estimated <= available:
            return messages

        count = len(messages)
        avg_per_message = estimated / count if count else 0
        if avg_per_message == 0:
            return messages

        excess = estimated - available
        to_remove = min(math.ceil(excess / avg_per_message), count - 1)
        if to_remove <= 0:
            return messages

        trimmed = messages[to_remove:]
        after = self.estimate_messages(trimmed)
        _log.info("Trimmed %d oldest message(s): ~%d / %d tokens", to_remove, after, available)
        if on_trimmed:
            on_trimmed(to_remove, after, available)
        return trimmed

    def prepare(self, history: List[Dict[str, Any]], system_prompt: str,
                on_trimmed: Optional[TrimCallback] = None,
                ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Return ``(trimmed_history, outgoing_messages)`` for one request."""
        trimmed = self.trim(history, on_trimmed=on_trimmed)
        outgoing = [{"role": "system", "content": system_prompt}] + list(trimmed)
        return trimmed, outgoing

    @staticmethod
    def truncate_tool_result(result: str, limit: int) -> str:
        """Keep the head and tail of long tool output."""
        if limit <= 0 or len(result) <= limit:
            return result
        half = limit // 2
        lines_total = result.count("\n") + 1
        return (result[:half]
                + f"\n\n... [truncated: {lines_total} lines, {len(result):,} chars"
                  f" → keeping first/last portions] ...\n\n"
                + result[-half:])
