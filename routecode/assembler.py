"""Reassemble one streamed model response into text and tool calls.

Providers split a tool call across many small fragments: the id, the
function name and the JSON arguments may each arrive in pieces, addressed by
the call's index within the turn. Every piece is appended, never replaced.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import TokenUsage

__all__ = [
    "ToolCallDelta",
    "StreamFragment",
    "ToolCallRequest",
    "AssembledResponse",
    "StreamAssembler",
]


@dataclass
class ToolCallDelta:
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass
class StreamFragment:
    content: Optional[str] = None
    tool_calls: List[ToolCallDelta] = field(default_factory=list)
    usage: Optional[TokenUsage] = None


@dataclass
class ToolCallRequest:
    id: str = ""
    name: str = ""
    arguments_json: str = ""

    def parse_arguments(self) -> Dict[str, Any]:
        """Decode the argument string. Empty means no arguments."""
        raw = self.arguments_json.strip()
        if not raw:
            return {}
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON ({e.msg} at char {e.pos})") from e
        if not isinstance(value, dict):
            raise ValueError(f"expected a JSON object, got {type(value).__name__}")
        return value

    def to_message_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments_json},
        }


@dataclass
class AssembledResponse:
    text: Optional[str] = None
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> Dict[str, Any]:
        msg: Dict[str, Any] = {"role": "assistant", "content": self.text}
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_message_dict() for tc in self.tool_calls]
        return msg


class StreamAssembler:
    """Accumulates fragments for a single request."""

    def __init__(self):
        self._text_parts: List[str] = []
        self._calls: Dict[int, ToolCallRequest] = {}
        self._usage = TokenUsage()
        self._finished = False

    @property
    def text(self) -> str:
        return "".join(self._text_parts)

    def feed(self, fragment: StreamFragment) -> str:
        """Consume one fragment and return its content delta ('' if none)."""
        if self._finished:
            raise RuntimeError("StreamAssembler already finished")

        delta = fragment.content or ""
        if delta:
            self._text_parts.append(delta)

        for tc in fragment.tool_calls:
            current = self._calls.get(tc.index)
            if current is None:
                current = ToolCallRequest()
                self._calls[tc.index] = current
            if tc.id:
                current.id += tc.id
            if tc.name:
                current.name += tc.name
            if tc.arguments:
                current.arguments_json += tc.arguments

        if fragment.usage is not None:
            self._usage.add(fragment.usage)
        return delta

    def finish(self) -> AssembledResponse:
        self._finished = True
        text = self.text
        return AssembledResponse(
            text=text or None,
            tool_calls=[self._calls[idx] for idx in sorted(self._calls)],
            usage=self._usage.copy(),
        )
