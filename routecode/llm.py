"""LLM adapter via litellm, with bounded retry for request setup."""

import threading
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

import litellm

from .assembler import StreamFragment, ToolCallDelta
from .errors import TransportError
from .logger import get_logger
from .models import TokenUsage

litellm.suppress_debug_info = True

__all__ = ["LLMAdapter", "RetryPolicy", "fragment_from_chunk", "error_status",
           "DEFAULT_API_BASE", "DEFAULT_MODEL"]

_log = get_logger(__name__)

DEFAULT_API_BASE = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openrouter/mistralai/devstral-2512:free"

T = TypeVar("T")


def error_status(error: BaseException) -> Optional[int]:
    """Best-effort HTTP status of a provider exception."""
    for attr in ("status_code", "status", "http_status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _is_retryable(status: Optional[int]) -> bool:
    return status is not None and (status == 429 or status >= 500)


class RetryPolicy:
    """Retry on HTTP 429/5xx with exponential delay ``base_delay * 2**attempt``.

    Delays wait on ``cancel_event`` so a shutdown request ends the wait early
    instead of leaving a sleeping retry behind.
    """

    def __init__(self, attempts: int = 3, base_delay: float = 1.0,
                 cancel_event: Optional[threading.Event] = None,
                 on_retry: Optional[Callable[[int, int, float, BaseException], None]] = None):
        self.attempts = max(1, int(attempts))
        self.base_delay = base_delay
        self.cancel_event = cancel_event or threading.Event()
        self.on_retry = on_retry

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    def call(self, fn: Callable[[], T]) -> T:
        for attempt in range(self.attempts):
            try:
                return fn()
            except TransportError:
                raise
            except Exception as e:
                status = error_status(e)
                if attempt == self.attempts - 1 or not _is_retryable(status):
                    raise TransportError(f"{type(e).__name__}: {e}", status=status) from e
                delay = self.delay_for(attempt)
                _log.warning("Model request failed (status %s), retrying in %.1fs (attempt %d/%d)",
                             status, delay, attempt + 2, self.attempts)
                if self.on_retry:
                    self.on_retry(attempt + 2, self.attempts, delay, e)
                if self.cancel_event.wait(delay):
                    raise TransportError("Request cancelled during retry backoff", status=status) from e
        raise TransportError("Max retries exceeded")


def fragment_from_chunk(chunk: Any) -> StreamFragment:
    """Convert one litellm/OpenAI streaming chunk to a StreamFragment."""
    fragment = StreamFragment()

    usage = getattr(chunk, "usage", None)
    if usage:
        fragment.usage = TokenUsage(
            input=getattr(usage, "prompt_tokens", 0) or 0,
            output=getattr(usage, "completion_tokens", 0) or 0,
        )

    choices = getattr(chunk, "choices", None)
    if not choices:
        return fragment

    delta = getattr(choices[0], "delta", None)
    if delta is None:
        return fragment

    content = getattr(delta, "content", None)
    if content:
        fragment.content = content

    for tc in getattr(delta, "tool_calls", None) or []:
        index = getattr(tc, "index", None)
        if index is None:
            continue
        function = getattr(tc, "function", None)
        fragment.tool_calls.append(ToolCallDelta(
            index=index,
            id=getattr(tc, "id", None),
            name=getattr(function, "name", None) if function else None,
            arguments=getattr(function, "arguments", None) if function else None,
        ))
    return fragment


class LLMAdapter:
    """Streaming chat interface. Passes api_key/api_base directly to litellm,
    avoiding env-var pollution when switching between providers."""

    def __init__(self, model: str = DEFAULT_MODEL, api_base: Optional[str] = DEFAULT_API_BASE,
                 api_key: Optional[str] = None, temperature: Optional[float] = None,
                 max_tokens: Optional[int] = None, retry: Optional[RetryPolicy] = None):
        self.model = model
        self.api_base = api_base
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.retry = retry or RetryPolicy()

    def _request_kwargs(self, model: str, messages: List[Dict[str, Any]],
                        tools: Optional[List[Dict]]) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.max_tokens:
            kwargs["max_tokens"] = self.max_tokens
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        return kwargs

    def stream(self, messages: List[Dict[str, Any]], tools: Optional[List[Dict]] = None,
               model: Optional[str] = None) -> Iterator[StreamFragment]:
        """Submit the conversation and yield normalized fragments.

        Opening the stream is retried per the retry policy; an error while
        reading it is raised as TransportError and never retried.
        """
        kwargs = self._request_kwargs(model or self.model, messages, tools)
        response_stream = self.retry.call(lambda: litellm.completion(**kwargs))
        try:
            for chunk in response_stream:
                yield fragment_from_chunk(chunk)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Stream interrupted: {type(e).__name__}: {e}",
                                 status=error_status(e)) from e
