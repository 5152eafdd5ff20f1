from types import SimpleNamespace

import pytest

from routecode import llm as llm_module
from routecode.errors import TransportError
from routecode.llm import LLMAdapter, RetryPolicy, error_status, fragment_from_chunk


class ProviderError(Exception):
    def __init__(self, status_code, message="provider error"):
        super().__init__(message)
        self.status_code = status_code


class FakeEvent:
    """Records waits instead of sleeping; ``cancel_after`` makes a wait return True."""

    def __init__(self, cancel_after=None):
        self.waits = []
        self.cancel_after = cancel_after

    def wait(self, timeout):
        self.waits.append(timeout)
        return self.cancel_after is not None and len(self.waits) >= self.cancel_after

    def set(self):
        self.cancel_after = 0

    def is_set(self):
        return False


def _failing(*errors, result="ok"):
    pending = list(errors)
    calls = []

    def fn():
        calls.append(1)
        if pending:
            raise pending.pop(0)
        return result
    fn.calls = calls
    return fn


class TestRetryPolicy:
    def test_retries_rate_limits_and_server_errors_with_doubling_delay(self):
        event = FakeEvent()
        retries = []
        policy = RetryPolicy(attempts=3, base_delay=1.0, cancel_event=event,
                             on_retry=lambda *a: retries.append(a[:3]))
        fn = _failing(ProviderError(429), ProviderError(503))

        assert policy.call(fn) == "ok"
        assert event.waits == [1.0, 2.0]
        assert retries == [(2, 3, 1.0), (3, 3, 2.0)]

    def test_client_errors_are_not_retried(self):
        event = FakeEvent()
        policy = RetryPolicy(cancel_event=event)
        fn = _failing(ProviderError(400, "bad request"))

        with pytest.raises(TransportError) as info:
            policy.call(fn)

        assert info.value.status == 400
        assert "bad request" in str(info.value)
        assert len(fn.calls) == 1
        assert event.waits == []

    def test_errors_without_status_are_not_retried(self):
        policy = RetryPolicy(cancel_event=FakeEvent())
        fn = _failing(ConnectionError("reset"))

        with pytest.raises(TransportError, match="ConnectionError: reset"):
            policy.call(fn)
        assert len(fn.calls) == 1

    def test_exhausted_attempts_surface_last_error(self):
        event = FakeEvent()
        policy = RetryPolicy(attempts=3, base_delay=0.5, cancel_event=event)
        fn = _failing(*[ProviderError(500)] * 3)

        with pytest.raises(TransportError) as info:
            policy.call(fn)

        assert info.value.status == 500
        assert len(fn.calls) == 3
        assert event.waits == [0.5, 1.0]

    def test_cancel_during_backoff_stops_retrying(self):
        policy = RetryPolicy(attempts=3, cancel_event=FakeEvent(cancel_after=1))
        fn = _failing(ProviderError(429), ProviderError(429))

        with pytest.raises(TransportError, match="cancelled during retry backoff"):
            policy.call(fn)
        assert len(fn.calls) == 1

    def test_delay_for(self):
        policy = RetryPolicy(base_delay=1.0)
        assert [policy.delay_for(i) for i in range(3)] == [1.0, 2.0, 4.0]


def test_error_status_reads_response_attribute():
    error = Exception("x")
    error.response = SimpleNamespace(status_code=502)

    assert error_status(error) == 502
    assert error_status(Exception("plain")) is None


def _chunk(content=None, tool_calls=None, usage=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    choices = [SimpleNamespace(delta=delta)] if (content or tool_calls) else []
    return SimpleNamespace(choices=choices, usage=usage)


def _tc(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id,
                           function=SimpleNamespace(name=name, arguments=arguments))


def test_fragment_from_chunk_maps_content_tool_calls_and_usage():
    frag = fragment_from_chunk(_chunk(content="hi", tool_calls=[_tc(0, "c1", "read_file", '{"pa')]))
    assert frag.content == "hi"
    assert frag.tool_calls[0].id == "c1"
    assert frag.tool_calls[0].name == "read_file"
    assert frag.tool_calls[0].arguments == '{"pa'

    usage = fragment_from_chunk(_chunk(usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3)))
    assert usage.usage.input == 12
    assert usage.usage.output == 3
    assert usage.tool_calls == []


class TestLLMAdapter:
    def test_stream_sends_tools_and_yields_fragments(self, monkeypatch):
        captured = {}

        def completion(**kwargs):
            captured.update(kwargs)
            return iter([_chunk(content="Hel"), _chunk(content="lo")])

        monkeypatch.setattr(llm_module.litellm, "completion", completion)
        adapter = LLMAdapter(model="openrouter/a/b", api_key="sk-test",
                             retry=RetryPolicy(attempts=1))
        tools = [{"type": "function", "function": {"name": "read_file"}}]

        frags = list(adapter.stream([{"role": "user", "content": "hi"}], tools,
                                    model="openrouter/a/b:online"))

        assert [f.content for f in frags] == ["Hel", "lo"]
        assert captured["model"] == "openrouter/a/b:online"
        assert captured["stream"] is True
        assert captured["tool_choice"] == "auto"
        assert captured["tools"] == tools
        assert captured["api_key"] == "sk-test"
        assert captured["api_base"] == "https://openrouter.ai/api/v1"

    def test_no_tools_means_no_tool_choice(self, monkeypatch):
        captured = {}
        monkeypatch.setattr(llm_module.litellm, "completion",
                            lambda **kw: captured.update(kw) or iter([]))

        list(LLMAdapter(retry=RetryPolicy(attempts=1)).stream([{"role": "user", "content": "x"}]))

        assert "tools" not in captured
        assert "tool_choice" not in captured

    def test_mid_stream_failure_is_not_retried(self, monkeypatch):
        calls = []

        def broken_stream():
            yield _chunk(content="partial")
            raise ProviderError(503, "connection dropped")

        def completion(**kwargs):
            calls.append(1)
            return broken_stream()

        monkeypatch.setattr(llm_module.litellm, "completion", completion)
        adapter = LLMAdapter(retry=RetryPolicy(attempts=3, cancel_event=FakeEvent()))
        received = []

        with pytest.raises(TransportError, match="Stream interrupted"):
            for frag in adapter.stream([{"role": "user", "content": "x"}]):
                received.append(frag.content)

        assert received == ["partial"]
        assert len(calls) == 1
