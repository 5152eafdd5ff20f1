"""Shared fixtures for routecode tests."""

import io
import json
import os
from types import SimpleNamespace

import pytest
import yaml
from rich.console import Console

from routecode.agent import Agent
from routecode.assembler import StreamFragment, ToolCallDelta
from routecode.llm import RetryPolicy
from routecode.models import TokenUsage
from routecode.prompter import Prompter
from routecode.safety import SafetyLevel
from routecode.tools import ToolRegistry


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    for key in ("OPENROUTER_API_KEY", "OPENROUTER_MODEL"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def console():
    """A plain (non-terminal) console writing to memory."""
    return Console(file=io.StringIO(), width=100, force_terminal=False,
                   color_system=None, highlight=False)


def console_output(console: Console) -> str:
    return console.file.getvalue()


@pytest.fixture
def output():
    return console_output


@pytest.fixture
def sample_config_data():
    return {
        "model": "anthropic/claude-3.5-sonnet",
        "safety-level": "delete-only",
        "web-search": True,
        "max-width": 90,
        "markdown": False,
        "streaming-mode": "final",
        "show-legend": False,
        "command-timeout": 30,
        "max-steps": 20,
        "max-context-tokens": 50000,
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    path = tmp_dir / ".routecode.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


# ── Scripted model ──


def text_turn(text, chunk=7, usage=(10, 5)):
    """Fragments for a plain text answer split into small pieces."""
    frags = [StreamFragment(content=text[i:i + chunk]) for i in range(0, len(text), chunk)]
    frags.append(StreamFragment(usage=TokenUsage(*usage)))
    return frags


def tool_turn(*calls, text=None, usage=(20, 10)):
    """Fragments for tool calls; ``calls`` are ``(id, name, args)`` with args a dict or raw string."""
    frags = []
    if text:
        frags.append(StreamFragment(content=text))
    for index, (call_id, name, args) in enumerate(calls):
        raw = args if isinstance(args, str) else json.dumps(args)
        mid = len(raw) // 2
        frags.append(StreamFragment(tool_calls=[
            ToolCallDelta(index=index, id=call_id, name=name, arguments=raw[:mid])]))
        frags.append(StreamFragment(tool_calls=[ToolCallDelta(index=index, arguments=raw[mid:])]))
    frags.append(StreamFragment(usage=TokenUsage(*usage)))
    return frags


class FakeLLM:
    """Replays scripted turns; a turn may be an exception or contain one."""

    def __init__(self, turns, model="openrouter/test/model"):
        self.model = model
        self.retry = RetryPolicy(attempts=1, base_delay=0)
        self._turns = list(turns)
        self.calls = []

    def stream(self, messages, tools=None, model=None):
        self.calls.append({
            "messages": [dict(m) for m in messages],
            "tools": [t["function"]["name"] for t in (tools or [])],
            "model": model,
        })
        turn = self._turns.pop(0) if self._turns else text_turn("done")
        if isinstance(turn, BaseException):
            raise turn
        for fragment in turn:
            if isinstance(fragment, BaseException):
                raise fragment
            yield fragment


@pytest.fixture
def scripted():
    return SimpleNamespace(text_turn=text_turn, tool_turn=tool_turn, FakeLLM=FakeLLM)


@pytest.fixture
def make_prompter(console):
    def _make(answers=()):
        replies = list(answers)
        asked = []

        def reader(prompt):
            asked.append(prompt)
            if not replies:
                return ""
            reply = replies.pop(0)
            if isinstance(reply, BaseException):
                raise reply
            return reply

        prompter = Prompter(console, reader=reader)
        prompter.asked = asked
        return prompter
    return _make


@pytest.fixture
def make_agent(tmp_dir, console, make_prompter):
    def _make(turns, answers=(), safety_level=SafetyLevel.FULL, max_steps=15, **kwargs):
        prompter = make_prompter(answers)
        agent = Agent(
            llm=FakeLLM(turns),
            tools=ToolRegistry(str(tmp_dir)),
            prompter=prompter,
            console=console,
            safety_level=safety_level,
            max_steps=max_steps,
            project_root=str(tmp_dir),
            **kwargs,
        )
        return agent
    return _make
