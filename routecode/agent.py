"""Run controller: drives model turns, tool calls and human checkpoints."""

import threading
import time
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console
from rich.status import Status
from rich.text import Text

from .assembler import AssembledResponse, StreamAssembler, ToolCallRequest
from .config import UiConfig
from .context_window import ContextBudgetManager
from .errors import RunInProgressError, TransportError
from .live_render import LiveRenderLoop
from .llm import LLMAdapter
from .logger import get_logger, run_context, set_step
from .models import AgentRunState, RunOutcome, TokenUsage
from .policy import looks_like_question
from .prompter import Prompter
from .rendering import (
    ACCENT, DIM, WARN, effective_width, format_response, render_completion,
    render_denial, render_error, render_info, render_response, render_result,
    render_retry, render_token_summary, render_tool_call, render_trim_notice,
    render_warning,
)
from .safety import GateDecision, SafetyGate, SafetyLevel
from .session import MAX_HISTORY_MESSAGES, HistoryStore
from .tools import ToolRegistry, detect_project_type, generate_project_map

_log = get_logger(__name__)

__all__ = ["Agent", "ToolCallResult", "build_system_prompt", "REMINDER_MESSAGE",
           "INTERRUPTED_RESULT", "OUTGOING_RESULT_LIMIT", "HISTORY_RESULT_LIMIT"]

OUTGOING_RESULT_LIMIT = 12_000
HISTORY_RESULT_LIMIT = 2_000
DEFAULT_MAX_STEPS = 15
INTERRUPTED_RESULT = "Error: interrupted by user before this call finished."

REMINDER_MESSAGE = (
    "Reminder: you did not call a tool. Keep working with the available tools, "
    "use ask_user if you need input from the user, and call task_complete with "
    "a short summary once the task is fully done."
)

SYSTEM_PROMPT_TEMPLATE = """\
You are routecode, a coding agent working inside the user's project through tools.
You can read and edit files, search the code base and run shell commands.

## Project
- Working directory: {cwd}
- Project type: {project_type}

## Structure
{project_map}

## Tools
{tool_catalogue}

## Editing workflow
1. Read the file with read_file_with_lines to see line numbers.
2. Pick the exact start_line and end_line to change.
3. Apply the change with edit_file_by_lines; fall back to edit_file when line numbers are unknown.

## Rules
- Explore before changing anything.
- Overwritten files are backed up automatically as .bak.
- If a command fails, read the error and fix the cause.
- Some operations need the user's approval. If one is denied, do not retry it
  unchanged; ask the user with ask_user or take another approach.

## Finishing
Every turn must either call a tool or ask the user a question.
When the task is fully done, call task_complete with a one-line summary.
task_complete is the only way to end the task.
"""


def build_system_prompt(cwd: str, project_type: str, project_map: str,
                        tool_schemas: List[dict]) -> str:
    catalogue = "\n".join(
        f"- {s['function']['name']}: {s['function']['description']}" for s in tool_schemas
    )
    return SYSTEM_PROMPT_TEMPLATE.format(
        cwd=cwd,
        project_type=project_type or "Unknown",
        project_map=project_map or "(project map not available)",
        tool_catalogue=catalogue,
    )


@dataclass
class ToolCallResult:
    call: ToolCallRequest
    content: str
    decision: Optional[GateDecision] = None
    completed: bool = False
    summary: str = ""


class Agent:
    def __init__(self, llm: LLMAdapter, tools: ToolRegistry, prompter: Prompter,
                 console: Optional[Console] = None,
                 ui_config: Optional[UiConfig] = None,
                 safety_level: SafetyLevel = SafetyLevel.FULL,
                 web_search: bool = False,
                 max_steps: int = DEFAULT_MAX_STEPS,
                 budget: Optional[ContextBudgetManager] = None,
                 history_store: Optional[HistoryStore] = None,
                 project_root: str = ".",
                 on_state_change: Optional[Callable[[AgentRunState], None]] = None):
        self.llm = llm
        self.tools = tools
        self.prompter = prompter
        self.console = console or prompter.console
        self.ui_config = ui_config or UiConfig()
        self.project_root = str(Path(project_root).resolve())
        self.gate = SafetyGate(prompter, safety_level, console=self.console, cwd=self.project_root)
        self.web_search = web_search
        self.max_steps = max(1, int(max_steps))
        self.budget = budget or ContextBudgetManager(model=llm.model)
        self.store = history_store or HistoryStore(Path(self.project_root) / ".agent_history.json")
        self.on_state_change = on_state_change

        self.history: List[Dict[str, Any]] = []
        self.tokens = TokenUsage()
        self.project_context = ""
        self.project_map = ""
        self._state = AgentRunState.IDLE
        self._run_lock = threading.Lock()
        self._render: Optional[LiveRenderLoop] = None

        self.llm.retry.on_retry = self._on_retry

    # ── Accessors ──

    @property
    def state(self) -> AgentRunState:
        return self._state

    def _set_state(self, state: AgentRunState):
        if state == self._state:
            return
        self._state = state
        if self.on_state_change:
            self.on_state_change(state)

    @property
    def model(self) -> str:
        return self.llm.model

    @model.setter
    def model(self, value: str):
        self.llm.model = value
        self.budget.model = value

    @property
    def effective_model(self) -> str:
        """Model id sent to the API; ``:online`` enables OpenRouter web search."""
        if self.web_search and not self.llm.model.endswith(":online"):
            return f"{self.llm.model}:online"
        return self.llm.model

    @property
    def safety_level(self) -> SafetyLevel:
        return self.gate.level

    @safety_level.setter
    def safety_level(self, value):
        self.gate.level = SafetyLevel.parse(value)

    def cycle_safety_level(self) -> SafetyLevel:
        self.gate.level = self.gate.level.next()
        return self.gate.level

    @property
    def history_length(self) -> int:
        return len(self.history)

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    # ── Lifecycle ──

    def initialize(self):
        self.load_history()
        self.project_context = detect_project_type(self.project_root)
        self.refresh_project_map()

    def refresh_project_map(self) -> bool:
        try:
            self.project_map = generate_project_map(self.project_root)
        except OSError as e:
            _log.warning("Could not generate project map: %s", e)
            render_warning(self.console, "Could not generate project map.")
            return False
        return True

    def load_history(self) -> int:
        self.history, self.tokens = self.store.load()
        if self.history:
            render_info(self.console, f"Loaded {len(self.history)} messages from history.")
        return len(self.history)

    def save_history(self) -> bool:
        to_save = self.budget.trim(self.history[-MAX_HISTORY_MESSAGES:])
        try:
            self.store.save(list(to_save), self.tokens)
        except (OSError, TypeError, ValueError) as e:
            _log.error("Failed to save history: %s", e)
            render_warning(self.console, f"Failed to save history: {e}")
            return False
        return True

    def clear_history(self):
        self.history = []
        self.tokens = TokenUsage()

    def request_shutdown(self):
        """Cancel pending retry waits and render timers."""
        self.llm.retry.cancel_event.set()
        render = self._render
        if render is not None:
            render.cancel()

    @contextmanager
    def run_guard(self):
        if not self._run_lock.acquire(blocking=False):
            raise RunInProgressError()
        try:
            yield
        finally:
            self._run_lock.release()
            self._set_state(AgentRunState.IDLE)

    # ── System prompt ──

    def build_system_prompt(self) -> str:
        return build_system_prompt(self.project_root, self.project_context,
                                   self.project_map, self.tools.schemas())

    # ── Run loop ──

    def run(self, user_input: str) -> RunOutcome:
        with self.run_guard(), run_context("run"):
            return self._run(user_input)

    def _run(self, user_input: str) -> RunOutcome:
        self.history.append({"role": "user", "content": user_input})
        trimmed, messages = self.budget.prepare(self.history, self.build_system_prompt(),
                                                on_trimmed=self._on_trimmed)
        if len(trimmed) < len(self.history):
            self.history = list(trimmed)

        steps = 0
        total_steps = 0
        outcome: Optional[RunOutcome] = None
        try:
            while outcome is None:
                if self.llm.retry.cancel_event.is_set():
                    outcome = RunOutcome("incomplete", "Shutdown requested")
                    break
                if steps >= self.max_steps:
                    if not self.confirm_continue(self.max_steps):
                        outcome = RunOutcome("stopped", f"Stopped after {total_steps} steps")
                        break
                    steps = 0
                steps += 1
                total_steps += 1
                set_step(total_steps)

                response = self.request_turn(messages, self.tools.schemas())

                if response.has_tool_calls():
                    assistant_msg = response.to_message()
                    messages.append(assistant_msg)
                    self.history.append(dict(assistant_msg))
                    results = self.execute_tool_calls(response.tool_calls, messages)
                    done = [r for r in results if r.completed]
                    if done:
                        outcome = RunOutcome("complete", done[-1].summary)
                    continue

                if response.text:
                    assistant_msg = response.to_message()
                    messages.append(assistant_msg)
                    self.history.append(dict(assistant_msg))
                    if looks_like_question(response.text):
                        reply = self.ask_human("  Your reply (Enter to skip): ")
                        if reply:
                            user_msg = {"role": "user", "content": reply}
                            messages.append(user_msg)
                            self.history.append(dict(user_msg))
                            continue
                else:
                    render_info(self.console, "(empty response)")
                messages.append({"role": "system", "content": REMINDER_MESSAGE})
        except TransportError as e:
            _log.error("Transport error: %s", e)
            self._set_state(AgentRunState.ERROR)
            render_error(self.console, str(e))
            outcome = RunOutcome("error", str(e))
        finally:
            render_token_summary(self.console, self.tokens)
            self.save_history()

        outcome.steps = total_steps
        outcome.usage = self.tokens.copy()
        if outcome.status == "complete":
            self._set_state(AgentRunState.COMPLETE)
        _log.info("Run finished: %s after %d step(s)", outcome.status, total_steps)
        return outcome

    def confirm_continue(self, limit: int) -> bool:
        self._set_state(AgentRunState.WAITING)
        render_warning(self.console, f"Reached {limit} steps without finishing.")
        return self.prompter.confirm("  Continue? (y/yes to continue): ")

    def ask_human(self, prompt: str) -> str:
        self._set_state(AgentRunState.WAITING)
        return self.prompter.ask(prompt)

    # ── One model turn ──

    def _spinner(self, message: str) -> Optional[Status]:
        if not self.console.is_terminal:
            return None
        return Status(f"[{DIM}]{message}[/{DIM}]", console=self.console,
                      spinner="dots", spinner_style=ACCENT)

    def _format_live(self, text: str):
        return format_response(text, self.ui_config,
                               effective_width(self.console, self.ui_config))

    def request_turn(self, messages: List[Dict[str, Any]],
                     tool_schemas: List[dict]) -> AssembledResponse:
        """Stream one model response, drawing text as it arrives.

        A stream that fails midway raises TransportError and nothing it
        produced is kept.
        """
        self._set_state(AgentRunState.THINKING)
        assembler = StreamAssembler()
        render = LiveRenderLoop(self.console, self.ui_config, self._format_live)
        self._render = render
        spinner = self._spinner("Thinking…")
        if spinner:
            spinner.start()
        spinning = spinner is not None
        started_text = False
        try:
            for fragment in self.llm.stream(messages, tool_schemas, model=self.effective_model):
                if spinning:
                    spinner.stop()
                    spinning = False
                    self._set_state(AgentRunState.STREAMING)
                delta = assembler.feed(fragment)
                if delta:
                    if not started_text and render.enabled:
                        self.console.print()
                    started_text = True
                    render.append(delta)
        except BaseException:
            render.cancel()
            raise
        finally:
            if spinning:
                spinner.stop()
            self._render = None

        response = assembler.finish()
        self.tokens.add(response.usage)
        if not render.finish() and response.text:
            render_response(self.console, response.text, self.ui_config)
        return response

    # ── Tool calls ──

    def execute_tool_calls(self, calls: List[ToolCallRequest], messages: List[Dict[str, Any]],
                           read_only: bool = False, record: bool = True) -> List[ToolCallResult]:
        """Run calls in order, appending each result before the next starts.

        Ctrl-C stops the batch, but every call still gets a tool message so
        the conversation never holds an unanswered tool call.
        """
        self._set_state(AgentRunState.TOOL_CALLING)
        results = []
        total = len(calls)
        for index, call in enumerate(calls, 1):
            try:
                result = self.execute_tool_call(call, index, total, read_only=read_only)
            except KeyboardInterrupt:
                _log.warning("Interrupted during %s; %d call(s) not run", call.name,
                             total - index + 1)
                for pending in calls[index - 1:]:
                    self._append_result(pending, INTERRUPTED_RESULT, messages, record)
                raise
            self._append_result(call, result.content, messages, record)
            results.append(result)
        return results

    def _append_result(self, call: ToolCallRequest, content: str,
                       messages: List[Dict[str, Any]], record: bool):
        messages.append(self._tool_message(call, content, OUTGOING_RESULT_LIMIT))
        if record:
            self.history.append(self._tool_message(call, content, HISTORY_RESULT_LIMIT))

    @staticmethod
    def _tool_message(call: ToolCallRequest, content: str, limit: int) -> Dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": call.id,
            "name": call.name,
            "content": ContextBudgetManager.truncate_tool_result(content, limit),
        }

    def execute_tool_call(self, call: ToolCallRequest, index: int = 1, total: int = 1,
                          read_only: bool = False) -> ToolCallResult:
        name = call.name
        try:
            args = call.parse_arguments()
        except ValueError as e:
            render_tool_call(self.console, name, {}, index, total)
            content = f"Error: could not parse arguments for {name}: {e}"
            render_result(self.console, name, content)
            return ToolCallResult(call, content)

        render_tool_call(self.console, name, args, index, total)

        if read_only and not self.tools.is_read_only(name):
            content = f"Error: {name} is not available during planning (read-only tools only)."
            render_result(self.console, name, content)
            return ToolCallResult(call, content)

        if name == "task_complete":
            summary = str(args.get("summary") or "").strip()
            render_completion(self.console, summary)
            return ToolCallResult(call, "Task marked complete.", completed=True, summary=summary)

        if name == "ask_user":
            question = str(args.get("question") or "").strip()
            text = Text("\n  ? ", style=WARN)
            text.append(question)
            self.console.print(text)
            reply = self.ask_human("  > ")
            return ToolCallResult(call, reply or "(no response)")

        validation = self.tools.validate(name, args)
        if not validation.ok:
            render_result(self.console, name, validation.error)
            return ToolCallResult(call, validation.error)

        self._set_state(AgentRunState.EXECUTING)
        started = time.monotonic()
        content, decision = self.gate.execute(name, validation.args, self._invoker(name))
        if decision == GateDecision.DENIED:
            render_denial(self.console, name)
        else:
            render_result(self.console, name, content, time.monotonic() - started)
        return ToolCallResult(call, content, decision=decision)

    def _invoker(self, name: str):
        def invoke(args: Dict[str, Any]) -> str:
            with self._spinner("running…") or nullcontext():
                return self.tools.invoke(name, args)
        return invoke

    # ── Callbacks ──

    def _on_trimmed(self, removed: int, after: int, available: int):
        render_trim_notice(self.console, removed, after, available)

    def _on_retry(self, attempt: int, total: int, delay: float, error: BaseException):
        render_retry(self.console, attempt, total, delay)
