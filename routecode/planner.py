"""Two-phase workflow: explore read-only and propose a plan, then run it."""

import re
from typing import Optional

from .agent import Agent
from .errors import NoPendingPlanError, TransportError
from .logger import get_logger, run_context, set_step
from .models import PendingPlan, PlanOutcome, RunOutcome
from .rendering import render_error, render_info, render_token_summary, render_warning

_log = get_logger(__name__)

__all__ = ["Planner", "extract_plan", "build_execution_prompt", "PLAN_SYSTEM_PROMPT"]

PLAN_SYSTEM_PROMPT = """\
You are routecode in planning mode. Investigate the project and propose a plan.
Do not change anything: only read-only tools are available.

## Project
- Working directory: {cwd}
- Project type: {project_type}

## Structure
{project_map}

## Output
Explore as much as you need, then answer without calling a tool.
The answer must contain a heading named EXECUTION PLAN followed by a "Steps:"
list. Each step names the file or command it touches and what changes.
"""

_STEPS_RE = re.compile(r"^\s*Steps:", re.MULTILINE)


def extract_plan(text: Optional[str]) -> Optional[str]:
    """Return the plan text if ``text`` contains plan markers, else None."""
    if not text or not text.strip():
        return None
    if "execution plan" in text.lower() or _STEPS_RE.search(text):
        return text.strip()
    return None


def build_execution_prompt(plan: PendingPlan) -> str:
    return (
        "Carry out the approved plan below.\n\n"
        f"Original task:\n{plan.task}\n\n"
        f"Approved plan:\n{plan.plan_text}\n\n"
        "Follow the steps in order and call task_complete when every step is done."
    )


class Planner:
    def __init__(self, agent: Agent):
        self.agent = agent
        self._pending: Optional[PendingPlan] = None

    @property
    def pending_plan(self) -> Optional[PendingPlan]:
        return self._pending

    def has_pending_plan(self) -> bool:
        return self._pending is not None

    def discard_plan(self) -> bool:
        had_plan = self._pending is not None
        self._pending = None
        return had_plan

    def plan(self, task: str) -> PlanOutcome:
        with self.agent.run_guard(), run_context("plan"):
            return self._plan(task)

    def _plan(self, task: str) -> PlanOutcome:
        agent = self.agent
        system = PLAN_SYSTEM_PROMPT.format(
            cwd=agent.project_root,
            project_type=agent.project_context or "Unknown",
            project_map=agent.project_map or "(project map not available)",
        )
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": task},
        ]
        schemas = agent.tools.schemas(read_only=True)

        steps = 0
        text = ""
        try:
            while True:
                if steps >= agent.max_steps:
                    if not agent.confirm_continue(agent.max_steps):
                        return PlanOutcome("stopped", message="Planning stopped by user")
                    steps = 0
                steps += 1
                set_step(steps)
                response = agent.request_turn(messages, schemas)
                if response.has_tool_calls():
                    messages.append(response.to_message())
                    agent.execute_tool_calls(response.tool_calls, messages,
                                             read_only=True, record=False)
                    continue
                text = response.text or ""
                break
        except TransportError as e:
            _log.error("Transport error while planning: %s", e)
            render_error(agent.console, str(e))
            return PlanOutcome("error", message=str(e))
        finally:
            render_token_summary(agent.console, agent.tokens)

        plan_text = extract_plan(text)
        if plan_text is None:
            render_warning(agent.console, "No execution plan found in the response.")
            return PlanOutcome("no_plan", message="No execution plan found")

        plan = PendingPlan(task=task, plan_text=plan_text)
        self._pending = plan
        _log.info("Stored plan for task: %s", task[:80])
        render_info(agent.console, "Plan ready. /execute to run it, /discard to drop it.")
        return PlanOutcome("planned", plan=plan)

    def execute_pending(self) -> RunOutcome:
        plan = self._pending
        if plan is None:
            raise NoPendingPlanError()
        self._pending = None
        return self.agent.run(build_execution_prompt(plan))
