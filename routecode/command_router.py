"""Slash-command routing and handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .agent import Agent
from .config import Config, STREAMING_MODES, normalize_model_id
from .errors import NoPendingPlanError, RunInProgressError
from .planner import Planner
from .rendering import (
    ACCENT as THEME_ACCENT,
    BORDER as THEME_BORDER,
    DIM as THEME_DIM,
    SUCCESS as THEME_SUCCESS,
    WARN as THEME_WARN,
    render_legend,
    render_plan,
)
from .tools import detect_project_type
from .ui import HELP_TEXT, SLASH_COMMANDS

_SLASH_ALIASES = {"/h": "/help", "/?": "/help", "/exit": "/quit", "/q": "/quit"}

# Rejected while a run or plan is active.
_RUN_COMMANDS = {"/plan", "/execute", "/clear", "/model", "/refresh"}


@dataclass
class CommandContext:
    console: Console
    agent: Agent
    planner: Planner
    config: Config
    raw_args: str = ""
    args: list[str] = field(default_factory=list)


CommandHandler = Callable[[CommandContext, list[str]], str]


def _resolve_command(raw_cmd: str) -> str:
    """Resolve abbreviated slash commands via exact/alias/prefix matching."""
    cmd = raw_cmd.lower()

    if cmd == "/":
        return SLASH_COMMANDS[0]

    if cmd in SLASH_COMMANDS:
        return cmd
    if cmd in _SLASH_ALIASES:
        return _SLASH_ALIASES[cmd]

    matches = [candidate for candidate in SLASH_COMMANDS if candidate.startswith(cmd)]
    if matches:
        return matches[0]

    return cmd


def handle_command(
    command: str,
    *,
    console: Console,
    agent: Agent,
    planner: Planner,
    config: Config,
) -> str:
    """Handle one slash command string. Returns ``"quit"`` to leave the REPL."""
    parts = command.strip().split(maxsplit=1)
    if not parts:
        return ""

    cmd = _resolve_command(parts[0])
    raw_args = parts[1].strip() if len(parts) > 1 else ""
    args = raw_args.split()

    handler = COMMAND_HANDLERS.get(cmd)
    if not handler:
        console.print(f"  [{THEME_WARN}]Unknown: {cmd}. Try /help[/{THEME_WARN}]")
        return ""

    if cmd in _RUN_COMMANDS and agent.is_running:
        console.print(f"  [{THEME_WARN}]A run is in progress; {cmd} is unavailable.[/{THEME_WARN}]")
        return ""

    ctx = CommandContext(console=console, agent=agent, planner=planner, config=config,
                         raw_args=raw_args, args=args)
    try:
        return handler(ctx, args)
    except RunInProgressError as e:
        console.print(f"  [{THEME_WARN}]{e}[/{THEME_WARN}]")
        return ""


def _ok(ctx: CommandContext, message: str) -> None:
    ctx.console.print(f"  [{THEME_SUCCESS}]✓[/{THEME_SUCCESS}] {message}")


def _warn(ctx: CommandContext, message: str) -> None:
    ctx.console.print(f"  [{THEME_WARN}]{message}[/{THEME_WARN}]")


def _key_value_panel(console: Console, title: str, rows: dict) -> None:
    table = Table(show_header=False, border_style=THEME_BORDER, padding=(0, 2), box=None)
    table.add_column("Key", style=f"bold {THEME_ACCENT}", min_width=14)
    table.add_column("Value", style="#E6EDF3")
    for key, value in rows.items():
        table.add_row(key, f"{value:,}" if isinstance(value, int) and not isinstance(value, bool)
                      else str(value))
    console.print(Panel(table, title=f"[bold {THEME_ACCENT}] {title} [/bold {THEME_ACCENT}]",
                        title_align="left", border_style=THEME_BORDER, padding=(0, 1)))


def show_config_panel(console: Console, config: Config) -> None:
    _key_value_panel(console, "Configuration", config.summary())


def live_settings(ctx: CommandContext) -> dict:
    """Config summary with the values changed during this session."""
    summary = ctx.config.summary()
    ui = ctx.agent.ui_config
    summary.update({
        "model": ctx.agent.model,
        "safety-level": ctx.agent.safety_level.value,
        "web-search": ctx.agent.web_search,
        "max-width": ui.max_width,
        "markdown": ui.markdown_enabled,
        "streaming-mode": ui.streaming_mode,
        "show-legend": ui.show_legend_on_startup,
    })
    return summary


# ── Handlers ──


def _cmd_quit(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.console.print(f"[{THEME_DIM}]Goodbye![/{THEME_DIM}]")
    return "quit"


def _cmd_help(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.console.print(HELP_TEXT)
    ctx.console.print()
    return ""


def _cmd_model(ctx: CommandContext, args: list[str]) -> str:
    if not args:
        suffix = f" [{THEME_DIM}](sent as {ctx.agent.effective_model})[/{THEME_DIM}]" \
            if ctx.agent.web_search else ""
        ctx.console.print(f"  model [bold]{ctx.agent.model}[/bold]{suffix}")
        return ""
    ctx.agent.model = normalize_model_id(args[0])
    _ok(ctx, f"Switched → [bold]{ctx.agent.model}[/bold]")
    return ""


def _cmd_web(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.agent.web_search = not ctx.agent.web_search
    state = "ON" if ctx.agent.web_search else "OFF"
    _ok(ctx, f"Web search {state} [{THEME_DIM}]({ctx.agent.effective_model})[/{THEME_DIM}]")
    return ""


def _cmd_safe(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    level = ctx.agent.cycle_safety_level()
    _ok(ctx, f"Safety level [bold]{level.value}[/bold] [{THEME_DIM}]{level.description}[/{THEME_DIM}]")
    return ""


def _cmd_tokens(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    agent = ctx.agent
    usage = agent.tokens
    estimated = agent.budget.estimate_messages(agent.history)
    available = agent.budget.available_tokens
    pct = int(estimated / available * 100) if available > 0 else 0
    _key_value_panel(ctx.console, "Tokens", {
        "input": usage.input,
        "output": usage.output,
        "total": usage.total,
        "messages": agent.history_length,
        "context": f"~{estimated:,} / {available:,} ({pct}%)",
    })
    return ""


def _cmd_clear(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.agent.clear_history()
    ctx.agent.save_history()
    _ok(ctx, "Conversation cleared.")
    return ""


def _cmd_refresh(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.agent.project_context = detect_project_type(ctx.agent.project_root)
    if ctx.agent.refresh_project_map():
        _ok(ctx, f"Project map refreshed [{THEME_DIM}]({ctx.agent.project_context})[/{THEME_DIM}]")
    return ""


def _cmd_plan(ctx: CommandContext, args: list[str]) -> str:
    if not ctx.raw_args:
        plan = ctx.planner.pending_plan
        if plan is None:
            ctx.console.print(f"  [{THEME_DIM}]No pending plan. Usage: /plan <task>[/{THEME_DIM}]")
            return ""
        ctx.console.print(f"  [{THEME_DIM}]Task:[/{THEME_DIM}] {plan.task}")
        render_plan(ctx.console, plan.plan_text, ctx.agent.ui_config)
        return ""
    ctx.planner.plan(ctx.raw_args)
    return ""


def _cmd_execute(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    try:
        ctx.planner.execute_pending()
    except NoPendingPlanError as e:
        _warn(ctx, str(e))
    return ""


def _cmd_discard(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    if ctx.planner.discard_plan():
        _ok(ctx, "Plan discarded.")
    else:
        ctx.console.print(f"  [{THEME_DIM}]No pending plan.[/{THEME_DIM}]")
    return ""


def _cmd_width(ctx: CommandContext, args: list[str]) -> str:
    ui = ctx.agent.ui_config
    if not args:
        ctx.console.print(f"  width [bold]{ui.max_width}[/bold] [{THEME_DIM}](40-140)[/{THEME_DIM}]")
        return ""
    try:
        value = int(args[0])
    except ValueError:
        _warn(ctx, "Usage: /width <40-140>")
        return ""
    width = ui.set_max_width(value)
    _ok(ctx, f"Width set to {width}")
    return ""


def _cmd_markdown(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    enabled = ctx.agent.ui_config.toggle_markdown()
    _ok(ctx, f"Markdown rendering {'ON' if enabled else 'OFF'}")
    return ""


def _cmd_stream(ctx: CommandContext, args: list[str]) -> str:
    ui = ctx.agent.ui_config
    try:
        mode = ui.set_streaming_mode(args[0]) if args else ui.toggle_streaming_mode()
    except ValueError:
        _warn(ctx, escape(f"Usage: /stream [{'|'.join(STREAMING_MODES)}]"))
        return ""
    _ok(ctx, f"Streaming mode [bold]{mode}[/bold]")
    return ""


def _cmd_legend(ctx: CommandContext, args: list[str]) -> str:
    ui = ctx.agent.ui_config
    if args and args[0].lower() in ("on", "off"):
        ui.show_legend_on_startup = args[0].lower() == "on"
        _ok(ctx, f"Legend on startup {'ON' if ui.show_legend_on_startup else 'OFF'}")
        return ""
    render_legend(ctx.console)
    return ""


def _cmd_config(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    _key_value_panel(ctx.console, "Configuration", live_settings(ctx))
    for warning in ctx.config.warnings:
        _warn(ctx, f"⚠ {warning}")
    return ""


COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "/help": _cmd_help,
    "/model": _cmd_model,
    "/web": _cmd_web,
    "/safe": _cmd_safe,
    "/plan": _cmd_plan,
    "/execute": _cmd_execute,
    "/discard": _cmd_discard,
    "/tokens": _cmd_tokens,
    "/clear": _cmd_clear,
    "/refresh": _cmd_refresh,
    "/width": _cmd_width,
    "/markdown": _cmd_markdown,
    "/stream": _cmd_stream,
    "/legend": _cmd_legend,
    "/config": _cmd_config,
    "/quit": _cmd_quit,
}
