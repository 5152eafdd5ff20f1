"""
routecode v1.0.0: terminal coding agent for OpenRouter models.

Command: routecode run
"""

import os
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console

from . import __version__
from .agent import Agent
from .config import CONFIG_DIR, Config, normalize_model_id
from .context_window import ContextBudgetManager
from .llm import LLMAdapter, RetryPolicy
from .logger import setup_logger
from .planner import Planner
from .prompter import Prompter
from .safety import SafetyLevel
from .session import HistoryStore
from .tools import ToolRegistry
from .ui import build_banner

console = Console()


def build_agent(config: Config, prompter: Prompter,
                safety_level: Optional[SafetyLevel] = None) -> Tuple[Agent, Planner]:
    """Wire the agent and planner from a loaded config."""
    project_root = str(Path(config.project_root or ".").resolve())
    llm = LLMAdapter(model=config.model, api_base=config.api_base, api_key=config.api_key,
                     retry=RetryPolicy())
    tools = ToolRegistry(project_root, command_timeout_ms=config.command_timeout * 1000)
    agent = Agent(
        llm=llm,
        tools=tools,
        prompter=prompter,
        console=prompter.console,
        ui_config=config.ui_config(),
        safety_level=safety_level or SafetyLevel.parse(config.safety_level),
        web_search=config.web_search,
        max_steps=config.max_steps,
        budget=ContextBudgetManager(max_context_tokens=config.max_context_tokens,
                                    model=config.model),
        history_store=HistoryStore(config.history_path),
        project_root=project_root,
    )
    return agent, Planner(agent)


def _load_config(project_dir: str, model: Optional[str], verbose: bool) -> Config:
    config = Config.load(project_dir)
    if model:
        config.model = normalize_model_id(model)
    if verbose:
        config.verbose = True
    setup_logger("routecode", verbose=config.verbose)
    project_root = Path(config.project_root).resolve()
    if not project_root.is_dir():
        console.print(f"[red]Error: '{project_dir}' is not a valid directory.[/red]")
        sys.exit(1)
    return config


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """routecode: terminal coding agent for OpenRouter models."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--model", "-m", default=None, help="OpenRouter model id")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--safety", type=click.Choice([level.value for level in SafetyLevel]),
              default=None, help="Confirmation level")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(model, project_dir, safety, verbose):
    """Start an interactive session."""
    console.print(build_banner(__version__))
    os.environ.setdefault("PROMPT_TOOLKIT_NO_CPR", "1")
    config = _load_config(project_dir, model, verbose)
    if safety:
        config.safety_level = safety

    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import FileHistory
    from prompt_toolkit.key_binding import KeyBindings
    from prompt_toolkit.shortcuts import CompleteStyle

    from .command_router import handle_command
    from .ui import MAX_SLASH_MENU_ITEMS, PTK_STYLE, SlashCommandCompleter, make_prompt_html, render_startup

    # No pause/resume hooks: the loop below calls session.prompt() and
    # agent.run() in turn, so a mid-run question never races the REPL reader.
    prompter = Prompter(console)
    agent, planner = build_agent(config, prompter)
    render_startup(console, config, agent.ui_config)
    agent.initialize()

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    session = PromptSession(
        history=FileHistory(str(CONFIG_DIR / "history.txt")),
        multiline=False,
        completer=SlashCommandCompleter(max_items=MAX_SLASH_MENU_ITEMS),
        complete_while_typing=True,
        style=PTK_STYLE,
        complete_style=CompleteStyle.COLUMN,
    )

    repl_kb = KeyBindings()

    @repl_kb.add("escape", "enter")
    def _newline(event):
        event.current_buffer.insert_text("\n")

    @repl_kb.add("/")
    def _slash_menu(event):
        buffer = event.current_buffer
        buffer.insert_text("/")
        if buffer.document.text == "/":
            buffer.start_completion(select_first=True)

    pending_interrupt_exit = False

    def _interrupted() -> bool:
        """Save after Ctrl-C; True means this was the second one in a row."""
        nonlocal pending_interrupt_exit
        agent.save_history()
        if pending_interrupt_exit:
            return True
        pending_interrupt_exit = True
        console.print("\n[dim]Interrupted. Press Ctrl-C again to exit.[/dim]")
        return False

    while True:
        try:
            user_input = session.prompt(make_prompt_html(), key_bindings=repl_kb).strip()
        except EOFError:
            console.print("\n[dim]Goodbye![/dim]")
            break
        except KeyboardInterrupt:
            if _interrupted():
                console.print("[dim]Goodbye![/dim]")
                break
            continue

        if not user_input:
            continue
        pending_interrupt_exit = False

        if user_input.lower() in ("exit", "quit"):
            console.print("[dim]Goodbye![/dim]")
            break

        try:
            if user_input.startswith("/"):
                if handle_command(user_input, console=console, agent=agent,
                                  planner=planner, config=config) == "quit":
                    break
                continue
            agent.run(user_input)
        except KeyboardInterrupt:
            if _interrupted():
                console.print("[dim]Goodbye![/dim]")
                break
        except Exception as error:
            console.print(f"\n[red]  Error: {error}[/red]")
            if config.verbose:
                import traceback

                console.print(f"[dim]{traceback.format_exc()}[/dim]")

    agent.request_shutdown()
    agent.save_history()


@cli.command()
@click.argument("message", nargs=-1, required=True)
@click.option("--model", "-m", default=None, help="OpenRouter model id")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmations (safety level off)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def ask(message, model, project_dir, yes, verbose):
    """Run a single request and exit."""
    config = _load_config(project_dir, model, verbose)
    prompter = Prompter(console)
    agent, _ = build_agent(config, prompter, SafetyLevel.OFF if yes else None)
    agent.initialize()
    try:
        outcome = agent.run(" ".join(message))
    except KeyboardInterrupt:
        agent.request_shutdown()
        agent.save_history()
        sys.exit(130)
    sys.exit(1 if outcome.status == "error" else 0)


@cli.command("config")
@click.option("--project-dir", "-d", default=".", help="Project directory")
def config_cmd(project_dir):
    """Show configuration."""
    from .command_router import show_config_panel

    cfg = Config.load(project_dir)
    show_config_panel(console, cfg)
    for warning in cfg.warnings:
        console.print(f"[#E3B341]⚠ {warning}[/#E3B341]")


if __name__ == "__main__":
    cli()
