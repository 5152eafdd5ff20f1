"""Prompt styling, slash-command palette and startup banner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from prompt_toolkit.completion import Completion, Completer
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.styles import Style
from rich.markup import escape

from .rendering import render_legend

THEME_ACCENT = "#7FA6D9"
THEME_PROMPT = "#B7C6D8"

PTK_STYLE = Style.from_dict({
    "completion-menu": "bg:default",
    "completion-menu.completion": "bg:default #C8D8EE",
    "completion-menu.completion.current": "bg:#1E2834 #E7EEF8",
    "completion-menu.meta.completion": "bg:default #7AA7E8",
    "completion-menu.meta.completion.current": "bg:#1E2834 #7AA7E8",
    "completion-menu.command": "#57DB9C",
    "completion-menu.args": "#9BB0C9",
    "completion-menu.description": "#7AA7E8",
    "scrollbar.background": "bg:default",
    "scrollbar.button": "bg:default",
})


@dataclass(frozen=True)
class SlashCommandSpec:
    command: str
    usage: str
    description: str
    keywords: tuple[str, ...] = ()


SLASH_COMMAND_SPECS: tuple[SlashCommandSpec, ...] = (
    SlashCommandSpec("/help", "/help", "Show help", ("docs", "usage", "commands")),
    SlashCommandSpec("/model", "/model [name]", "Show or switch model", ("llm", "openrouter")),
    SlashCommandSpec("/web", "/web", "Toggle web search (:online)", ("search", "online")),
    SlashCommandSpec("/safe", "/safe", "Cycle safety level", ("confirm", "approval", "safety")),
    SlashCommandSpec("/plan", "/plan <task>", "Plan a task read-only", ("explore", "design")),
    SlashCommandSpec("/execute", "/execute", "Run the pending plan", ("plan", "go")),
    SlashCommandSpec("/discard", "/discard", "Drop the pending plan", ("plan", "cancel")),
    SlashCommandSpec("/tokens", "/tokens", "Token usage", ("usage", "cost", "stats")),
    SlashCommandSpec("/clear", "/clear", "Clear conversation", ("reset", "history")),
    SlashCommandSpec("/refresh", "/refresh", "Rebuild project map", ("project", "tree")),
    SlashCommandSpec("/width", "/width <n>", "Set render width (40-140)", ("display", "columns")),
    SlashCommandSpec("/markdown", "/markdown", "Toggle markdown rendering", ("display", "format")),
    SlashCommandSpec("/stream", "/stream", "Toggle live/final streaming", ("display", "live")),
    SlashCommandSpec("/legend", "/legend", "Show marker legend", ("icons", "symbols")),
    SlashCommandSpec("/config", "/config", "Show config", ("settings",)),
    SlashCommandSpec("/quit", "/quit", "Quit", ("exit",)),
)

SLASH_COMMANDS = [spec.command for spec in SLASH_COMMAND_SPECS]
MAX_SLASH_MENU_ITEMS = 16


def build_banner(version: str) -> str:
    return (
        f"[bold {THEME_ACCENT}]routecode[/bold {THEME_ACCENT}] "
        f"[dim]v{version} · coding agent for OpenRouter models[/dim]"
    )


def build_help_text() -> str:
    usage_width = max(len(spec.usage) for spec in SLASH_COMMAND_SPECS)
    lines = ["", f"[bold {THEME_ACCENT}]Commands:[/bold {THEME_ACCENT}]"]
    for spec in SLASH_COMMAND_SPECS:
        lines.append(f"  {escape(spec.usage.ljust(usage_width))}  {spec.description}")

    lines.extend([
        "",
        f"[bold {THEME_ACCENT}]Tips:[/bold {THEME_ACCENT}]",
        "  Esc → Enter   Multi-line input (or paste multi-line text)",
        "  /              Show command menu (prefix + fuzzy)",
        "  Ctrl-C ×2      Exit safely",
    ])
    return "\n".join(lines)


HELP_TEXT = build_help_text()


def make_prompt_html() -> HTML:
    return HTML(
        f'<style fg="{THEME_PROMPT}">routecode</style>'
        f'<style fg="#66788A"> › </style>'
    )


def render_startup(console, config, ui_config=None) -> None:
    key_status = "[green]✓[/green]" if config.api_key else "[red]✗[/red]"
    web_text = "[green]ON[/green]" if config.web_search else "[dim]OFF[/dim]"

    console.print(
        f"[dim]model[/dim] [bold]{config.model}[/bold]"
        f" [dim]• safety[/dim] {config.safety_level}"
        f" [dim]• web[/dim] {web_text}"
        f" [dim]• key[/dim] {key_status}"
    )
    console.print(f"[dim]project[/dim] {config.project_root}")
    console.print(f"[dim]config[/dim] {config._config_source}")
    for warning in config.warnings:
        console.print(f"[#E3B341]⚠ {warning}[/#E3B341]")
    if ui_config is not None and ui_config.show_legend_on_startup:
        render_legend(console)
    console.print("[dim]/help · /plan · /safe · Ctrl+C to cancel[/dim]")
    console.print()


def _fuzzy_span_score(query: str, candidate: str) -> int | None:
    query_chars = query.lower().lstrip("/")
    candidate_chars = candidate.lower().lstrip("/")

    if not query_chars:
        return 0

    positions = []
    cursor = 0
    for char in query_chars:
        index = candidate_chars.find(char, cursor)
        if index < 0:
            return None
        positions.append(index)
        cursor = index + 1

    return positions[-1] - positions[0] + 1


def _command_sort_key(token: str, spec: SlashCommandSpec, order_map: dict[str, int]):
    lowered = token.lower().lstrip("/")
    command_only = spec.command.lower().lstrip("/")

    if not lowered or command_only.startswith(lowered):
        return (0, 0, order_map[spec.command])

    contains_pos = command_only.find(lowered)
    if contains_pos >= 0:
        return (1, contains_pos, order_map[spec.command])

    fuzzy_span = _fuzzy_span_score(lowered, command_only)
    if fuzzy_span is not None:
        return (2, fuzzy_span, order_map[spec.command])

    haystack = " ".join((spec.description, *spec.keywords)).lower()
    keyword_pos = haystack.find(lowered)
    if keyword_pos >= 0:
        return (3, keyword_pos, order_map[spec.command])

    return None


def rank_commands(token: str, specs: Sequence[SlashCommandSpec] = SLASH_COMMAND_SPECS,
                  ) -> list[SlashCommandSpec]:
    order_map = {spec.command: index for index, spec in enumerate(specs)}
    ranked = []
    for spec in specs:
        key = _command_sort_key(token, spec, order_map)
        if key is not None:
            ranked.append((key, spec))
    ranked.sort(key=lambda item: item[0])
    return [spec for _, spec in ranked]


class SlashCommandCompleter(Completer):
    """Slash-command palette with prefix, substring and fuzzy matching."""

    def __init__(
        self,
        specs: Sequence[SlashCommandSpec] = SLASH_COMMAND_SPECS,
        max_items: int = MAX_SLASH_MENU_ITEMS,
    ):
        self.specs = list(specs)
        self.max_items = max_items
        self.usage_width = max(len(spec.usage) for spec in self.specs)

    def _display(self, spec: SlashCommandSpec):
        display = [("class:completion-menu.command", spec.command)]
        if spec.usage != spec.command:
            display.append(("class:completion-menu.args", spec.usage[len(spec.command):]))
        gap = " " * max(2, self.usage_width - len(spec.usage) + 1)
        display.append(("", gap))
        display.append(("class:completion-menu.description", spec.description))
        return display

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor.lstrip()
        if not text.startswith("/") or " " in text:
            return

        for spec in rank_commands(text, self.specs)[: self.max_items]:
            yield Completion(
                text=spec.command,
                start_position=-len(text),
                display=self._display(spec),
                display_meta="",
            )
