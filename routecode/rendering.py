"""Terminal rendering helpers: responses, tool activity, confirmations, markers."""

from typing import Any, Dict, Optional, Tuple

from rich.console import Console
from rich.constrain import Constrain
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

__all__ = [
    "effective_width", "format_response", "render_response",
    "render_tool_call", "render_result", "render_denial", "render_error",
    "render_warning", "render_info", "render_token_summary", "render_trim_notice",
    "render_completion", "render_plan", "render_legend", "render_retry",
    "summarize_operation", "build_confirmation_panel",
]

# ── Palette ──
ACCENT = "#7FA6D9"
BORDER = "#30363D"
DIM = "#6E7681"
TEXT = "#E6EDF3"
MUTED = "#8B949E"
SEPARATOR = "#484F58"
SUCCESS = "#57DB9C"
WARN = "#E3B341"
ERROR = "#F85149"
INFO = "#58A6FF"

ERROR_PREFIXES = ("Error", "Validation failed", "Unknown tool", "Command timed out")

LEGEND = [
    ("▸", ACCENT, "tool call"),
    ("✓", SUCCESS, "tool succeeded"),
    ("✗", ERROR, "error"),
    ("⚠", WARN, "denied or warning"),
    ("●", SUCCESS, "task complete"),
    ("?", WARN, "needs your input"),
]


# ── Model responses ──


def effective_width(console: Console, ui_config) -> int:
    return max(20, min(ui_config.max_width, console.width))


def format_response(text: str, ui_config, width: int) -> Constrain:
    """Build the renderable for response text, at most ``width`` columns wide.

    The live redraw and the final render both go through here so the two
    always agree on layout.
    """
    body = Markdown(text) if ui_config.markdown_enabled else Text(text)
    return Constrain(body, width)


def render_response(console: Console, text: str, ui_config):
    """Print a finished response once (streaming disabled or not a terminal)."""
    if not text or not text.strip():
        return
    console.print()
    console.print(format_response(text, ui_config, effective_width(console, ui_config)))


# ── Tool activity ──


def render_tool_call(console: Console, name: str, args: Dict[str, Any],
                     index: Optional[int] = None, total: Optional[int] = None):
    icons = {
        "read_file": "▸", "read_file_with_lines": "▸", "get_file_info": "▸",
        "write_file": "◆", "edit_file": "✎", "multi_edit_file": "✎",
        "edit_file_by_lines": "✎", "insert_at_line": "✎",
        "delete_file": "✕", "move_file": "→", "list_directory": "≡",
        "find_files": "⊙", "search_files": "⊙", "execute_command": "$",
    }
    icon = icons.get(name, "·")

    match name:
        case "execute_command":
            detail = args.get("command", "")
        case "read_file" | "read_file_with_lines":
            detail = args.get("path", "")
            if args.get("start_line"):
                detail += f" L{args.get('start_line')}-{args.get('end_line') or '∞'}"
        case "write_file":
            n = str(args.get("content", "")).count("\n") + 1
            detail = f"{args.get('path', '')} ({n} lines)"
        case "move_file":
            detail = f"{args.get('source', '')} → {args.get('destination', '')}"
        case "list_directory":
            detail = args.get("directory", ".")
        case "search_files":
            detail = f"/{args.get('pattern', '')}/ in {args.get('directory', '.')}"
        case "find_files":
            detail = f"{args.get('pattern', '')} in {args.get('directory', '.')}"
        case _:
            detail = str(args.get("path", ""))

    progress = ""
    if total and total > 1:
        progress = f"[{DIM}]{index}/{total}[/{DIM}] "

    line = Text.from_markup(f"\n  {progress}[{ACCENT}]{icon}[/{ACCENT}] [bold {TEXT}]{name}[/bold {TEXT}] ")
    line.append(detail, style=DIM)
    console.print(line)


def render_result(console: Console, name: str, result: str, elapsed: float = 0,
                  max_lines: int = 12):
    time_str = f" ({elapsed:.1f}s)" if elapsed >= 0.1 else ""
    lines = result.splitlines() or [""]

    if result.startswith(ERROR_PREFIXES):
        preview = lines[:5]
        if len(lines) > 5:
            preview.append(f"... ({len(lines) - 5} more)")
        text = Text("     ✗ ", style=ERROR)
        text.append("\n       ".join(preview), style=ERROR)
        text.append(time_str, style=SEPARATOR)
        console.print(text)
        return

    if result.startswith(("Created", "Edited", "Overwrote", "Deleted", "Moved", "Inserted")):
        text = Text(f"     ✓ {lines[0]}", style=SUCCESS)
        text.append(time_str, style=SEPARATOR)
        console.print(text)
        return

    shown = lines[:max_lines]
    if len(lines) > max_lines:
        shown.append(f"... ({len(lines) - max_lines} more lines)")
    text = Text("\n".join(f"     {line}" for line in shown), style=DIM)
    text.append(time_str, style=SEPARATOR)
    console.print(text)


def render_denial(console: Console, name: str):
    console.print(f"     [{WARN}]⚠ {name} denied, skipped[/{WARN}]")


# ── Confirmation ──


def _clip(value: str, limit: int, keep_tail: bool = False) -> str:
    if len(value) <= limit:
        return value
    if keep_tail:
        return "..." + value[-(limit - 3):]
    return value[:limit - 3] + "..."


def summarize_operation(name: str, args: Dict[str, Any], cwd: str = ".") -> Tuple[str, str, str]:
    """Return ``(operation, target, details)`` for a confirmation prompt."""
    path = str(args.get("path", "") or "unknown")
    match name:
        case "write_file":
            return "CREATE/OVERWRITE FILE", path, f"{len(args.get('content') or '')} characters"
        case "edit_file":
            old = str(args.get("old_text", ""))
            scope = " (all occurrences)" if args.get("replace_all") else ""
            return "EDIT FILE", path, f"Replace \"{_clip(old, 33)}\"{scope}"
        case "edit_file_by_lines":
            return "EDIT FILE (by lines)", path, f"Lines {args.get('start_line')}-{args.get('end_line')}"
        case "multi_edit_file":
            return "MULTI-EDIT FILE", path, f"{len(args.get('edits') or [])} edit(s)"
        case "insert_at_line":
            return "INSERT AT LINE", path, f"Line {args.get('line_number')} ({args.get('position') or 'after'})"
        case "delete_file":
            return "DELETE", path, "Recursive" if args.get("recursive") else "Single file"
        case "move_file":
            return "MOVE/RENAME", f"{args.get('source')} → {args.get('destination')}", ""
        case "execute_command":
            return "EXECUTE COMMAND", str(args.get("cwd") or cwd), _clip(str(args.get("command", "")), 50)
        case _:
            return name.upper(), str(args.get("path", "")), ""


def build_confirmation_panel(name: str, args: Dict[str, Any], cwd: str = ".") -> Panel:
    operation, target, details = summarize_operation(name, args, cwd)
    table = Table.grid(padding=(0, 2))
    table.add_column(style=MUTED)
    table.add_column(style=TEXT)
    table.add_row("Operation", operation)
    table.add_row("Target", _clip(target, 50, keep_tail=True))
    if details:
        table.add_row("Details", _clip(details, 46))
    return Panel(
        table,
        title=f"[bold {WARN}]⚠ Confirmation required[/bold {WARN}]",
        title_align="left",
        border_style=WARN,
        padding=(0, 1),
        expand=False,
    )


# ── Status lines ──


def render_error(console: Console, message: str):
    panel = Panel(
        Text(message, style=ERROR),
        title=f"[bold {ERROR}]✗ Error[/bold {ERROR}]",
        title_align="left",
        border_style=ERROR,
        padding=(0, 2),
    )
    console.print()
    console.print(panel)


def render_warning(console: Console, message: str):
    console.print(Text(f"  ⚠ {message}", style=WARN))


def render_info(console: Console, message: str):
    console.print(Text(f"  {message}", style=MUTED))


def render_retry(console: Console, attempt: int, total: int, delay: float):
    render_warning(console, f"Model request failed, retrying in {delay:.1f}s ({attempt}/{total})")


def render_trim_notice(console: Console, removed: int, after: int, available: int):
    render_info(console, f"Context trimmed: dropped {removed} oldest message(s), "
                         f"~{after:,}/{available:,} tokens")


def render_token_summary(console: Console, usage):
    console.print(
        f"\n  [{SEPARATOR}]tokens[/{SEPARATOR}] "
        f"[{MUTED}]in[/{MUTED}] [{TEXT}]{usage.input:,}[/{TEXT}] "
        f"[{SEPARATOR}]·[/{SEPARATOR}] [{MUTED}]out[/{MUTED}] [{TEXT}]{usage.output:,}[/{TEXT}] "
        f"[{SEPARATOR}]·[/{SEPARATOR}] [{MUTED}]total[/{MUTED}] [bold {TEXT}]{usage.total:,}[/bold {TEXT}]"
    )


def render_completion(console: Console, summary: str):
    text = Text("\n  ● ", style=SUCCESS)
    text.append("Task complete", style=f"bold {SUCCESS}")
    if summary:
        text.append(f"  {summary}", style=TEXT)
    console.print(text)


def render_plan(console: Console, plan_text: str, ui_config=None):
    body = Markdown(plan_text) if ui_config is None or ui_config.markdown_enabled else Text(plan_text)
    console.print()
    console.print(Panel(
        body,
        title=f"[bold {INFO}]Execution plan[/bold {INFO}]",
        title_align="left",
        border_style=INFO,
        padding=(0, 1),
    ))
    console.print(f"  [{DIM}]/execute to run it · /discard to drop it[/{DIM}]")


def render_legend(console: Console):
    parts = [f"[{color}]{icon}[/{color}] [{DIM}]{label}[/{DIM}]" for icon, color, label in LEGEND]
    console.print("  " + f"  [{SEPARATOR}]·[/{SEPARATOR}]  ".join(parts))
