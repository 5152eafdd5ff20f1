"""Tool registry: schema, handler and argument validation in one table."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from jsonschema import Draft7Validator

from ..errors import ToolError
from .file_ops import FileOps
from .shell import DEFAULT_TIMEOUT_MS, ShellExecutor

READ_ONLY_TOOLS = frozenset({
    "read_file",
    "read_file_with_lines",
    "list_directory",
    "find_files",
    "search_files",
    "get_file_info",
    "get_current_directory",
})
CRITICAL_TOOLS = frozenset({"delete_file", "execute_command"})
DANGEROUS_TOOLS = frozenset({
    "execute_command",
    "delete_file",
    "write_file",
    "move_file",
    "edit_file",
    "edit_file_by_lines",
    "multi_edit_file",
    "insert_at_line",
})
CONTROL_TOOLS = frozenset({"task_complete", "ask_user"})


class _ToolEntry:
    """Single tool registration: handler + schema + compiled validator."""
    __slots__ = ("handler", "schema", "validator")

    def __init__(self, handler: Optional[Callable], schema: dict):
        self.handler = handler
        self.schema = schema
        self.validator = Draft7Validator(schema["function"]["parameters"])

    @property
    def parameters(self) -> dict:
        return self.schema["function"]["parameters"]


def _schema(name: str, description: str, properties: dict,
            required: list) -> dict:
    """Build an OpenAI-compatible function schema."""
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


# Shorthand helpers for property definitions
_S = lambda desc, **kw: {"type": "string", "description": desc, **kw}
_P = lambda desc, **kw: {"type": "string", "minLength": 1, "description": desc, **kw}
_I = lambda desc, **kw: {"type": "integer", "minimum": 1, "description": desc, **kw}
_B = lambda desc, **kw: {"type": "boolean", "description": desc, **kw}


@dataclass
class ValidationResult:
    ok: bool
    args: Dict[str, Any] = field(default_factory=dict)
    error: str = ""


def _error_path(error) -> str:
    path = ".".join(str(p) for p in error.absolute_path)
    return path or "root"


class ToolRegistry:
    def __init__(self, project_root: str, command_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.file_ops = FileOps(project_root)
        self.shell = ShellExecutor(project_root, timeout_ms=command_timeout_ms)
        self._tools: Dict[str, _ToolEntry] = {}
        self._register_tools()

    def _register_tools(self):
        """Register every tool with its schema and handler."""
        f = self.file_ops
        T = _ToolEntry
        S = _schema

        # ── Reading ──
        self._tools["read_file"] = T(
            handler=lambda **a: f.read_file(a["path"], a.get("start_line"), a.get("end_line"),
                                            a.get("show_line_numbers", False)),
            schema=S("read_file",
                     "Read file content. Optionally read specific line range for large files.",
                     {"path": _P("The path to the file to read."),
                      "start_line": _I("Optional: Start reading from this line (1-indexed)."),
                      "end_line": _I("Optional: Stop reading at this line (inclusive)."),
                      "show_line_numbers": _B("Prefix each line with its number.", default=False)},
                     ["path"]),
        )
        self._tools["read_file_with_lines"] = T(
            handler=lambda **a: f.read_file_with_lines(a["path"], a.get("start_line"), a.get("end_line")),
            schema=S("read_file_with_lines",
                     "Read file content with line numbers always shown. Use this BEFORE editing "
                     "to identify exact line numbers for edit_file_by_lines.",
                     {"path": _P("The path to the file to read."),
                      "start_line": _I("Optional: Start reading from this line (1-indexed)."),
                      "end_line": _I("Optional: Stop reading at this line (inclusive).")},
                     ["path"]),
        )
        self._tools["get_file_info"] = T(
            handler=lambda **a: f.get_file_info(a["path"]),
            schema=S("get_file_info",
                     "Get detailed information about a file (size, line count, modified date).",
                     {"path": _P("The path to the file.")},
                     ["path"]),
        )

        # ── Writing ──
        self._tools["write_file"] = T(
            handler=lambda **a: f.write_file(a["path"], a["content"]),
            schema=S("write_file",
                     "Write content to a file. Creates directories if needed. Creates backup before overwriting.",
                     {"path": _P("The path to the file to write."),
                      "content": _S("The content to write to the file.")},
                     ["path", "content"]),
        )
        self._tools["delete_file"] = T(
            handler=lambda **a: f.delete_file(a["path"], a.get("recursive", False)),
            schema=S("delete_file", "Delete a file or directory.",
                     {"path": _P("The path to delete."),
                      "recursive": _B("If true, delete directories recursively.", default=False)},
                     ["path"]),
        )
        self._tools["move_file"] = T(
            handler=lambda **a: f.move_file(a["source"], a["destination"]),
            schema=S("move_file", "Move or rename a file or directory.",
                     {"source": _P("The source path."),
                      "destination": _P("The destination path.")},
                     ["source", "destination"]),
        )

        # ── Editing ──
        self._tools["edit_file"] = T(
            handler=lambda **a: f.edit_file(a["path"], a["old_text"], a["new_text"],
                                            a.get("replace_all", False)),
            schema=S("edit_file",
                     "Edit a file by replacing specific text. old_text must be unique unless "
                     "replace_all is true. Creates backup and shows a diff.",
                     {"path": _P("The path to the file to edit."),
                      "old_text": _P("The exact text to find and replace."),
                      "new_text": _S("The replacement text."),
                      "replace_all": _B("If true, replace all occurrences.", default=False)},
                     ["path", "old_text", "new_text"]),
        )
        self._tools["multi_edit_file"] = T(
            handler=lambda **a: f.multi_edit_file(a["path"], a["edits"]),
            schema=S("multi_edit_file",
                     "Apply multiple find-and-replace edits to a file in one operation.",
                     {"path": _P("The path to the file to edit."),
                      "edits": {
                          "type": "array",
                          "minItems": 1,
                          "description": "Array of edit operations to apply in order.",
                          "items": {
                              "type": "object",
                              "properties": {
                                  "old_text": _P("The exact text to find."),
                                  "new_text": _S("The replacement text."),
                              },
                              "required": ["old_text", "new_text"],
                          },
                      }},
                     ["path", "edits"]),
        )
        self._tools["edit_file_by_lines"] = T(
            handler=lambda **a: f.edit_file_by_lines(a["path"], a["start_line"], a["end_line"],
                                                     a["new_content"]),
            schema=S("edit_file_by_lines",
                     "Replace a range of lines with new content. Use read_file_with_lines first. "
                     "Empty new_content deletes the lines.",
                     {"path": _P("The path to the file to edit."),
                      "start_line": _I("First line to replace (1-indexed, inclusive)."),
                      "end_line": _I("Last line to replace (1-indexed, inclusive)."),
                      "new_content": _S("The new content; may span several lines.")},
                     ["path", "start_line", "end_line", "new_content"]),
        )
        self._tools["insert_at_line"] = T(
            handler=lambda **a: f.insert_at_line(a["path"], a["line_number"], a["content"],
                                                 a.get("position", "after")),
            schema=S("insert_at_line", "Insert content at a specific line number.",
                     {"path": _P("The path to the file."),
                      "line_number": _I("The line number (1-indexed)."),
                      "content": _S("The content to insert."),
                      "position": _S("Insert before or after the line.",
                                     enum=["before", "after"], default="after")},
                     ["path", "line_number", "content"]),
        )

        # ── Shell ──
        self._tools["execute_command"] = T(
            handler=lambda **a: self.shell.execute(a["command"], a.get("cwd"), a.get("timeout")),
            schema=S("execute_command", "Execute a shell command in the project directory.",
                     {"command": _P("The command to execute."),
                      "cwd": _S("Optional: Working directory for the command."),
                      "timeout": _I("Optional: Timeout in milliseconds.", default=DEFAULT_TIMEOUT_MS)},
                     ["command"]),
        )

        # ── Exploring ──
        self._tools["list_directory"] = T(
            handler=lambda **a: f.list_directory(a["directory"], a.get("recursive", False),
                                                 a.get("show_size", False)),
            schema=S("list_directory", "List files and directories.",
                     {"directory": _P("The directory path. Use \".\" for current."),
                      "recursive": _B("If true, list recursively.", default=False),
                      "show_size": _B("If true, show file sizes.", default=False)},
                     ["directory"]),
        )
        self._tools["find_files"] = T(
            handler=lambda **a: f.find_files(a["pattern"], a["directory"], a.get("max_results", 50)),
            schema=S("find_files", "Find files matching a glob-like pattern (e.g. \"*.py\", \"test*\").",
                     {"pattern": _P("The pattern to match (supports * and ? wildcards)."),
                      "directory": _P("The directory to search in."),
                      "max_results": _I("Maximum results to return.", default=50)},
                     ["pattern", "directory"]),
        )
        self._tools["search_files"] = T(
            handler=lambda **a: f.search_files(a["pattern"], a["directory"], a.get("regex", False),
                                               a.get("extensions")),
            schema=S("search_files",
                     "Search for a text pattern in files. Supports regex and extension filtering.",
                     {"pattern": _P("The text or regex pattern to search for."),
                      "directory": _P("The directory to search in."),
                      "regex": _B("If true, treat pattern as regex.", default=False),
                      "extensions": {"type": "array", "items": {"type": "string"},
                                     "description": "Only search files with these extensions (e.g. [\"py\"])."}},
                     ["pattern", "directory"]),
        )
        self._tools["get_current_directory"] = T(
            handler=lambda **a: f.get_current_directory(),
            schema=S("get_current_directory", "Get the current working directory path.", {}, []),
        )

        # ── Control (handled by the run controller, never dispatched here) ──
        self._tools["task_complete"] = T(
            handler=None,
            schema=S("task_complete",
                     "Call this when the task is fully done. This is the only way to finish.",
                     {"summary": _S("Short summary of what was accomplished.")},
                     ["summary"]),
        )
        self._tools["ask_user"] = T(
            handler=None,
            schema=S("ask_user",
                     "Ask the user a clarifying question and wait for the answer.",
                     {"question": _P("The question to ask.")},
                     ["question"]),
        )

    # ── Public API ──

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def schemas(self, read_only: bool = False) -> List[dict]:
        if read_only:
            return [e.schema for n, e in self._tools.items() if n in READ_ONLY_TOOLS]
        return [e.schema for e in self._tools.values()]

    def validate(self, tool_name: str, raw_args: Any) -> ValidationResult:
        """Check arguments against the tool's schema and fill in defaults."""
        entry = self._tools.get(tool_name)
        if entry is None:
            return ValidationResult(False, error=f"Unknown tool: {tool_name}")

        errors = sorted(entry.validator.iter_errors(raw_args), key=lambda e: list(e.absolute_path))
        if errors:
            detail = ", ".join(f"{_error_path(e)}: {e.message}" for e in errors)
            return ValidationResult(False, error=f"Validation failed for {tool_name}: {detail}")

        properties = entry.parameters["properties"]
        args: Dict[str, Any] = {}
        for key, prop in properties.items():
            if key in raw_args:
                value = raw_args[key]
                # jsonschema accepts 3.0 as an integer; handlers want int.
                if prop.get("type") == "integer" and isinstance(value, float):
                    value = int(value)
                args[key] = value
            elif "default" in prop:
                args[key] = prop["default"]
        return ValidationResult(True, args=args)

    def invoke(self, tool_name: str, arguments: Dict[str, Any]) -> str:
        """Dispatch a validated call. Handler exceptions propagate to the caller."""
        entry = self._tools.get(tool_name)
        if entry is None:
            raise ToolError(tool_name, "unknown tool")
        if entry.handler is None:
            raise ToolError(tool_name, "control tools are handled by the agent loop")
        return entry.handler(**arguments)

    @staticmethod
    def is_read_only(tool_name: str) -> bool:
        return tool_name in READ_ONLY_TOOLS

    @staticmethod
    def is_control(tool_name: str) -> bool:
        return tool_name in CONTROL_TOOLS

    READ_ONLY_TOOLS = READ_ONLY_TOOLS
    DANGEROUS_TOOLS = DANGEROUS_TOOLS
    CRITICAL_TOOLS = CRITICAL_TOOLS
    CONTROL_TOOLS = CONTROL_TOOLS
