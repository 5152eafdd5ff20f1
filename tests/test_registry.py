import pytest

from routecode.errors import ToolError
from routecode.tools import ToolRegistry
from routecode.tools.registry import CONTROL_TOOLS, READ_ONLY_TOOLS

EXPECTED_TOOLS = {
    "read_file", "read_file_with_lines", "get_file_info", "write_file", "delete_file",
    "move_file", "edit_file", "multi_edit_file", "edit_file_by_lines", "insert_at_line",
    "execute_command", "list_directory", "find_files", "search_files",
    "get_current_directory", "task_complete", "ask_user",
}


@pytest.fixture
def registry(tmp_path):
    return ToolRegistry(str(tmp_path))


def test_every_tool_is_registered_with_a_schema(registry):
    assert set(registry.names) == EXPECTED_TOOLS
    for schema in registry.schemas():
        assert schema["type"] == "function"
        assert schema["function"]["parameters"]["type"] == "object"


def test_read_only_schemas_exclude_mutating_and_control_tools(registry):
    names = {s["function"]["name"] for s in registry.schemas(read_only=True)}

    assert names == set(READ_ONLY_TOOLS)
    assert not names & CONTROL_TOOLS


def test_unknown_tool(registry):
    result = registry.validate("format_disk", {})

    assert not result.ok
    assert result.error == "Unknown tool: format_disk"


def test_missing_required_argument_names_the_field(registry):
    result = registry.validate("write_file", {"path": "a.txt"})

    assert not result.ok
    assert result.error.startswith("Validation failed for write_file: root:")
    assert "'content' is a required property" in result.error


def test_wrong_type_reports_path(registry):
    result = registry.validate("read_file", {"path": "a", "start_line": "ten"})

    assert not result.ok
    assert "start_line:" in result.error


def test_nested_array_errors_report_index(registry):
    result = registry.validate("multi_edit_file", {"path": "a", "edits": [{"old_text": "x"}]})

    assert not result.ok
    assert "edits.0:" in result.error


def test_empty_path_is_rejected(registry):
    assert not registry.validate("read_file", {"path": ""}).ok


def test_defaults_are_filled_and_unknown_keys_dropped(registry):
    result = registry.validate("execute_command", {"command": "ls", "shell": "zsh"})

    assert result.ok
    assert result.args == {"command": "ls", "timeout": 60000}


def test_integral_floats_become_ints(registry):
    result = registry.validate("read_file", {"path": "a", "start_line": 3.0})

    assert result.ok
    assert result.args["start_line"] == 3
    assert isinstance(result.args["start_line"], int)


def test_invoke_dispatches_to_handler(registry, tmp_path):
    args = registry.validate("write_file", {"path": "x.txt", "content": "hi"}).args

    assert registry.invoke("write_file", args) == "Created x.txt (1 lines)"
    assert (tmp_path / "x.txt").read_text(encoding="utf-8") == "hi"


def test_invoke_refuses_control_tools(registry):
    with pytest.raises(ToolError, match="control tools"):
        registry.invoke("task_complete", {"summary": "done"})


def test_command_timeout_is_configurable(tmp_path):
    registry = ToolRegistry(str(tmp_path), command_timeout_ms=1234)

    assert registry.shell.timeout_ms == 1234
