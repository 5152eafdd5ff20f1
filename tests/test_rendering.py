from prompt_toolkit.completion import CompleteEvent
from prompt_toolkit.document import Document

from routecode.config import Config, UiConfig
from routecode.rendering import (
    build_confirmation_panel,
    format_response,
    render_result,
    render_tool_call,
    summarize_operation,
)
from routecode.ui import SLASH_COMMANDS, SlashCommandCompleter, rank_commands, render_startup


class TestFormatting:
    def test_plain_text_is_printed_verbatim(self, console, output):
        ui = UiConfig(markdown_enabled=False)

        console.print(format_response("one\ntwo", ui, width=40))

        assert output(console) == "one\ntwo\n"

    def test_markdown_is_rendered(self, console, output):
        console.print(format_response("# Title\n\n- item", UiConfig(), width=40))

        assert "Title" in output(console)
        assert "#" not in output(console)
        assert "item" in output(console)

    def test_width_is_constrained(self, console, output):
        ui = UiConfig(markdown_enabled=False)

        console.print(format_response("word " * 30, ui, width=40))

        assert all(len(line) <= 40 for line in output(console).splitlines())
        assert len(output(console).splitlines()) > 1


class TestToolActivity:
    def test_tool_call_line_shows_progress_and_detail(self, console, output):
        render_tool_call(console, "execute_command", {"command": "pytest -q"}, 2, 3)

        assert "2/3" in output(console)
        assert "execute_command pytest -q" in output(console)

    def test_error_results_are_marked(self, console, output):
        render_result(console, "read_file", "Error: FileOperationError: File not found: x")

        assert "✗ Error: FileOperationError" in output(console)

    def test_long_results_are_clipped(self, console, output):
        render_result(console, "read_file", "\n".join(str(i) for i in range(30)))

        assert "... (18 more lines)" in output(console)

    def test_summaries(self):
        assert summarize_operation("delete_file", {"path": "a", "recursive": True}) == (
            "DELETE", "a", "Recursive")
        op, target, details = summarize_operation("execute_command", {"command": "make"}, "/proj")
        assert (op, target, details) == ("EXECUTE COMMAND", "/proj", "make")

    def test_confirmation_panel(self, console, output):
        console.print(build_confirmation_panel("write_file", {"path": "a.py", "content": "abc"}))

        out = output(console)
        assert "Confirmation required" in out
        assert "CREATE/OVERWRITE FILE" in out
        assert "3 characters" in out


class TestSlashPalette:
    def test_prefix_matches_rank_first(self):
        assert rank_commands("/s")[0].command == "/safe"

    def test_fuzzy_and_keyword_matches(self):
        assert rank_commands("/mdn")[0].command == "/markdown"
        assert "/tokens" in [s.command for s in rank_commands("/cost")]

    def test_empty_token_lists_everything_in_order(self):
        assert [s.command for s in rank_commands("/")] == SLASH_COMMANDS

    def test_completer_only_completes_the_command_word(self):
        completer = SlashCommandCompleter()
        event = CompleteEvent()

        names = [c.text for c in completer.get_completions(Document("/pl"), event)]
        assert names[0] == "/plan"
        assert list(completer.get_completions(Document("/plan do it"), event)) == []
        assert list(completer.get_completions(Document("hello"), event)) == []


def test_startup_summary(console, output):
    cfg = Config(project_root="/work/app", warnings=["bad key"])

    render_startup(console, cfg, UiConfig(show_legend_on_startup=True))

    out = output(console)
    assert cfg.model in out
    assert "/work/app" in out
    assert "bad key" in out
    assert "tool call" in out
