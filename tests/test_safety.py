import pytest

from routecode.prompter import Prompter, is_affirmative
from routecode.safety import (
    DENIAL_MESSAGE,
    GateDecision,
    SafetyGate,
    SafetyLevel,
    requires_confirmation,
)
from routecode.tools.registry import CRITICAL_TOOLS, DANGEROUS_TOOLS, READ_ONLY_TOOLS


class TestRequiresConfirmation:
    @pytest.mark.parametrize("tool", sorted(DANGEROUS_TOOLS | CRITICAL_TOOLS))
    def test_full_confirms_every_mutating_tool(self, tool):
        assert requires_confirmation(SafetyLevel.FULL, tool)

    @pytest.mark.parametrize("tool", sorted(CRITICAL_TOOLS))
    def test_delete_only_confirms_critical_tools(self, tool):
        assert requires_confirmation(SafetyLevel.DELETE_ONLY, tool)

    def test_delete_only_skips_plain_edits(self):
        for tool in ("write_file", "edit_file", "multi_edit_file", "move_file"):
            assert not requires_confirmation(SafetyLevel.DELETE_ONLY, tool)

    @pytest.mark.parametrize("level", list(SafetyLevel))
    def test_read_only_tools_never_confirm(self, level):
        for tool in READ_ONLY_TOOLS:
            assert not requires_confirmation(level, tool)

    def test_off_confirms_nothing(self):
        for tool in DANGEROUS_TOOLS | CRITICAL_TOOLS:
            assert not requires_confirmation(SafetyLevel.OFF, tool)


class TestSafetyLevel:
    def test_next_cycles_through_all_levels(self):
        assert SafetyLevel.FULL.next() is SafetyLevel.DELETE_ONLY
        assert SafetyLevel.DELETE_ONLY.next() is SafetyLevel.OFF
        assert SafetyLevel.OFF.next() is SafetyLevel.FULL

    def test_parse_accepts_values_and_underscores(self):
        assert SafetyLevel.parse("full") is SafetyLevel.FULL
        assert SafetyLevel.parse("Delete_Only") is SafetyLevel.DELETE_ONLY
        assert SafetyLevel.parse(SafetyLevel.OFF) is SafetyLevel.OFF

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unknown safety level"):
            SafetyLevel.parse("paranoid")


def _prompter(console, answers):
    replies = list(answers)
    asked = []

    def reader(prompt):
        asked.append(prompt)
        reply = replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    prompter = Prompter(console, reader=reader)
    prompter.asked = asked
    return prompter


class TestSafetyGate:
    def test_denial_skips_invocation(self, console):
        calls = []
        gate = SafetyGate(_prompter(console, ["n"]), SafetyLevel.FULL)

        result, decision = gate.execute("execute_command", {"command": "ls"},
                                        lambda args: calls.append(args) or "ran")

        assert decision is GateDecision.DENIED
        assert result == DENIAL_MESSAGE
        assert calls == []

    @pytest.mark.parametrize("answer", ["y", "YES", "  yes  "])
    def test_approval_runs_the_tool(self, console, answer):
        gate = SafetyGate(_prompter(console, [answer]), SafetyLevel.FULL)

        result, decision = gate.execute("write_file", {"path": "a", "content": "b"},
                                        lambda args: "written")

        assert (result, decision) == ("written", GateDecision.APPROVED)

    @pytest.mark.parametrize("answer", ["", "yep", "no", "sure"])
    def test_anything_else_denies(self, console, answer):
        gate = SafetyGate(_prompter(console, [answer]), SafetyLevel.FULL)

        _, decision = gate.execute("delete_file", {"path": "a"}, lambda args: "gone")

        assert decision is GateDecision.DENIED

    def test_eof_and_interrupt_deny(self, console):
        for error in (EOFError(), KeyboardInterrupt()):
            gate = SafetyGate(_prompter(console, [error]), SafetyLevel.FULL)
            _, decision = gate.execute("delete_file", {"path": "a"}, lambda args: "gone")
            assert decision is GateDecision.DENIED

    def test_off_runs_without_prompt(self, console):
        prompter = _prompter(console, [])
        gate = SafetyGate(prompter, SafetyLevel.OFF)

        result, decision = gate.execute("execute_command", {"command": "ls"}, lambda a: "ok")

        assert (result, decision) == ("ok", GateDecision.AUTO)
        assert prompter.asked == []

    def test_tool_exception_becomes_error_result(self, console):
        gate = SafetyGate(_prompter(console, []), SafetyLevel.OFF)

        def boom(args):
            raise FileNotFoundError("nope.txt")

        result, decision = gate.execute("read_file", {"path": "nope.txt"}, boom)

        assert result == "Error: FileNotFoundError: nope.txt"
        assert decision is GateDecision.AUTO

    def test_confirmation_panel_names_the_operation(self, console, output):
        gate = SafetyGate(_prompter(console, ["n"]), SafetyLevel.FULL)

        gate.execute("execute_command", {"command": "make test"}, lambda a: "ok")

        assert "make test" in output(console)


class TestPrompter:
    def test_pause_and_resume_wrap_the_read(self, console):
        events = []
        prompter = Prompter(console, pause=lambda: events.append("pause"),
                            resume=lambda: events.append("resume"),
                            reader=lambda prompt: events.append("read") or " hi ")

        assert prompter.ask("? ") == "hi"
        assert events == ["pause", "read", "resume"]

    def test_resume_runs_when_read_fails(self, console):
        events = []

        def reader(prompt):
            raise EOFError

        prompter = Prompter(console, resume=lambda: events.append("resume"), reader=reader)

        assert prompter.ask("? ") == ""
        assert events == ["resume"]

    def test_is_affirmative(self):
        assert is_affirmative("y")
        assert is_affirmative("Yes")
        assert not is_affirmative(None)
        assert not is_affirmative("ok")
