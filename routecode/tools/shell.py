"""Shell command execution with safety guards."""

import os
import re
import signal
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from ..errors import ShellTimeoutError
from ..logger import get_logger

_log = get_logger(__name__)

MAX_OUTPUT_LENGTH = 50_000
DEFAULT_TIMEOUT_MS = 60_000


class ShellExecutor:
    """Run shell commands in the project directory, refusing destructive payloads."""

    # (pattern, reason) pairs that are always refused.
    BLOCKED_PATTERNS: List[Tuple[str, str]] = [
        (r"\brm\s+(?:-\w*r\w*|--recursive)\b[^;&|\n]*\s[/~](?:\s|$)",
         "Recursive delete on root/sensitive path"),
        (r"\bsudo\s+", "Privilege escalation attempt"),
        (r">\s*/dev/(?!null\b)", "Writing to device files"),
        (r"\bmkfs(?:\.[a-z0-9_+\-]+)?\b", "Filesystem formatting"),
        (r"\bdd\b[^\n;|&]*\bif\s*=", "Low-level disk operations"),
        (r"\bformat\s+[a-z]:", "Disk formatting on Windows"),
        (r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", "Fork bomb"),
        (r"\b(?:curl|wget)\b[^\n;|&]*\|\s*(?:sh|bash|zsh|ksh)\b", "Piping a download into a shell"),
        (r"\bchmod\b\s+(?:-[^\s]+\s+)?0?777\s+/(?:\s|$)", "World-writable root"),
    ]

    # Reported in the log but allowed; the user confirms commands anyway.
    WARN_PATTERNS: List[Tuple[str, str]] = [
        (r"[;&|`$()]", "Command chaining/substitution detected"),
        (r"\brm\s+-rf?\s+\*", "Wildcard deletion"),
    ]

    def __init__(self, project_root: str, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.project_root = Path(project_root).resolve()
        self.timeout_ms = timeout_ms
        self._blocked = [(re.compile(p, re.IGNORECASE), r) for p, r in self.BLOCKED_PATTERNS]
        self._warn = [(re.compile(p, re.IGNORECASE), r) for p, r in self.WARN_PATTERNS]

    @staticmethod
    def _canonicalize_command(command: str) -> str:
        """Normalize quoting and whitespace so trivially obfuscated variants still match."""
        normalized = command.replace("\\\n", " ")
        normalized = re.sub(r"\$\{?\s*IFS\s*\}?", " ", normalized)
        normalized = re.sub(r"['\"\\]", "", normalized)
        normalized = re.sub(r"\s+", " ", normalized)
        return normalized.strip()

    def check(self, command: str) -> Tuple[Optional[str], List[str]]:
        """Return ``(block_reason, warnings)`` for a command."""
        candidates = [command, self._canonicalize_command(command)]
        for regex, reason in self._blocked:
            if any(regex.search(c) for c in candidates):
                return reason, []
        warnings = [reason for regex, reason in self._warn if regex.search(command)]
        return None, warnings

    def _resolve_cwd(self, cwd: Optional[str]) -> Path:
        if not cwd:
            return self.project_root
        p = Path(cwd)
        if not p.is_absolute():
            p = self.project_root / p
        p = p.resolve()
        try:
            p.relative_to(self.project_root)
        except ValueError:
            raise ValueError(f"cwd '{cwd}' is outside the working directory")
        if not p.is_dir():
            raise ValueError(f"cwd '{cwd}' is not a directory")
        return p

    def _run(self, command: str, cwd: Path, timeout_s: float) -> subprocess.CompletedProcess:
        proc = subprocess.Popen(
            ["bash", "-c", command],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            cwd=str(cwd),
            env={**os.environ, "TERM": "dumb"},
            start_new_session=True,
        )
        try:
            stdout, stderr = proc.communicate(timeout=timeout_s)
        except subprocess.TimeoutExpired:
            self._kill_group(proc)
            stdout, stderr = proc.communicate()
            raise ShellTimeoutError(timeout_s, self._combine(stdout, stderr))
        except KeyboardInterrupt:
            # The child runs in its own session, so Ctrl-C never reaches it.
            _log.warning("Interrupted; killing command: %s", command[:100])
            self._kill_group(proc)
            proc.communicate()
            raise
        return subprocess.CompletedProcess(proc.args, proc.returncode, stdout, stderr)

    @staticmethod
    def _kill_group(proc: subprocess.Popen):
        # Kill the whole process group so grandchildren release the pipes.
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            proc.kill()

    @staticmethod
    def _combine(stdout: Optional[str], stderr: Optional[str]) -> str:
        parts = []
        if stdout:
            parts.append(stdout.rstrip("\n"))
        if stderr:
            parts.append("[stderr] " + stderr.rstrip("\n"))
        return "\n".join(parts)

    @staticmethod
    def _cap(output: str) -> str:
        if len(output) <= MAX_OUTPUT_LENGTH:
            return output
        return "[Output truncated to last 50KB]\n" + output[-MAX_OUTPUT_LENGTH:]

    def execute(self, command: str, cwd: Optional[str] = None,
                timeout: Optional[int] = None) -> str:
        """Run ``command``; ``timeout`` is in milliseconds."""
        block_reason, warnings = self.check(command)
        if block_reason:
            _log.warning("Command blocked: %s", block_reason)
            preview = command[:50] + ("..." if len(command) > 50 else "")
            return f"Error: Command blocked: {block_reason}. Command: \"{preview}\""
        if warnings:
            _log.info("Command warnings for %r: %s", command[:100], ", ".join(warnings))

        workdir = self._resolve_cwd(cwd)
        timeout_s = (timeout or self.timeout_ms) / 1000.0
        _log.debug("Executing command: %s", command[:100])

        try:
            result = self._run(command, workdir, timeout_s)
        except ShellTimeoutError as e:
            _log.warning("Command timed out after %.1fs: %s", e.timeout, command[:100])
            return (f"Command timed out after {int(e.timeout * 1000)}ms\n"
                    f"Partial output:\n{self._cap(e.partial_output)}")

        output = self._cap(self._combine(result.stdout, result.stderr))
        if result.returncode != 0:
            output = (output.rstrip() + "\n" if output.strip() else "") + f"[exit code: {result.returncode}]"
        return output if output.strip() else f"Command completed with exit code {result.returncode}"
