"""File operations: read, write, edit, move, delete, list, search."""

import difflib
import fnmatch
import json
import os
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_DIFF_LINES = 50
MAX_SEARCH_RESULTS = 50

SENSITIVE_FILE_PATTERNS = [
    re.compile(r"^\.env(\.local|\.production|\.development)?$", re.IGNORECASE),
    re.compile(r"^\.env\..+$", re.IGNORECASE),
    re.compile(r"id_rsa|id_ed25519|id_ecdsa", re.IGNORECASE),
    re.compile(r"\.pem$", re.IGNORECASE),
    re.compile(r"\.key$", re.IGNORECASE),
    re.compile(r"credentials", re.IGNORECASE),
    re.compile(r"secrets?\.ya?ml$", re.IGNORECASE),
]


class FileOperationError(Exception):
    pass


def is_sensitive_name(name: str) -> bool:
    return any(p.search(name) for p in SENSITIVE_FILE_PATTERNS)


def make_diff(old_content: str, new_content: str, filename: str) -> str:
    """Unified diff capped at MAX_DIFF_LINES lines."""
    if old_content == new_content:
        return "No changes"
    old_lines = old_content.splitlines(keepends=True)
    new_lines = new_content.splitlines(keepends=True)
    if old_lines and not old_lines[-1].endswith("\n"):
        old_lines[-1] += "\n"
    if new_lines and not new_lines[-1].endswith("\n"):
        new_lines[-1] += "\n"
    lines = "".join(difflib.unified_diff(
        old_lines, new_lines, fromfile=f"a/{filename}", tofile=f"b/{filename}", n=3,
    )).splitlines()
    if len(lines) > MAX_DIFF_LINES:
        extra = len(lines) - MAX_DIFF_LINES
        return "\n".join(lines[:MAX_DIFF_LINES]) + f"\n... ({extra} more lines truncated)"
    return "\n".join(lines)


class FileOps:
    SKIP_DIRS = {
        ".git", ".svn", ".hg", ".venv", "venv", "node_modules",
        "__pycache__", ".mypy_cache", ".pytest_cache", ".tox",
    }

    def __init__(self, project_root: str):
        self.project_root = Path(project_root).resolve()

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        if not p.is_absolute():
            p = self.project_root / p
        p = p.resolve()
        try:
            p.relative_to(self.project_root)
        except ValueError:
            raise FileOperationError(
                f"Path traversal blocked: '{path}' resolves outside the working directory"
            )
        if p != self.project_root and is_sensitive_name(p.name):
            raise FileOperationError(f"Access denied: '{p.name}' is a sensitive file")
        return p

    def _rel(self, fp: Path) -> str:
        rel = fp.relative_to(self.project_root)
        return str(rel) if str(rel) != "." else "."

    @staticmethod
    def _read_text(fp: Path, path: str) -> str:
        if not fp.exists():
            raise FileOperationError(f"File not found: {path}")
        if not fp.is_file():
            raise FileOperationError(f"Not a file: {path}")
        try:
            return fp.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise FileOperationError(f"Cannot read binary file: {path}")

    @staticmethod
    def _backup(fp: Path) -> Optional[Path]:
        if not fp.is_file():
            return None
        backup = fp.with_name(fp.name + ".bak")
        try:
            shutil.copy2(fp, backup)
        except OSError:
            return None
        return backup

    # ── Reading ──

    def read_file(self, path: str, start_line: Optional[int] = None,
                  end_line: Optional[int] = None, show_line_numbers: bool = False) -> str:
        fp = self._resolve(path)
        if start_line is None and end_line is None and fp.is_file():
            size = fp.stat().st_size
            if size > MAX_FILE_SIZE:
                raise FileOperationError(
                    f"File too large ({size / (1024 * 1024):.2f}MB). Maximum allowed size is "
                    f"{MAX_FILE_SIZE // (1024 * 1024)}MB. Use line ranges to read portions of large files."
                )
        lines = self._read_text(fp, path).split("\n")

        start = start_line or 1
        end = end_line or len(lines)
        selected = [(i, lines[i - 1]) for i in range(start, min(end, len(lines)) + 1)]
        if not selected:
            return "No lines in specified range"
        if show_line_numbers:
            return "\n".join(f"{n} | {text}" for n, text in selected)
        return "\n".join(text for _, text in selected)

    def read_file_with_lines(self, path: str, start_line: Optional[int] = None,
                             end_line: Optional[int] = None) -> str:
        fp = self._resolve(path)
        lines = self._read_text(fp, path).split("\n")
        total = len(lines)
        start = start_line or 1
        end = min(end_line or total, total)
        numbered = [f"{n:4d} | {lines[n - 1]}" for n in range(start, end + 1)]
        if not numbered:
            return f"No lines in specified range (file has {total} lines)"
        if start_line or end_line:
            range_info = f"Lines {start}-{end} of {total}"
        else:
            range_info = f"All {total} lines"
        return f"File: {path}\n{range_info}\n{'─' * 60}\n" + "\n".join(numbered)

    def get_file_info(self, path: str) -> str:
        fp = self._resolve(path)
        if not fp.exists():
            raise FileOperationError(f"Not found: {path}")
        st = fp.stat()
        info = {
            "path": path,
            "type": "directory" if fp.is_dir() else "file",
            "size": st.st_size,
            "sizeHuman": self._fmtsize(st.st_size),
            "modified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
        }
        if fp.is_file():
            try:
                info["lineCount"] = len(fp.read_text(encoding="utf-8").split("\n"))
            except UnicodeDecodeError:
                info["lineCount"] = None
        return json.dumps(info, indent=2)

    # ── Writing ──

    def write_file(self, path: str, content: str) -> str:
        fp = self._resolve(path)
        existed = fp.is_file()
        self._backup(fp)
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_text(content, encoding="utf-8")
        verb = "Overwrote" if existed else "Created"
        return f"{verb} {path} ({len(content.splitlines())} lines)"

    def delete_file(self, path: str, recursive: bool = False) -> str:
        fp = self._resolve(path)
        if fp == self.project_root:
            raise FileOperationError("Refusing to delete the working directory")
        if not fp.exists():
            raise FileOperationError(f"Not found: {path}")
        if fp.is_dir():
            if recursive:
                shutil.rmtree(fp)
            else:
                try:
                    fp.rmdir()
                except OSError:
                    raise FileOperationError(
                        f"Directory not empty: {path}. Pass recursive=true to delete it."
                    )
            return f"Deleted directory {path}"
        fp.unlink()
        return f"Deleted {path}"

    def move_file(self, source: str, destination: str) -> str:
        src = self._resolve(source)
        dst = self._resolve(destination)
        if not src.exists():
            raise FileOperationError(f"Not found: {source}")
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
        return f"Moved {source} to {destination}"

    # ── Editing ──

    def edit_file(self, path: str, old_text: str, new_text: str,
                  replace_all: bool = False) -> str:
        fp = self._resolve(path)
        content = self._read_text(fp, path)
        count = content.count(old_text)
        if count == 0:
            raise FileOperationError(f"The specified old_text was not found in {path}")
        if count > 1 and not replace_all:
            raise FileOperationError(
                f"old_text appears {count}x in {path}. Add context to make it unique "
                f"or pass replace_all=true."
            )
        self._backup(fp)
        if replace_all:
            new_content = content.replace(old_text, new_text)
        else:
            new_content = content.replace(old_text, new_text, 1)
        fp.write_text(new_content, encoding="utf-8")
        replaced = count if replace_all else 1
        return (f"Edited {path}: replaced {replaced} occurrence(s)\n\n"
                f"Diff:\n{make_diff(content, new_content, path)}")

    def multi_edit_file(self, path: str, edits: List[Dict[str, str]]) -> str:
        """Apply find/replace edits in order; an edit whose text is missing is reported and skipped."""
        fp = self._resolve(path)
        original = self._read_text(fp, path)
        if not edits:
            raise FileOperationError("No edits provided.")

        content = original
        results = []
        for i, edit in enumerate(edits, 1):
            old_text = edit.get("old_text", "")
            if not old_text or old_text not in content:
                results.append(f"Edit {i}: NOT FOUND - \"{old_text[:30]}...\"")
                continue
            content = content.replace(old_text, edit.get("new_text", ""), 1)
            results.append(f"Edit {i}: OK")

        if content != original:
            self._backup(fp)
            fp.write_text(content, encoding="utf-8")
        return (f"Edited {path}:\n" + "\n".join(results)
                + f"\n\nDiff:\n{make_diff(original, content, path)}")

    def edit_file_by_lines(self, path: str, start_line: int, end_line: int,
                           new_content: str) -> str:
        fp = self._resolve(path)
        if start_line > end_line:
            raise FileOperationError(
                f"start_line ({start_line}) must be <= end_line ({end_line})"
            )
        original = self._read_text(fp, path)
        lines = original.split("\n")
        total = len(lines)
        if start_line < 1:
            raise FileOperationError(f"start_line must be >= 1 (got {start_line})")
        if end_line > total:
            raise FileOperationError(
                f"end_line ({end_line}) exceeds file length ({total} lines)"
            )

        replacement = [] if new_content == "" else new_content.split("\n")
        result = lines[:start_line - 1] + replacement + lines[end_line:]
        updated = "\n".join(result)
        self._backup(fp)
        fp.write_text(updated, encoding="utf-8")

        removed = end_line - start_line + 1
        delta = len(replacement) - removed
        sign = "+" if delta >= 0 else ""
        return (f"Edited {path}\n"
                f"Replaced lines {start_line}-{end_line} ({removed} lines) with "
                f"{len(replacement)} lines ({sign}{delta} net)\n"
                f"New file has {len(result)} lines\n\n"
                f"Diff:\n{make_diff(original, updated, path)}")

    def insert_at_line(self, path: str, line_number: int, content: str,
                       position: str = "after") -> str:
        fp = self._resolve(path)
        original = self._read_text(fp, path)
        lines = original.split("\n")
        index = line_number - 1 if position == "before" else line_number
        if index < 0 or index > len(lines):
            raise FileOperationError(
                f"Line {line_number} is out of range (file has {len(lines)} lines)"
            )
        lines.insert(index, content)
        self._backup(fp)
        fp.write_text("\n".join(lines), encoding="utf-8")
        return f"Inserted content {position} line {line_number} in {path}"

    # ── Exploring ──

    def list_directory(self, directory: str = ".", recursive: bool = False,
                       show_size: bool = False) -> str:
        fp = self._resolve(directory)
        if not fp.exists():
            raise FileOperationError(f"Not found: {directory}")
        if not fp.is_dir():
            raise FileOperationError(f"Not a directory: {directory}")
        lines: List[str] = []
        self._list(fp, lines, "", recursive, show_size)
        return "\n".join(lines) if lines else "Empty directory"

    def _list(self, d: Path, lines: list, indent: str, recursive: bool, show_size: bool):
        try:
            entries = sorted(d.iterdir(), key=lambda e: (not e.is_dir(), e.name.lower()))
        except PermissionError:
            return
        for entry in entries:
            if entry.name.startswith(".") or entry.name in self.SKIP_DIRS:
                continue
            if entry.is_dir():
                lines.append(f"{indent}{entry.name}/")
                if recursive:
                    self._list(entry, lines, indent + "  ", recursive, show_size)
            else:
                suffix = f" ({self._fmtsize(entry.stat().st_size)})" if show_size else ""
                lines.append(f"{indent}{entry.name}{suffix}")

    def _walk(self, root: Path):
        for dirpath, dirs, files in os.walk(root):
            dirs[:] = sorted(d for d in dirs if d not in self.SKIP_DIRS and not d.startswith("."))
            yield Path(dirpath), dirs, sorted(files)

    def find_files(self, pattern: str, directory: str = ".", max_results: int = 50) -> str:
        fp = self._resolve(directory)
        if not fp.is_dir():
            raise FileOperationError(f"Not a directory: {directory}")
        results: List[str] = []
        for base, dirs, files in self._walk(fp):
            for name in dirs + files:
                if fnmatch.fnmatch(name.lower(), pattern.lower()):
                    results.append(self._rel(base / name))
                    if len(results) >= max_results:
                        return "\n".join(results)
        return "\n".join(results) if results else "No files found matching pattern"

    def search_files(self, pattern: str, directory: str = ".", regex: bool = False,
                     extensions: Optional[List[str]] = None) -> str:
        fp = self._resolve(directory)
        if not fp.is_dir():
            raise FileOperationError(f"Not a directory: {directory}")
        if regex:
            try:
                compiled = re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                raise FileOperationError(f"Invalid regex pattern: {e}")
            matches = compiled.search
        else:
            needle = pattern.lower()
            matches = lambda line: needle in line.lower()  # noqa: E731

        exts = {e.lstrip(".") for e in extensions} if extensions else None
        results: List[str] = []
        for base, _, files in self._walk(fp):
            for name in files:
                if exts is not None and Path(name).suffix.lstrip(".") not in exts:
                    continue
                if is_sensitive_name(name):
                    continue
                path = base / name
                try:
                    text = path.read_text(encoding="utf-8")
                except (UnicodeDecodeError, OSError):
                    continue
                for lineno, line in enumerate(text.split("\n"), 1):
                    if matches(line):
                        results.append(f"{self._rel(path)}:{lineno}: {line.strip()[:100]}")
                        if len(results) >= MAX_SEARCH_RESULTS:
                            return "\n".join(results)
        return "\n".join(results) if results else "No matches found"

    def get_current_directory(self) -> str:
        return str(self.project_root)

    @staticmethod
    def _fmtsize(n: float) -> str:
        for u in ("B", "KB", "MB", "GB"):
            if n < 1024:
                return f"{n:.0f}{u}" if u == "B" else f"{n:.1f}{u}"
            n /= 1024
        return f"{n:.1f}TB"
