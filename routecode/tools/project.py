"""Project type detection and a compact tree map for the system prompt."""

from pathlib import Path
from typing import List

PROJECT_MARKERS = [
    ("package.json", "Node.js/JavaScript"),
    ("tsconfig.json", "TypeScript"),
    ("pyproject.toml", "Python (pyproject)"),
    ("requirements.txt", "Python"),
    ("Cargo.toml", "Rust"),
    ("go.mod", "Go"),
    ("pom.xml", "Java (Maven)"),
    ("build.gradle", "Java (Gradle)"),
    ("Gemfile", "Ruby"),
    ("composer.json", "PHP"),
]

ALWAYS_IGNORE = {
    "node_modules", ".git", ".svn", ".hg",
    "dist", "build", "out", ".next", ".nuxt",
    "__pycache__", ".pytest_cache", ".mypy_cache", ".venv", "venv",
    "coverage", ".nyc_output", ".DS_Store", "Thumbs.db", ".env",
}


def detect_project_type(root: str = ".") -> str:
    base = Path(root)
    found = [label for marker, label in PROJECT_MARKERS if (base / marker).exists()]
    return ", ".join(found) if found else "Unknown"


def load_gitignore_patterns(root: Path) -> List[str]:
    gitignore = root / ".gitignore"
    if not gitignore.is_file():
        return []
    try:
        text = gitignore.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return []
    return [line.strip() for line in text.splitlines()
            if line.strip() and not line.strip().startswith("#")]


def should_ignore(name: str, patterns: List[str]) -> bool:
    """Name-level match only; not a full gitignore implementation."""
    if name in ALWAYS_IGNORE or name.endswith(".bak") or name.startswith(".env."):
        return True
    for pattern in patterns:
        clean = pattern.strip("/")
        if name == clean:
            return True
        if pattern.startswith("*.") and name.endswith(pattern[1:]):
            return True
    return False


def generate_project_map(root: str = ".", max_depth: int = 4, max_files: int = 100) -> str:
    base = Path(root).resolve()
    patterns = load_gitignore_patterns(base)
    lines = [f"{base.name or base}/"]
    count = 0
    truncated = False

    def walk(directory: Path, prefix: str, depth: int):
        nonlocal count, truncated
        if depth > max_depth or count >= max_files:
            truncated = True
            return
        try:
            entries = sorted(directory.iterdir(), key=lambda e: (not e.is_dir(), e.name))
        except OSError:
            return
        entries = [e for e in entries if not should_ignore(e.name, patterns)]
        for i, entry in enumerate(entries):
            if count >= max_files:
                truncated = True
                break
            last = i == len(entries) - 1
            conn = "└── " if last else "├── "
            ext_pre = "    " if last else "│   "
            count += 1
            if entry.is_dir():
                lines.append(f"{prefix}{conn}{entry.name}/")
                walk(entry, prefix + ext_pre, depth + 1)
            else:
                lines.append(f"{prefix}{conn}{entry.name}")

    walk(base, "", 1)
    if truncated:
        lines.append(f"\n... (truncated at {max_files} items or depth {max_depth})")
    return "\n".join(lines)
