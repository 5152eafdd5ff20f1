"""Human I/O boundary for questions asked in the middle of a run."""

import threading
from typing import Callable, Optional

from rich.console import Console

__all__ = ["Prompter", "is_affirmative"]


def is_affirmative(answer: Optional[str]) -> bool:
    """Only ``y``/``yes`` approve; anything else (including empty) denies."""
    return (answer or "").strip().lower() in ("y", "yes")


class Prompter:
    """Serializes mid-run questions on one console.

    ``pause``/``resume`` let the REPL suspend its own input reader while a
    question is pending; ``resume`` always runs, even when reading fails.
    """

    def __init__(self, console: Optional[Console] = None,
                 pause: Optional[Callable[[], None]] = None,
                 resume: Optional[Callable[[], None]] = None,
                 reader: Optional[Callable[[str], str]] = None):
        self.console = console or Console()
        self.pause = pause
        self.resume = resume
        self._reader = reader
        self._lock = threading.Lock()

    def _read(self, prompt: str) -> str:
        if self._reader is not None:
            return self._reader(prompt)
        return self.console.input(prompt)

    def ask(self, question: str) -> str:
        """Ask a free-text question. EOF and Ctrl-C read as an empty answer."""
        with self._lock:
            if self.pause:
                self.pause()
            try:
                return self._read(question).strip()
            except (KeyboardInterrupt, EOFError):
                return ""
            finally:
                if self.resume:
                    self.resume()

    def confirm(self, question: str) -> bool:
        return is_affirmative(self.ask(question))
