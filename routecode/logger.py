"""Logging for routecode.

Every record carries the id of the run it belongs to and the model turn
within that run, so one session's log file can be read run by run.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator, Union

__all__ = ["setup_logger", "get_logger", "run_context", "set_step", "RunContextFilter"]

DEFAULT_LOG_FILE = Path("~/.routecode/logs/agent.log").expanduser()
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(run)s %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3
QUIET_LIBRARIES = ("litellm", "LiteLLM", "httpx")

_run_id: ContextVar[str] = ContextVar("routecode_run_id", default="-")
_step: ContextVar[int] = ContextVar("routecode_step", default=0)


class RunContextFilter(logging.Filter):
    """Stamp ``record.run`` with ``<kind>-<id>#<step>`` (``-`` outside a run)."""

    def filter(self, record: logging.LogRecord) -> bool:
        run_id = _run_id.get()
        step = _step.get()
        record.run = f"{run_id}#{step}" if run_id != "-" and step else run_id
        return True


@contextmanager
def run_context(kind: str = "run") -> Iterator[str]:
    """Tag log records emitted inside the block with a fresh run id."""
    run_id = f"{kind}-{uuid.uuid4().hex[:8]}"
    run_token = _run_id.set(run_id)
    step_token = _step.set(0)
    try:
        yield run_id
    finally:
        _step.reset(step_token)
        _run_id.reset(run_token)


def set_step(step: int):
    _step.set(step)


def setup_logger(
    name: str,
    verbose: bool = False,
    log_file: Union[str, Path, bool, None] = None,
) -> logging.Logger:
    """Configure the ``name`` logger and return it.

    The console shows WARNING and above, or INFO with ``verbose``. The log
    file always records INFO. ``log_file`` may be a path, ``None``/``True``
    for ``~/.routecode/logs/agent.log``, or ``False`` to skip the file.
    Calling this again replaces the handlers installed before.
    """
    logger = logging.getLogger(name)
    console_level = logging.INFO if verbose else logging.WARNING

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    context = RunContextFilter()
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler.addFilter(context)
    logger.addHandler(console_handler)

    log_path = None if log_file is False else (
        DEFAULT_LOG_FILE if log_file in (None, True) else Path(log_file).expanduser())
    if log_path is None:
        logger.setLevel(console_level)
    else:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=MAX_LOG_BYTES,
                                           backupCount=LOG_BACKUP_COUNT, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler.addFilter(context)
        logger.addHandler(file_handler)
        logger.setLevel(logging.INFO)

    for library in QUIET_LIBRARIES:
        logging.getLogger(library).setLevel(logging.WARNING)
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
