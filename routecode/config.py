"""
Configuration: YAML settings with .env support.

Loading priority:
  1. Project dir .routecode.yml
  2. Global ~/.routecode/config.yml
  3. Built-in defaults

API key: OPENROUTER_API_KEY from the environment (or a .env file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from dotenv import load_dotenv

from .llm import DEFAULT_API_BASE, DEFAULT_MODEL
from .logger import get_logger
from .safety import SafetyLevel

_log = get_logger(__name__)

CONFIG_DIR = Path.home() / ".routecode"
CONFIG_FILE = CONFIG_DIR / "config.yml"
PROJECT_CONFIG_NAME = ".routecode.yml"
HISTORY_FILE_NAME = ".agent_history.json"

MIN_WIDTH = 40
MAX_WIDTH = 140
STREAMING_MODES = ("live", "final")
SAFETY_LEVELS = {level.value for level in SafetyLevel}


def normalize_model_id(name: str) -> str:
    """Prefix bare OpenRouter ids so litellm routes them to OpenRouter."""
    name = name.strip()
    return name if name.startswith("openrouter/") else f"openrouter/{name}"


# ── UI configuration ──


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass
class UiConfig:
    """Display settings owned by the agent and passed to renderers."""
    max_width: int = 100
    markdown_enabled: bool = True
    streaming_mode: str = "live"
    show_legend_on_startup: bool = True

    def __post_init__(self):
        self.max_width = clamp(int(self.max_width), MIN_WIDTH, MAX_WIDTH)
        if self.streaming_mode not in STREAMING_MODES:
            raise ValueError(f"streaming_mode must be one of: {', '.join(STREAMING_MODES)}")

    def set_max_width(self, value: int) -> int:
        self.max_width = clamp(int(value), MIN_WIDTH, MAX_WIDTH)
        return self.max_width

    def set_streaming_mode(self, mode: str) -> str:
        mode = str(mode).strip().lower()
        if mode not in STREAMING_MODES:
            raise ValueError(f"streaming mode must be one of: {', '.join(STREAMING_MODES)}")
        self.streaming_mode = mode
        return mode

    def toggle_streaming_mode(self) -> str:
        return self.set_streaming_mode("final" if self.streaming_mode == "live" else "live")

    def toggle_markdown(self) -> bool:
        self.markdown_enabled = not self.markdown_enabled
        return self.markdown_enabled

    def toggle_legend(self) -> bool:
        self.show_legend_on_startup = not self.show_legend_on_startup
        return self.show_legend_on_startup


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    default: Any
    validator: Optional[Callable[[Any], tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple[bool, int, str]:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, clamp(parsed, min_val, max_val), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_enum(value: Any, valid_values) -> tuple[bool, str, str]:
    val_str = str(value).strip().lower()
    if val_str not in valid_values:
        return False, "", f"Must be one of: {', '.join(sorted(valid_values))}"
    return True, val_str, ""


def _validate_bool(value: Any) -> tuple[bool, bool, str]:
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_str(value: Any) -> tuple[bool, str, str]:
    text = str(value or "").strip()
    if not text:
        return False, "", "Must not be empty"
    return True, text, ""


def _validate_model(value: Any) -> tuple[bool, str, str]:
    ok, text, error = _validate_str(value)
    return ok, normalize_model_id(text) if ok else text, error


CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "model": ConfigFieldSpec("model", "model", "Model identifier (litellm format)",
                             DEFAULT_MODEL, _validate_model),
    "api-base": ConfigFieldSpec("api-base", "api_base", "API base URL",
                                DEFAULT_API_BASE, _validate_str),
    "safety-level": ConfigFieldSpec("safety-level", "safety_level",
                                    "Confirmation level: full, delete-only or off",
                                    "full", lambda v: _validate_enum(v, SAFETY_LEVELS)),
    "web-search": ConfigFieldSpec("web-search", "web_search",
                                  "Append :online to the model for web search",
                                  False, _validate_bool),
    "max-width": ConfigFieldSpec("max-width", "max_width", "Render width (40-140)",
                                 100, lambda v: _validate_int_range(v, MIN_WIDTH, MAX_WIDTH)),
    "markdown": ConfigFieldSpec("markdown", "markdown_enabled", "Render markdown output",
                                True, _validate_bool),
    "streaming-mode": ConfigFieldSpec("streaming-mode", "streaming_mode",
                                      "Streaming display: live or final",
                                      "live", lambda v: _validate_enum(v, STREAMING_MODES)),
    "show-legend": ConfigFieldSpec("show-legend", "show_legend_on_startup",
                                   "Show the marker legend on startup", True, _validate_bool),
    "command-timeout": ConfigFieldSpec("command-timeout", "command_timeout",
                                       "Default shell command timeout in seconds",
                                       60, lambda v: _validate_int_range(v, 1, 3600)),
    "max-steps": ConfigFieldSpec("max-steps", "max_steps",
                                 "Steps before asking whether to continue",
                                 15, lambda v: _validate_int_range(v, 1, 200)),
    "max-context-tokens": ConfigFieldSpec("max-context-tokens", "max_context_tokens",
                                          "Estimated token budget per request",
                                          100_000, lambda v: _validate_int_range(v, 4_000, 2_000_000)),
    "verbose": ConfigFieldSpec("verbose", "verbose", "Enable verbose logging",
                               False, _validate_bool),
}


def validate_config_value(key: str, value: Any) -> tuple[bool, Any, str]:
    """Return ``(is_valid, coerced_value, error_message)``."""
    spec = CONFIG_FIELDS.get(key)
    if spec is None:
        return False, value, f"Unknown configuration key: {key}"
    if spec.validator:
        return spec.validator(value)
    return True, value, ""


@dataclass
class Config:
    model: str = DEFAULT_MODEL
    api_base: str = DEFAULT_API_BASE
    api_key: Optional[str] = None
    safety_level: str = "full"
    web_search: bool = False
    max_width: int = 100
    markdown_enabled: bool = True
    streaming_mode: str = "live"
    show_legend_on_startup: bool = True
    command_timeout: int = 60
    max_steps: int = 15
    max_context_tokens: int = 100_000
    verbose: bool = False
    project_root: Optional[str] = None
    warnings: list = field(default_factory=list)
    _config_source: str = "(defaults)"

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        for candidate in [project_path / PROJECT_CONFIG_NAME, CONFIG_FILE]:
            if candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                break

        config._apply_env()
        config.project_root = str(project_path)
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Could not read %s: %s", filepath, e)
            self.warnings.append(f"Could not read {filepath}: {e}")
            return
        if not isinstance(data, dict):
            self.warnings.append(f"{filepath}: expected a mapping at top level")
            return

        for key, raw in data.items():
            ok, value, error = validate_config_value(str(key), raw)
            if not ok:
                self.warnings.append(f"{filepath.name}: {key}: {error}")
                continue
            setattr(self, CONFIG_FIELDS[str(key)].field_name, value)

    def _apply_env(self):
        env_model = os.environ.get("OPENROUTER_MODEL")
        if env_model:
            self.model = normalize_model_id(env_model)
        self.api_key = os.environ.get("OPENROUTER_API_KEY") or self.api_key

    def ui_config(self) -> UiConfig:
        return UiConfig(
            max_width=self.max_width,
            markdown_enabled=self.markdown_enabled,
            streaming_mode=self.streaming_mode,
            show_legend_on_startup=self.show_legend_on_startup,
        )

    def summary(self) -> dict:
        return {
            "model": self.model,
            "api-base": self.api_base,
            "api-key": "set" if self.api_key else "missing",
            "safety-level": self.safety_level,
            "web-search": self.web_search,
            "max-width": self.max_width,
            "markdown": self.markdown_enabled,
            "streaming-mode": self.streaming_mode,
            "command-timeout": self.command_timeout,
            "max-steps": self.max_steps,
            "max-context-tokens": self.max_context_tokens,
            "project": self.project_root,
            "config": self._config_source,
        }

    @property
    def history_path(self) -> Path:
        return Path(self.project_root or ".") / HISTORY_FILE_NAME
