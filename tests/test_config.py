import os

import pytest
import yaml

from routecode import config as config_module
from routecode.config import (
    CONFIG_FIELDS,
    Config,
    UiConfig,
    normalize_model_id,
    validate_config_value,
)
from routecode.llm import DEFAULT_MODEL


@pytest.fixture(autouse=True)
def no_global_config(tmp_path_factory, monkeypatch):
    home = tmp_path_factory.mktemp("home") / ".routecode"
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yml")
    return home


class TestDefaults:
    def test_defaults_without_any_file(self, tmp_dir):
        cfg = Config.load(str(tmp_dir))

        assert cfg.model == DEFAULT_MODEL
        assert cfg.safety_level == "full"
        assert cfg.api_key is None
        assert cfg.warnings == []
        assert cfg.project_root == str(tmp_dir.resolve())
        assert cfg._config_source == "(defaults)"

    def test_history_path_lives_in_project_root(self, tmp_dir):
        cfg = Config.load(str(tmp_dir))

        assert cfg.history_path == tmp_dir.resolve() / ".agent_history.json"


class TestYamlLoading:
    def test_project_file_values_are_applied(self, config_yaml_file, tmp_dir):
        cfg = Config.load(str(tmp_dir))

        assert cfg.model == "openrouter/anthropic/claude-3.5-sonnet"
        assert cfg.safety_level == "delete-only"
        assert cfg.web_search is True
        assert cfg.max_width == 90
        assert cfg.markdown_enabled is False
        assert cfg.streaming_mode == "final"
        assert cfg.show_legend_on_startup is False
        assert cfg.command_timeout == 30
        assert cfg.max_steps == 20
        assert cfg.max_context_tokens == 50000
        assert cfg._config_source == str(config_yaml_file)

    def test_project_file_wins_over_global(self, config_yaml_file, tmp_dir, no_global_config):
        no_global_config.mkdir(parents=True)
        (no_global_config / "config.yml").write_text("max-steps: 99\n", encoding="utf-8")

        assert Config.load(str(tmp_dir)).max_steps == 20

    def test_global_file_used_when_project_has_none(self, tmp_dir, no_global_config):
        no_global_config.mkdir(parents=True)
        (no_global_config / "config.yml").write_text("max-steps: 42\n", encoding="utf-8")

        assert Config.load(str(tmp_dir)).max_steps == 42

    def test_invalid_values_become_warnings(self, tmp_dir):
        data = {"safety-level": "paranoid", "max-width": "wide", "colour": "blue",
                "max-steps": 7}
        (tmp_dir / ".routecode.yml").write_text(yaml.dump(data), encoding="utf-8")

        cfg = Config.load(str(tmp_dir))

        assert cfg.safety_level == "full"
        assert cfg.max_width == 100
        assert cfg.max_steps == 7
        assert len(cfg.warnings) == 3
        assert any("colour" in w and "Unknown configuration key" in w for w in cfg.warnings)

    def test_malformed_yaml_is_a_warning(self, tmp_dir):
        (tmp_dir / ".routecode.yml").write_text("model: [unclosed\n", encoding="utf-8")

        cfg = Config.load(str(tmp_dir))

        assert cfg.model == DEFAULT_MODEL
        assert cfg.warnings and "Could not read" in cfg.warnings[0]

    def test_non_mapping_yaml_is_a_warning(self, tmp_dir):
        (tmp_dir / ".routecode.yml").write_text("- a\n- b\n", encoding="utf-8")

        cfg = Config.load(str(tmp_dir))

        assert "expected a mapping" in cfg.warnings[0]


class TestEnvironment:
    def test_env_model_is_normalized_and_wins(self, config_yaml_file, tmp_dir, monkeypatch):
        monkeypatch.setenv("OPENROUTER_MODEL", "qwen/qwen3-coder")
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or-test")

        cfg = Config.load(str(tmp_dir))

        assert cfg.model == "openrouter/qwen/qwen3-coder"
        assert cfg.api_key == "sk-or-test"

    def test_dotenv_file_supplies_api_key(self, tmp_dir, monkeypatch):
        monkeypatch.setattr(os, "environ", dict(os.environ))
        (tmp_dir / ".env").write_text("OPENROUTER_API_KEY=sk-from-dotenv\n", encoding="utf-8")

        cfg = Config.load(str(tmp_dir))

        assert cfg.api_key == "sk-from-dotenv"
        assert cfg.summary()["api-key"] == "set"


class TestValidation:
    def test_normalize_model_id(self):
        assert normalize_model_id("openai/gpt-4o") == "openrouter/openai/gpt-4o"
        assert normalize_model_id(" openrouter/openai/gpt-4o ") == "openrouter/openai/gpt-4o"

    @pytest.mark.parametrize("key, raw, expected", [
        ("web-search", "yes", True),
        ("markdown", "off", False),
        ("safety-level", "DELETE-ONLY", "delete-only"),
        ("streaming-mode", "Final", "final"),
        ("command-timeout", "45", 45),
        ("model", "x/y", "openrouter/x/y"),
    ])
    def test_values_are_coerced(self, key, raw, expected):
        ok, value, error = validate_config_value(key, raw)

        assert ok and error == ""
        assert value == expected

    def test_out_of_range_reports_bounds(self):
        ok, value, error = validate_config_value("max-width", 500)

        assert not ok
        assert value == 140
        assert error == "Must be between 40 and 140"

    def test_every_field_maps_to_a_config_attribute(self):
        cfg = Config()
        for spec in CONFIG_FIELDS.values():
            assert hasattr(cfg, spec.field_name)
            assert getattr(cfg, spec.field_name) == spec.default


class TestUiConfig:
    def test_width_is_clamped(self):
        ui = UiConfig(max_width=10)
        assert ui.max_width == 40
        assert ui.set_max_width(1000) == 140

    def test_config_builds_ui_config(self):
        ui = Config(max_width=90, markdown_enabled=False, streaming_mode="final").ui_config()

        assert (ui.max_width, ui.markdown_enabled, ui.streaming_mode) == (90, False, "final")

    def test_streaming_mode_toggle_and_validation(self):
        ui = UiConfig()
        assert ui.toggle_streaming_mode() == "final"
        assert ui.toggle_streaming_mode() == "live"
        with pytest.raises(ValueError):
            ui.set_streaming_mode("fast")

    def test_toggles(self):
        ui = UiConfig()
        assert ui.toggle_markdown() is False
        assert ui.toggle_legend() is False
