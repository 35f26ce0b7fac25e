"""
Unit tests for ConfigManager.

Tests verify:
- TOML loading and malformed files
- Environment variable overrides
- Explicit overrides win over both
- Typed getters and their errors
"""
from pathlib import Path

import pytest

from depthwatch.core.config import ConfigManager
from depthwatch.core.errors import InvalidConfiguration


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "depthwatch.toml"
    path.write_text(
        """
[polymarket]
ws_url = "wss://example.test/ws/market"

[display]
precision = 3
row_count = 15

[stream]
base_delay_seconds = 0.5
"""
    )
    return path


class TestConfigBasics:
    """Tests for basic ConfigManager functionality."""

    def test_empty_config(self):
        config = ConfigManager()
        assert config.get("any.key") is None
        assert config.get("any.key", "default") == "default"

    def test_missing_file_is_empty(self, tmp_path):
        config = ConfigManager(tmp_path / "nope.toml")
        assert config.get("display.precision") is None

    def test_load_toml_file(self, config_file):
        config = ConfigManager(config_file)
        assert config.get("polymarket.ws_url") == "wss://example.test/ws/market"
        assert config.get("display.precision") == 3

    def test_table_lookup(self, config_file):
        config = ConfigManager(config_file)
        assert config.get("display") == {"precision": 3, "row_count": 15}

    def test_nested_lookup_through_scalar(self, config_file):
        config = ConfigManager(config_file)
        assert config.get("display.precision.value") is None

    def test_malformed_toml_rejected(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[display\nprecision = 3\n")
        with pytest.raises(InvalidConfiguration) as exc_info:
            ConfigManager(path)
        assert "broken.toml" in str(exc_info.value)


class TestOverrides:
    """Tests for environment and explicit overrides."""

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("DEPTHWATCH_DISPLAY_PRECISION", "5")
        config = ConfigManager(config_file)
        assert config.get("display.precision") == 5

    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("off", False), ("1.5", 1.5), ("42", 42), ("wss://x", "wss://x")],
    )
    def test_env_value_parsing(self, monkeypatch, raw, expected):
        monkeypatch.setenv("DEPTHWATCH_SOME_KEY", raw)
        assert ConfigManager().get("some.key") == expected

    def test_set_wins_over_env(self, config_file, monkeypatch):
        monkeypatch.setenv("DEPTHWATCH_DISPLAY_ROW_COUNT", "20")
        config = ConfigManager(config_file)
        config.set("display.row_count", 30)
        assert config.get_int("display.row_count") == 30

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("DW_DISPLAY_PRECISION", "4")
        assert ConfigManager(env_prefix="DW_").get_int("display.precision") == 4


class TestTypedGetters:
    """Tests for typed accessors."""

    def test_get_int_default(self):
        assert ConfigManager().get_int("display.precision", 2) == 2

    def test_get_int_from_string_override(self):
        config = ConfigManager()
        config.set("display.precision", "6")
        assert config.get_int("display.precision") == 6

    @pytest.mark.parametrize("value", ["three", 2.5, True])
    def test_get_int_rejects_bad_value(self, value):
        config = ConfigManager()
        config.set("display.precision", value)
        with pytest.raises(InvalidConfiguration) as exc_info:
            config.get_int("display.precision")
        assert "display.precision" in str(exc_info.value)

    def test_get_float(self, config_file):
        assert ConfigManager(config_file).get_float("stream.base_delay_seconds") == 0.5

    def test_get_float_rejects_bad_value(self, monkeypatch):
        monkeypatch.setenv("DEPTHWATCH_STREAM_BASE_DELAY_SECONDS", "soon")
        with pytest.raises(InvalidConfiguration):
            ConfigManager().get_float("stream.base_delay_seconds")

    @pytest.mark.parametrize("value,expected", [("yes", True), ("0", False), (1, True), (False, False)])
    def test_get_bool(self, value, expected):
        config = ConfigManager()
        config.set("logging.json", value)
        assert config.get_bool("logging.json") is expected

    def test_get_bool_rejects_bad_value(self):
        config = ConfigManager()
        config.set("logging.json", "maybe")
        with pytest.raises(InvalidConfiguration):
            config.get_bool("logging.json")
