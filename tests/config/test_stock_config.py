"""Tests for stock_config: packaged defaults, YAML overlays and validation."""

import pytest
import yaml

from stock_config import CONFIG_ENV_VAR, compute_checksum, get_active_config
from stock_config.loader import load_yaml_file, merge_layers, parse_config
from stock_config.schema import StockConfig


def _write(tmp_path, data, name="override.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


class TestDefaults:
    def test_packaged_defaults_match_schema(self):
        assert get_active_config() == StockConfig()

    def test_default_values(self):
        config = get_active_config()
        assert config.summary_cache_ttl_seconds == 300
        assert config.summary_batch_size == 5
        assert config.summary_item_timeout_seconds == 30
        assert config.exclude_on_hold_orders_default is True
        assert config.sync_key == "stock_movements"
        assert config.log_level == "INFO"

    def test_config_is_frozen(self):
        config = get_active_config()
        with pytest.raises(AttributeError):
            config.summary_batch_size = 10


class TestOverlay:
    def test_path_overrides_defaults(self, tmp_path):
        path = _write(tmp_path, {"summary_batch_size": 8, "database_url": "sqlite:///x.db"})
        config = get_active_config(path)
        assert config.summary_batch_size == 8
        assert config.database_url == "sqlite:///x.db"
        assert config.summary_cache_ttl_seconds == 300

    def test_env_var_used_when_no_path(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"sync_key": "nightly"})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert get_active_config().sync_key == "nightly"

    def test_explicit_path_beats_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(_write(tmp_path, {"sync_key": "env"}, "env.yaml")))
        path = _write(tmp_path, {"sync_key": "arg"}, "arg.yaml")
        assert get_active_config(path).sync_key == "arg"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")

    def test_empty_file_is_no_override(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert get_active_config(path) == StockConfig()

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_merge_later_wins(self):
        assert merge_layers({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_load_is_logged(self, tmp_path, captured_logs):
        get_active_config(_write(tmp_path, {"summary_batch_size": 2}))
        loaded = [r for r in captured_logs() if r["message"] == "stock_config_loaded"]
        assert loaded[0]["logger"] == "stock_kernel.config"
        assert loaded[0]["database_backend"] == "sqlite"


class TestValidation:
    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown configuration key"):
            parse_config({"cache_ttl": 10})

    @pytest.mark.parametrize(
        "key",
        [
            "summary_cache_ttl_seconds",
            "summary_batch_size",
            "summary_item_timeout_seconds",
            "store_timeout_seconds",
        ],
    )
    @pytest.mark.parametrize("value", [0, -1, "ten", True])
    def test_sizes_and_timeouts_must_be_positive_numbers(self, key, value):
        with pytest.raises(ValueError):
            parse_config({key: value})

    def test_batch_size_must_be_integer(self):
        with pytest.raises(ValueError, match="integer"):
            parse_config({"summary_batch_size": 2.5})

    def test_fractional_timeout_allowed(self):
        assert parse_config({"summary_item_timeout_seconds": 0.5}).summary_item_timeout_seconds == 0.5

    @pytest.mark.parametrize("key", ["database_url", "sync_key", "log_level"])
    def test_blank_strings_rejected(self, key):
        with pytest.raises(ValueError):
            parse_config({key: "  "})

    def test_log_level_normalized(self):
        assert parse_config({"log_level": "debug"}).log_level == "DEBUG"

    def test_bad_log_level(self):
        with pytest.raises(ValueError, match="logging level"):
            parse_config({"log_level": "LOUD"})

    def test_flag_must_be_boolean(self):
        with pytest.raises(ValueError):
            parse_config({"exclude_on_hold_orders_default": "yes"})


class TestChecksum:
    def test_stable_for_equal_configs(self):
        assert compute_checksum(StockConfig()) == compute_checksum(StockConfig())

    def test_changes_with_values(self):
        assert compute_checksum(StockConfig()) != compute_checksum(
            StockConfig(summary_batch_size=6)
        )
