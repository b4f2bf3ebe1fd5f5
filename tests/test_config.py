"""Tests for configuration loading and settings validation."""

from pathlib import Path

import pytest

from recallbot.core.config import ConfigLoader, IndexingSettings, SearchSettings, ContextSettings
from recallbot.core.errors import ConfigError
from recallbot.core.registry import ComponentRegistry

DEFAULT_CONFIG = Path(__file__).parent.parent / "config" / "default.yaml"


class TestConfigLoader:
    def test_load_explicit_path(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("search:\n  rrf_k: 30\n", encoding="utf-8")
        assert ConfigLoader.load(path) == {'search': {'rrf_k': 30}}

    def test_env_var_wins_over_default(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        path.write_text("indexing:\n  batch_size: 7\n", encoding="utf-8")
        monkeypatch.setenv("RECALLBOT_CONFIG", str(path))
        assert ConfigLoader.load()['indexing']['batch_size'] == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load(tmp_path / "absent.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert ConfigLoader.load(path) == {}

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            ConfigLoader.load(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("search: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Malformed"):
            ConfigLoader.load(path)

    def test_save_roundtrip(self, tmp_path):
        path = tmp_path / "nested" / "out.yaml"
        ConfigLoader.save({'context': {'window_size': 4}}, path)
        assert ConfigLoader.load(path) == {'context': {'window_size': 4}}

    def test_shipped_default_is_valid(self):
        cfg = ConfigLoader.load(DEFAULT_CONFIG)
        assert SearchSettings.from_dict(cfg['search']) == SearchSettings()
        assert ContextSettings.from_dict(cfg['context']) == ContextSettings()
        assert IndexingSettings.from_dict(cfg['indexing']) == IndexingSettings()


class TestSettings:
    def test_defaults(self):
        settings = SearchSettings.from_dict(None)
        assert settings.rrf_k == 60
        assert settings.max_variants == 3
        assert settings.high_threshold == 0.5
        assert settings.low_threshold == 0.35

    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigError, match="rrf_kk"):
            SearchSettings.from_dict({'rrf_kk': 10})

    def test_negative_window_size(self):
        with pytest.raises(ConfigError, match="window_size"):
            ContextSettings.from_dict({'window_size': -1})

    def test_thresholds_order(self):
        with pytest.raises(ConfigError, match="thresholds"):
            SearchSettings.from_dict({'high_threshold': 0.3, 'low_threshold': 0.4})

    def test_wrong_value_type(self):
        with pytest.raises(ConfigError):
            IndexingSettings.from_dict({'batch_size': "many"})

    def test_rate_limit_delays(self):
        with pytest.raises(ConfigError, match="rate_limit_max_delay"):
            IndexingSettings.from_dict({'rate_limit_retry_delay': 100, 'rate_limit_max_delay': 10})

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            IndexingSettings.from_dict({'batch_size': 0})


class TestComponentRegistry:
    def test_create_component_with_config(self, tmp_path):
        registry = ComponentRegistry()
        store = registry.create_component('storage', {
            'class': 'recallbot.storage.sqlite_vector.SQLiteMessageStore',
            'config': {'database': str(tmp_path / "r.db")},
        })
        assert store.database_path == tmp_path / "r.db"
        assert registry.get_instance('storage') is store

    def test_instances_are_cached(self, tmp_path):
        registry = ComponentRegistry()
        section = {
            'class': 'recallbot.storage.sqlite_vector.SQLiteMessageStore',
            'config': {'database': str(tmp_path / "r.db")},
        }
        assert registry.create_component('storage', section) is registry.create_component('storage', section)

    def test_missing_class_entry(self):
        with pytest.raises(ConfigError, match="class"):
            ComponentRegistry().create_component('vectorizer', {'config': {}})

    def test_unloadable_class(self):
        with pytest.raises(ConfigError, match="Cannot load class"):
            ComponentRegistry().load_class('recallbot.nowhere.Missing')
