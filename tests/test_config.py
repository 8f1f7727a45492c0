"""
Tests for loading and saving the config file.
"""

import json

import pytest

from merkle_vfs.config import DB_ENV_VAR, Config, load_config, save_config
from merkle_vfs.errors import ConfigError


@pytest.fixture(autouse=True)
def no_env_db(monkeypatch):
    monkeypatch.delenv(DB_ENV_VAR, raising=False)


class TestLoadConfig:

    def test_defaults(self):
        config = load_config()
        assert config == Config()
        assert config.db_path == "./gitfs-db"
        assert config.default_ref == "refs/work/HEAD"

    def test_missing_file(self, tmp_path):
        assert load_config(str(tmp_path / "missing.json")) == Config()

    def test_partial_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"db_path": "/data/db", "grep_max_results": 10}))
        config = load_config(str(path))
        assert config.db_path == "/data/db"
        assert config.grep_max_results == 10
        assert config.work_prefix == "refs/work/"

    def test_env_overrides_db(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"db_path": "/data/db"}))
        monkeypatch.setenv(DB_ENV_VAR, "/from/env")
        assert load_config(str(path)).db_path == "/from/env"

    def test_work_prefix_gets_trailing_slash(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"work_prefix": "refs/scratch"}))
        assert load_config(str(path)).work_prefix == "refs/scratch/"

    @pytest.mark.parametrize("content", ["{not json", ""])
    def test_malformed_file(self, tmp_path, content):
        path = tmp_path / "config.json"
        path.write_text(content)
        with pytest.raises(ConfigError):
            load_config(str(path))


class TestSaveConfig:

    def test_save_then_load(self, tmp_path):
        path = str(tmp_path / "config.json")
        config = Config(db_path="/somewhere", grep_max_results=7)
        save_config(config, path)
        assert load_config(path) == config
