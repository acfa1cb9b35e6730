"""Tests for settings loading."""

import json
import os

from tofuworkspace.config import DEFAULT_SETTINGS, Settings


def _settings(tmp_path, data=None, environ=None):
    path = tmp_path / "settings.json"
    if data is not None:
        path.write_text(json.dumps(data))
    return Settings(str(path), environ=environ or {})


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = _settings(tmp_path)
        assert settings.tf_dir == "/tofu"
        assert settings.get("timeout_seconds") == 1200
        assert settings.get("max_reconcile_rate") == 1

    def test_defaults_not_shared(self, tmp_path):
        settings = _settings(tmp_path)
        settings.set("tf_dir", "/elsewhere")
        assert DEFAULT_SETTINGS["tf_dir"] == "/tofu"

    def test_file_merge(self, tmp_path):
        settings = _settings(tmp_path, {"tf_dir": "/data/tofu", "extra": {"a": 1}})
        assert settings.tf_dir == "/data/tofu"
        assert settings.get("extra.a") == 1
        assert settings.get("poll_interval_seconds") == 600

    def test_invalid_file_uses_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        settings = Settings(str(path), environ={})
        assert settings.tf_dir == "/tofu"

    def test_environment_overrides_file(self, tmp_path):
        settings = _settings(
            tmp_path,
            {"tf_dir": "/data/tofu"},
            environ={"XP_TF_DIR": "/env/tofu", "TOFU_TIMEOUT": "30", "TOFU_DEBUG": "true"},
        )
        assert settings.tf_dir == "/env/tofu"
        assert settings.get("timeout_seconds") == 30
        assert settings.get("debug") is True

    def test_invalid_environment_value_ignored(self, tmp_path):
        settings = _settings(tmp_path, environ={"TOFU_MAX_RECONCILE_RATE": "lots"})
        assert settings.get("max_reconcile_rate") == 1

    def test_empty_environment_value_ignored(self, tmp_path):
        settings = _settings(tmp_path, environ={"XP_TF_DIR": ""})
        assert settings.tf_dir == "/tofu"

    def test_dotted_get_set(self, tmp_path):
        settings = _settings(tmp_path)
        settings.set("harness.extra.flag", True)
        assert settings.get("harness.extra.flag") is True
        assert settings.get("harness.missing", "fallback") == "fallback"

    def test_tmp_dir(self, tmp_path):
        settings = _settings(tmp_path)
        assert settings.tmp_dir == os.path.join("/tmp", "tofu")

    def test_plugin_cache_dir(self, tmp_path):
        settings = _settings(tmp_path)
        assert settings.plugin_cache_dir == os.path.join("/tofu", "plugin-cache")
        settings.set("plugin_cache_dir", "/cache")
        assert settings.plugin_cache_dir == "/cache"
