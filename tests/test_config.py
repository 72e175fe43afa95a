"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import pytest

from nodechat.config import NodeChatConfig, load_config


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg == NodeChatConfig()
        assert cfg.history_limit == 50
        assert cfg.max_dwell_seconds == 21600.0

    def test_reads_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "service_name: TestChat\n"
            "history_limit: 20\n"
            "hot_window_hours: 6\n"
            "admin_endpoints_enabled: yes\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.service_name == "TestChat"
        assert cfg.history_limit == 20
        assert cfg.hot_window_hours == 6.0
        assert cfg.admin_endpoints_enabled is True
        assert cfg.hot_limit == 5

    def test_env_var_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("hot_limit: 9\n", encoding="utf-8")
        monkeypatch.setenv("NODECHAT_CONFIG", str(path))
        assert load_config().hot_limit == 9

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == NodeChatConfig()

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("history_limit: 10\nflux_capacitor: on\n", encoding="utf-8")
        assert load_config(path).history_limit == 10

    @pytest.mark.parametrize("body", [
        "history_limit: 0\n",
        "history_limit: lots\n",
        "max_dwell_seconds: -1\n",
        "- just\n- a list\n",
    ])
    def test_invalid_values_fail_fast(self, tmp_path, body):
        path = tmp_path / "config.yaml"
        path.write_text(body, encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)
