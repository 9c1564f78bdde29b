"""Tests for configuration paths, atomic writes, and precedence resolution."""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from maascli.config import (
    atomic_write,
    config_path,
    get_config_dir,
    get_data_dir,
    load_global_config,
    resolve_config,
    save_global_config,
)
from maascli.exceptions import ConfigError
from maascli.models import GlobalConfig


class TestXDGPathsLinux:
    @pytest.fixture(autouse=True)
    def _linux(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("maascli.config._is_xdg_platform", lambda: True)

    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        assert get_config_dir() == tmp_path / ".config" / "maascli"
        assert get_config_dir().is_dir()

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
        assert get_config_dir() == tmp_path / "cfg" / "maascli"

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        assert get_data_dir() == tmp_path / ".local" / "share" / "maascli"


class TestXDGPathsFallback:
    def test_fallback_dirs(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("maascli.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", lambda: tmp_path)
        assert get_config_dir() == tmp_path / ".maascli"
        assert get_data_dir() == tmp_path / ".maascli" / "data"


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "nested" / "file.json"
        atomic_write(target, '{"a": 1}')
        assert target.read_text() == '{"a": 1}'

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_text("old")
        atomic_write(target, "new")
        assert target.read_text() == "new"

    def test_mode_applied(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}", mode=0o600)
        assert (os.stat(target).st_mode & 0o777) == 0o600

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        with patch("maascli.config.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write(target, "data")
        assert list(tmp_path.iterdir()) == []


class TestGlobalConfig:
    def test_defaults_when_missing(self, isolated_config: Path) -> None:
        config = load_global_config()
        assert config == GlobalConfig()
        assert config.api_base == "https://api.lanonasis.com"
        assert config.companion.min_version == "1.5.2"
        assert config.companion.executables == ["onasis", "lanonasis"]
        assert config.routing.prefer_companion is True
        assert config.oauth.callback_port == 8899

    def test_save_and_load_roundtrip(self, isolated_config: Path) -> None:
        config = GlobalConfig(api_base="https://api.example.com", max_retries=0)
        config.routing.fallback_to_api = False
        save_global_config(config)
        loaded = load_global_config()
        assert loaded.api_base == "https://api.example.com"
        assert loaded.max_retries == 0
        assert loaded.routing.fallback_to_api is False

    def test_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        config_path().write_text("{broken")
        with pytest.raises(ConfigError, match="Invalid config"):
            load_global_config()

    def test_invalid_schema_raises_config_error(self, isolated_config: Path) -> None:
        config_path().write_text(json.dumps({"request_timeout": -1}))
        with pytest.raises(ConfigError):
            load_global_config()

    def test_oauth_urls(self) -> None:
        config = GlobalConfig()
        config.oauth.auth_base = "https://auth.example.com/"
        assert config.oauth.authorize_url == "https://auth.example.com/oauth/authorize"
        assert config.oauth.token_url == "https://auth.example.com/oauth/token"
        assert config.oauth.redirect_uri(9000) == "http://localhost:9000/callback"
        assert config.oauth.redirect_uri() == "http://localhost:8899/callback"


class TestResolveConfig:
    def test_defaults(self, isolated_config: Path) -> None:
        config, profile = resolve_config()
        assert profile == "default"
        assert config.api_base == "https://api.lanonasis.com"

    def test_config_file_default_profile(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(default_profile="team"))
        assert resolve_config()[1] == "team"

    def test_env_overrides_file(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_global_config(GlobalConfig(default_profile="team", api_base="https://file.example.com"))
        monkeypatch.setenv("MAASCLI_PROFILE", "ci")
        monkeypatch.setenv("MAASCLI_API_BASE", "https://env.example.com")
        monkeypatch.setenv("MAASCLI_AUTH_BASE", "https://auth.env.example.com")
        config, profile = resolve_config()
        assert profile == "ci"
        assert config.api_base == "https://env.example.com"
        assert config.oauth.auth_base == "https://auth.env.example.com"

    def test_cli_overrides_env(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAASCLI_PROFILE", "ci")
        monkeypatch.setenv("MAASCLI_API_BASE", "https://env.example.com")
        config, profile = resolve_config(cli_profile="mine", cli_api_base="https://cli.example.com")
        assert profile == "mine"
        assert config.api_base == "https://cli.example.com"
