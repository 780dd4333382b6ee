"""Tests for cloudlogin.config — XDG paths, atomic writes, precedence."""

from __future__ import annotations

import json
import stat
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from cloudlogin.config import (
    atomic_write,
    get_cache_dir,
    get_config_dir,
    get_data_dir,
    get_project_config_dir,
    load_global_config,
    load_project_config,
    resolve_config,
    save_global_config,
)
from cloudlogin.exceptions import ConfigError
from cloudlogin.models import GlobalConfig, LoginConfig


def _write_json(path: Path, data: Any) -> None:
    """Write a dict as JSON to *path*, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPaths:
    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_config"
        monkeypatch.setattr("cloudlogin.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(custom))

        result = get_config_dir()
        assert result == custom / "cloudlogin"
        assert result.is_dir()

    def test_cache_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cloudlogin.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_cache_dir()
        assert result == tmp_path / ".cache" / "cloudlogin"
        assert result.is_dir()

    def test_data_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cloudlogin.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_DATA_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_data_dir()
        assert result == tmp_path / ".local" / "share" / "cloudlogin"
        assert result.is_dir()

    def test_fallback_dirs(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cloudlogin.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".cloudlogin"
        assert get_cache_dir() == tmp_path / ".cloudlogin" / "cache"
        assert get_data_dir() == tmp_path / ".cloudlogin" / "data"

    def test_project_config_dir_is_not_created(self, tmp_path: Path) -> None:
        result = get_project_config_dir(tmp_path)
        assert result == tmp_path / ".cloudlogin"
        assert not result.exists()


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "test.txt"
        atomic_write(target, "deep write")
        assert target.read_text(encoding="utf-8") == "deep write"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        target.write_text("old content", encoding="utf-8")
        atomic_write(target, "new content")
        assert target.read_text(encoding="utf-8") == "new content"
        assert list(tmp_path.iterdir()) == [target]

    def test_applies_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}", mode=0o600)
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        with patch("cloudlogin.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                atomic_write(target, "will fail")
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_defaults_when_missing(self, isolated_config: Path) -> None:
        config = load_global_config()
        assert config.login.tenant == "organizations"
        assert config.login.port == 0
        assert config.login.login_timeout == 300.0

    def test_round_trip(self, isolated_config: Path) -> None:
        config = GlobalConfig(login=LoginConfig(tenant="contoso.onmicrosoft.com", port=8400))
        save_global_config(config)
        loaded = load_global_config()
        assert loaded.login.tenant == "contoso.onmicrosoft.com"
        assert loaded.login.port == 8400

    def test_invalid_json_raises(self, isolated_config: Path) -> None:
        (get_config_dir() / "config.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_invalid_value_raises(self, isolated_config: Path) -> None:
        _write_json(get_config_dir() / "config.json", {"login": {"port": 70000}})
        with pytest.raises(ConfigError):
            load_global_config()


# ---------------------------------------------------------------------------
# Precedence
# ---------------------------------------------------------------------------


class TestResolveConfig:
    def test_project_config_missing(self, isolated_config: Path) -> None:
        assert load_project_config() is None

    def test_project_config_must_be_object(self, isolated_config: Path) -> None:
        (isolated_config / "cloudlogin.json").write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ConfigError, match="expected a JSON object"):
            load_project_config()

    def test_project_overrides_global(self, isolated_config: Path) -> None:
        save_global_config(GlobalConfig(login=LoginConfig(tenant="global-tenant")))
        _write_json(isolated_config / "cloudlogin.json", {"tenant": "project-tenant"})

        assert resolve_config().login.tenant == "project-tenant"

    def test_env_overrides_project(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_json(isolated_config / "cloudlogin.json", {"tenant": "project-tenant"})
        monkeypatch.setenv("CLOUDLOGIN_TENANT", "env-tenant")
        monkeypatch.setenv("CLOUDLOGIN_PORT", "8400")
        monkeypatch.setenv("CLOUDLOGIN_CLIENT_ID", "env-client")

        login = resolve_config().login
        assert login.tenant == "env-tenant"
        assert login.port == 8400
        assert login.client_id == "env-client"

    def test_cli_overrides_env(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLOUDLOGIN_TENANT", "env-tenant")
        config = resolve_config(cli_tenant="cli-tenant", cli_format="json")
        assert config.login.tenant == "cli-tenant"
        assert config.output.format == "json"

    def test_invalid_override_raises(
        self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CLOUDLOGIN_PORT", "not-a-port")
        with pytest.raises(ConfigError, match="Invalid login configuration"):
            resolve_config()
