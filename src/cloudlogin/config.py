"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for cloudlogin:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cloudlogin/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Global config** -- A single :class:`~cloudlogin.models.GlobalConfig`
  JSON file storing the identity-provider and output defaults.
* **Project config** -- ``./cloudlogin.json`` may pin a tenant or client id
  for a repository, and ``./.cloudlogin/`` holds the persisted
  subscription selection (see :func:`get_project_config_dir`).
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so that a crash never leaves half-written caches.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from cloudlogin.exceptions import ConfigError
from cloudlogin.models import GlobalConfig

_APP_NAME = "cloudlogin"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "cloudlogin.json"
_PROJECT_DIR_NAME = ".cloudlogin"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cloudlogin/`` (default ``~/.config/cloudlogin/``).
    On macOS/Windows: ``~/.cloudlogin/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the durable token cache. Deleting it signs every account out.

    On Linux/BSD: ``$XDG_CACHE_HOME/cloudlogin/`` (default ``~/.cache/cloudlogin/``).
    On macOS/Windows: ``~/.cloudlogin/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (account cache, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/cloudlogin/`` (default ``~/.local/share/cloudlogin/``).
    On macOS/Windows: ``~/.cloudlogin/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_project_config_dir(root: Optional[Path] = None) -> Path:
    """Return the project-scoped config directory ``<root>/.cloudlogin``.

    The directory is not created here; writers create it on first save.

    Args:
        root: Project root. Defaults to the current working directory.
    """
    return (root or Path.cwd()) / _PROJECT_DIR_NAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is cleaned up.

    Args:
        path: Destination file.
        data: Text to write (UTF-8).
        mode: Optional permission bits applied to the temp file before any
            content is written (e.g. ``0o600`` for secrets).
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~cloudlogin.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local overrides from ``./cloudlogin.json``.

    Recognised keys mirror :class:`~cloudlogin.models.LoginConfig` fields
    (typically ``tenant`` and ``client_id``).

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


# --- Precedence resolution ---

_ENV_OVERRIDES = {
    "CLOUDLOGIN_CLIENT_ID": "client_id",
    "CLOUDLOGIN_TENANT": "tenant",
    "CLOUDLOGIN_PORT": "port",
}


def resolve_config(
    cli_tenant: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_tenant``, ``cli_format``)
        2. Environment variables (``CLOUDLOGIN_CLIENT_ID``,
           ``CLOUDLOGIN_TENANT``, ``CLOUDLOGIN_PORT``)
        3. Project config (``./cloudlogin.json``)
        4. User config (``~/.config/cloudlogin/config.json``)
        5. Defaults

    Returns:
        The effective :class:`~cloudlogin.models.GlobalConfig`.

    Raises:
        ConfigError: If any layer contains invalid values.
    """
    # 5 + 4. Defaults filled in by the model
    global_cfg = load_global_config()
    overrides: dict[str, Any] = {}

    # 3. Project-local config
    project = load_project_config()
    if project is not None:
        overrides.update(project)

    # 2. Environment variables
    for var, field in _ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            overrides[field] = value

    # 1. CLI flags
    if cli_tenant is not None:
        overrides["tenant"] = cli_tenant

    if overrides:
        merged = global_cfg.login.model_dump() | overrides
        try:
            global_cfg.login = global_cfg.login.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid login configuration: {exc}") from exc

    if cli_format is not None:
        global_cfg.output.format = cli_format

    return global_cfg
