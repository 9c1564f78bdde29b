"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.maascli/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- a single :class:`~maascli.models.GlobalConfig`
  JSON file holding the API base, OAuth settings, companion settings, and
  routing switches.
* **Precedence resolution** -- :func:`resolve_config` layers CLI flags over
  environment variables over the config file over defaults.

All file writes go through :func:`atomic_write` so a crash never leaves a
half-written config or credential file behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from maascli.exceptions import ConfigError
from maascli.models import GlobalConfig

_APP_NAME = "maascli"
_CONFIG_FILENAME = "config.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms that follow the XDG Base Directory spec."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from *env_var*, else ``$HOME/<segments>``."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/maascli/`` (default ``~/.config/maascli/``).
    On macOS/Windows: ``~/.maascli/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credentials, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/maascli/`` (default ``~/.local/share/maascli/``).
    On macOS/Windows: ``~/.maascli/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using a temp file and rename.

    The temp file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX. When *mode* is given the
    permissions are applied before any content is written.
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
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration.

    Returns:
        The deserialised :class:`~maascli.models.GlobalConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file exists but is not valid JSON or fails
            validation.
    """
    path = config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically."""
    data = config.model_dump(mode="json")
    atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(
    cli_profile: Optional[str] = None,
    cli_api_base: Optional[str] = None,
) -> tuple[GlobalConfig, str]:
    """Resolve the effective configuration and active profile name.

    Precedence (high to low):
        1. CLI flags (``cli_profile``, ``cli_api_base``)
        2. Environment variables (``MAASCLI_PROFILE``, ``MAASCLI_API_BASE``,
           ``MAASCLI_AUTH_BASE``)
        3. User config (``~/.config/maascli/config.json``)
        4. Defaults

    Returns:
        A tuple of ``(global_config, profile_name)``.
    """
    config = load_global_config()

    profile = config.default_profile
    env_profile = os.environ.get("MAASCLI_PROFILE")
    if env_profile:
        profile = env_profile
    if cli_profile:
        profile = cli_profile

    env_api_base = os.environ.get("MAASCLI_API_BASE")
    if cli_api_base:
        config.api_base = cli_api_base
    elif env_api_base:
        config.api_base = env_api_base

    env_auth_base = os.environ.get("MAASCLI_AUTH_BASE")
    if env_auth_base:
        config.oauth.auth_base = env_auth_base

    return config, profile
