"""Runtime settings: defaults, optional YAML file, environment overrides.

The data directory holds both the mirror database and ``config.yaml``::

    page_size: 100
    request_timeout: 30
    page_retries: 1
    max_pages: 0        # 0 = drain every page
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml

from mcp_mirror.errors import SettingsError

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "MCP_MIRROR_HOME"
CONFIG_FILE_NAME = "config.yaml"
DB_FILE_NAME = "mcp-mirror.db"

# Environment variables that override individual settings.
_ENV_OVERRIDES: dict[str, str] = {
    "MCP_MIRROR_PAGE_SIZE": "page_size",
    "MCP_MIRROR_TIMEOUT": "request_timeout",
}


def default_data_dir() -> Path:
    """Return the per-user data directory (``~/.mcp-mirror`` unless overridden)."""
    override = os.environ.get(DATA_DIR_ENV, "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".mcp-mirror"


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved configuration for one process."""

    data_dir: Path
    page_size: int = 100
    request_timeout: float = 30.0
    connect_timeout: float = 10.0
    page_retries: int = 1
    retry_delay: float = 2.0
    max_pages: int = 0
    api_host: str = "127.0.0.1"
    api_port: int = 8080

    @property
    def db_path(self) -> Path:
        return self.data_dir / DB_FILE_NAME

    @property
    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILE_NAME


def load_settings(data_dir: Path | str | None = None) -> Settings:
    """Resolve settings from defaults, ``config.yaml`` and the environment.

    Args:
        data_dir: Explicit data directory. Falls back to ``MCP_MIRROR_HOME``
            and then ``~/.mcp-mirror``.

    Raises:
        SettingsError: If the config file is not a YAML mapping or a value
            has the wrong type.
    """
    base = Path(data_dir).expanduser() if data_dir else default_data_dir()
    settings = Settings(data_dir=base)

    file_values = _read_config_file(settings.config_path)
    settings = _apply(settings, file_values, source=str(settings.config_path))

    env_values = {
        attr: os.environ[env]
        for env, attr in _ENV_OVERRIDES.items()
        if os.environ.get(env, "")
    }
    return _apply(settings, env_values, source="environment")


def _read_config_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise SettingsError(f"Failed to read settings file '{path}': {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(f"Invalid settings file '{path}': expected a YAML mapping.")
    return data


def _coerce(expected: type, raw: object) -> object:
    """Convert ``raw`` to ``expected`` without lossy or boolean conversions.

    Strings (environment values) are parsed; YAML scalars must already
    have a compatible type. Raises TypeError or ValueError otherwise.
    """
    if isinstance(raw, bool):
        raise TypeError("booleans are not accepted")
    if expected is str:
        if not isinstance(raw, str):
            raise TypeError(f"got {type(raw).__name__}")
        return raw
    if isinstance(raw, str):
        return expected(raw.strip())
    if expected is int:
        if isinstance(raw, float) and raw.is_integer():
            return int(raw)
        if not isinstance(raw, int):
            raise TypeError(f"got {type(raw).__name__}")
        return raw
    if not isinstance(raw, int | float):
        raise TypeError(f"got {type(raw).__name__}")
    return float(raw)


def _apply(settings: Settings, values: dict[str, object], *, source: str) -> Settings:
    """Return ``settings`` with every known key in ``values`` coerced and applied."""
    known = {f.name for f in fields(Settings) if f.name != "data_dir"}
    changes: dict[str, object] = {}
    for key, raw in values.items():
        if key not in known:
            logger.debug("Ignoring unknown setting '%s' from %s", key, source)
            continue
        expected = type(getattr(settings, key))
        try:
            value = _coerce(expected, raw)
        except (TypeError, ValueError) as exc:
            raise SettingsError(
                f"Invalid value for '{key}' in {source}: {raw!r} "
                f"(expected {expected.__name__})"
            ) from exc
        if isinstance(value, int | float) and value < 0:
            raise SettingsError(f"Invalid value for '{key}' in {source}: must not be negative")
        if key == "page_size" and value == 0:
            raise SettingsError(f"Invalid value for 'page_size' in {source}: must be at least 1")
        changes[key] = value
    return replace(settings, **changes) if changes else settings
