"""
Startup configuration.

Settings come from an optional TOML file (``[archiver]`` table) and are
overridden by environment variables:

    DATA_PATH     data directory holding ``messages/`` and ``channels/``
    TOKEN         API token (falls back to the system keychain)
    SYNC_GUILDS   comma-separated guild-id whitelist
    INTERVAL      polling interval in milliseconds; unset means one-shot
    API_BASE_URL  API root, default ``https://discordapp.com/api/v6``
    AUDIT_LOG     optional JSON Lines audit file
    LOG_LEVEL     logging level name, default ``INFO``

Every validation failure raises ``ConfigError`` before any work begins.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import toml

from archiver.api_client import DEFAULT_BASE_URL
from archiver.sync import PAGE_LIMIT
from shared.errors import ConfigError
from shared.secrets import get_secret

logger = logging.getLogger("archiver.config")

_DEFAULT_CONFIG_PATH = Path("/etc/dm-archiver/settings.toml")


@dataclass(frozen=True)
class Settings:
    data_path: Path
    token: str
    guild_whitelist: Tuple[str, ...] = ()
    interval_ms: Optional[int] = None
    base_url: str = DEFAULT_BASE_URL
    audit_log_path: Optional[Path] = None
    page_limit: int = PAGE_LIMIT
    log_level: str = "INFO"

    @property
    def messages_path(self) -> Path:
        return self.data_path / "messages"

    @property
    def channels_path(self) -> Path:
        return self.data_path / "channels"

    @property
    def interval_seconds(self) -> Optional[float]:
        if self.interval_ms is None:
            return None
        return self.interval_ms / 1000.0


def parse_guild_whitelist(value: Any) -> Tuple[str, ...]:
    """Normalize a comma-separated string (or list) of guild ids.

    Blank items are dropped and duplicates collapsed, keeping first-seen
    order.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        raw_items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        raw_items = [str(item) for item in value]
    else:
        raise ConfigError(f"Invalid SYNC_GUILDS: {value!r}")

    seen: Dict[str, None] = {}
    for item in raw_items:
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return tuple(seen)


def parse_interval(value: Any) -> Optional[int]:
    """Parse the polling interval in milliseconds (``None`` = one-shot)."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        interval = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"Invalid INTERVAL: {value}") from None
    if interval <= 0:
        raise ConfigError(f"Invalid INTERVAL: {value}")
    return interval


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        config = toml.load(path)
    except (OSError, toml.TomlDecodeError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    section = config.get("archiver", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[archiver] in {path} must be a table")
    return section


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[Path] = None,
) -> Settings:
    """Build and validate :class:`Settings`.

    Args:
        environ: Environment mapping (defaults to ``os.environ``).
        config_path: TOML file; defaults to ``$DM_ARCHIVER_CONFIG`` or
            ``/etc/dm-archiver/settings.toml``.  A missing file is skipped.

    Raises:
        ConfigError: On missing or invalid settings.
    """
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = Path(env.get("DM_ARCHIVER_CONFIG") or _DEFAULT_CONFIG_PATH)
    file_cfg = _load_file(config_path)

    def pick(env_key: str, file_key: str) -> Any:
        value = env.get(env_key)
        if value is not None and value != "":
            return value
        return file_cfg.get(file_key)

    data_path = pick("DATA_PATH", "data_path")
    if not data_path:
        raise ConfigError("DATA_PATH environment variable not set")

    token = pick("TOKEN", "token")
    if not token:
        try:
            token = get_secret("token")
        except RuntimeError:
            raise ConfigError("TOKEN environment variable not set") from None

    data_dir = Path(str(data_path)).expanduser()
    for sub in ("messages", "channels"):
        if not (data_dir / sub).is_dir():
            raise ConfigError(f"Missing data directory: {data_dir / sub}")

    audit_path = pick("AUDIT_LOG", "audit_log_path")

    page_limit = file_cfg.get("page_limit", PAGE_LIMIT)
    try:
        page_limit = int(page_limit)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid page_limit: {page_limit!r}") from None
    if page_limit <= 0:
        raise ConfigError(f"Invalid page_limit: {page_limit!r}")

    settings = Settings(
        data_path=data_dir,
        token=str(token),
        guild_whitelist=parse_guild_whitelist(pick("SYNC_GUILDS", "sync_guilds")),
        interval_ms=parse_interval(pick("INTERVAL", "interval_ms")),
        base_url=str(pick("API_BASE_URL", "base_url") or DEFAULT_BASE_URL),
        audit_log_path=Path(str(audit_path)) if audit_path else None,
        page_limit=page_limit,
        log_level=str(pick("LOG_LEVEL", "log_level") or "INFO").upper(),
    )
    logger.debug("Loaded settings from %s and environment", config_path)
    return settings
