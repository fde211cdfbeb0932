from __future__ import annotations

import json
import logging
import typing as tp
from dataclasses import dataclass, fields, replace
from pathlib import Path

from ._client import REQUEST_OPTIONS, SEND_OPTIONS
from ._controller import Refresh, parse_refresh
from ._exceptions import ConfigError

logger = logging.getLogger("fetchcache.config")

__all__ = ("CacheConfig", "load_config", "CONFIG_FILE", "PASS_THROUGH_OPTIONS")

CONFIG_FILE = "config.json"

# Options forwarded to the network request rather than the cache
PASS_THROUGH_OPTIONS = ("headers", "signal") + REQUEST_OPTIONS + SEND_OPTIONS

ALIASES = {
    "cacheFolder": "cache_folder",
    "resetCache": "reset_cache",
    "logToConsole": "log_to_console",
    "avoidNetworkRequests": "avoid_network_requests",
    "forceRefresh": "force_refresh",
}

# Older spellings of a refresh strategy
LEGACY_REFRESH = {
    "avoid_network_requests": "never",
    "force_refresh": "force",
}


@dataclass(frozen=True)
class CacheConfig:
    """
    Settings of a cache context.

    Attributes:
        cache_folder: Folder holding the cached responses.
        reset_cache: Empty the cache folder on its first use in this process.
        refresh: One of "force", "default", "once", "never" or a number of seconds.
        log_to_console: Report the progress of each request on the console.
    """

    cache_folder: str = ".cache"
    reset_cache: bool = False
    refresh: Refresh = "default"
    log_to_console: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "refresh", parse_refresh(self.refresh))
        object.__setattr__(self, "cache_folder", str(self.cache_folder))

    def merge(self, **options: tp.Any) -> CacheConfig:
        """
        Returns a copy where the given options override the current values.

        Accepts both the snake_case names and the camelCase ones used in
        configuration files, plus the legacy `avoid_network_requests` and
        `force_refresh` flags. An explicit `refresh` wins over the flags.

        :raises ConfigError: If an option is unknown or has an invalid value
        """
        return replace(self, **normalize_options(options))


def normalize_options(options: tp.Mapping[str, tp.Any], strict: bool = True) -> tp.Dict[str, tp.Any]:
    known = {field.name for field in fields(CacheConfig)}
    normalized: tp.Dict[str, tp.Any] = {}
    legacy_refresh: tp.Optional[str] = None

    for name, value in options.items():
        name = ALIASES.get(name, name)
        if name in LEGACY_REFRESH:
            if value:
                legacy_refresh = LEGACY_REFRESH[name]
        elif name in known:
            normalized[name] = value
        elif strict:
            raise ConfigError(f"Unknown cache option: {name!r}.")
        else:
            logger.warning(f"Ignoring the unknown cache option {name!r}.")

    if legacy_refresh is not None and "refresh" not in normalized:
        normalized["refresh"] = legacy_refresh

    if "refresh" in normalized:
        normalized["refresh"] = parse_refresh(normalized["refresh"])
    return normalized


def load_config(path: tp.Union[str, Path] = CONFIG_FILE) -> CacheConfig:
    """
    Reads the default settings from a JSON configuration file.

    A missing file yields the built-in defaults.

    :raises ConfigError: If the file cannot be read or does not hold a JSON object
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return CacheConfig()
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Could not read the configuration file {path}.") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"The configuration file {path} should contain a JSON object.")

    logger.debug(f"Loaded the cache configuration from {path}.")
    return CacheConfig(**normalize_options(data, strict=False))
