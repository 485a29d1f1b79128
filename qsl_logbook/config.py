"""Runtime settings, read from QSL_* environment variables.

Map images are cached in the user's cache directory by default, and every
value can be overridden from the environment (or from CLI options).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from platformdirs import user_cache_dir
from rich.logging import RichHandler

from .logbook import DEFAULT_TOLERANCE_MINUTES
from .reloader import DEFAULT_RELOAD_INTERVAL

logger = logging.getLogger(__name__)

APP_NAME = "QSL Logbook"

ADIF_ENV_VAR = "QSL_ADIF_PATH"
RELOAD_ENV_VAR = "QSL_RELOAD_INTERVAL"
MAPS_ENV_VAR = "QSL_MAPS_DIR"
HOST_ENV_VAR = "QSL_HOST"
PORT_ENV_VAR = "QSL_PORT"
TOLERANCE_ENV_VAR = "QSL_SEARCH_TOLERANCE"
LOG_LEVEL_ENV_VAR = "QSL_LOG_LEVEL"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_LOG_LEVEL = "INFO"


@dataclass
class Settings:
    adif_path: Optional[Path] = None
    reload_interval: float = DEFAULT_RELOAD_INTERVAL
    maps_dir: Optional[Path] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    search_tolerance: int = DEFAULT_TOLERANCE_MINUTES
    log_level: str = DEFAULT_LOG_LEVEL

    def resolved_maps_dir(self) -> Path:
        """Return the map cache directory, creating it if needed."""
        p = self.maps_dir or _default_maps_dir()
        p.mkdir(parents=True, exist_ok=True)
        return p


def _default_maps_dir() -> Path:
    """Default map cache location under the platform's user cache dir."""
    return Path(user_cache_dir(appname=APP_NAME, appauthor=False)) / "maps"


def _env_number(name: str, default, cast, allow_zero=False):
    """Read a numeric env var, falling back to the default on bad values."""
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value < 0 or (value == 0 and not allow_zero):
        logger.warning("Ignoring out of range %s=%r, using %s", name, raw, default)
        return default
    return value


def load_settings() -> Settings:
    """Build Settings from the environment."""
    adif = os.getenv(ADIF_ENV_VAR)
    maps = os.getenv(MAPS_ENV_VAR)
    return Settings(
        adif_path=Path(adif).expanduser() if adif else None,
        reload_interval=_env_number(RELOAD_ENV_VAR, DEFAULT_RELOAD_INTERVAL, float),
        maps_dir=Path(maps).expanduser() if maps else None,
        host=os.getenv(HOST_ENV_VAR) or DEFAULT_HOST,
        port=_env_number(PORT_ENV_VAR, DEFAULT_PORT, int),
        search_tolerance=_env_number(
            TOLERANCE_ENV_VAR, DEFAULT_TOLERANCE_MINUTES, int, allow_zero=True
        ),
        log_level=(os.getenv(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL).upper(),
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Route log records through rich, matching the CLI's console output."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
