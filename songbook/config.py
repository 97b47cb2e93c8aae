"""
Service configuration, read once from the environment at startup.
"""

import os
from pathlib import Path
from typing import Mapping, Optional

from loguru import logger
from pydantic import BaseModel, Field

DEFAULT_PORT = 8080
DEFAULT_HOST = "localhost"
DEFAULT_WEB_ROOT = "web"
DEFAULT_DATA_ROOT = "data"
DEFAULT_SEARCH_LIMIT = 50


def _int_from_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


class Settings(BaseModel):
    """Paths, listen address and limits for one service instance."""

    host: str = Field(DEFAULT_HOST, description="Interface the HTTP server binds to")
    port: int = Field(DEFAULT_PORT, ge=0, le=65535, description="HTTP listen port")
    web_root: Path = Field(Path(DEFAULT_WEB_ROOT), description="Static asset folder")
    data_root: Path = Field(Path(DEFAULT_DATA_ROOT), description="Key files and default song folder")
    songs_root: Optional[Path] = Field(None, description="Song file store (defaults to <data_root>/songs)")
    search_limit: int = Field(DEFAULT_SEARCH_LIMIT, ge=1, description="Maximum hits returned by a search")
    log_level: str = Field("INFO", description="loguru sink level")

    @property
    def songs_path(self) -> Path:
        return self.songs_root if self.songs_root is not None else self.data_root / "songs"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from WEB_ROOT, DATA_ROOT, SONGS_ROOT, PORT, HOST/HOSTNAME,
        SEARCH_LIMIT and LOG_LEVEL. Unset variables keep their defaults."""
        env = os.environ if environ is None else environ
        songs_root = env.get("SONGS_ROOT")
        return cls(
            host=env.get("HOST") or env.get("HOSTNAME") or DEFAULT_HOST,
            port=_int_from_env(env, "PORT", DEFAULT_PORT),
            web_root=Path(env.get("WEB_ROOT") or DEFAULT_WEB_ROOT),
            data_root=Path(env.get("DATA_ROOT") or DEFAULT_DATA_ROOT),
            songs_root=Path(songs_root) if songs_root else None,
            search_limit=max(1, _int_from_env(env, "SEARCH_LIMIT", DEFAULT_SEARCH_LIMIT)),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )
