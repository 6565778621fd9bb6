"""Runtime settings loaded from the environment (and an optional .env file)."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .constants import DEFAULT_CACHE_MAX_AGE_HOURS, DEFAULT_HOME, DEFAULT_TEST_SAMPLE_SIZE

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(value: str) -> str:
    """Replace every character that is unsafe in a file name with '_'."""
    return _UNSAFE_FILENAME_RE.sub("_", value)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer, using %d", name, raw, default)
        return default
    if value < 0:
        logger.warning("Ignoring %s=%r: negative, using %d", name, raw, default)
        return default
    return value


def _env_path(name: str, default: Path) -> Path:
    return Path(os.getenv(name, default)).expanduser().resolve()


@dataclass(slots=True)
class Settings:
    home_dir: Path
    cache_dir: Path
    log_dir: Path
    download_dir: Path
    credentials_path: Path
    token_dir: Path
    log_level: str = "INFO"
    cache_max_age_hours: int = DEFAULT_CACHE_MAX_AGE_HOURS
    viewport_size: int = 0
    test_sample_size: int = DEFAULT_TEST_SAMPLE_SIZE

    @classmethod
    def load(cls) -> Settings:
        load_dotenv(override=False)

        home_dir = _env_path("GDC_HOME", DEFAULT_HOME)
        log_level = os.getenv("GDC_LOG_LEVEL", "INFO").upper()
        if logging.getLevelName(log_level) == f"Level {log_level}":
            logger.warning("Unknown GDC_LOG_LEVEL %r, using INFO", log_level)
            log_level = "INFO"

        return cls(
            home_dir=home_dir,
            cache_dir=_env_path("GDC_CACHE_DIR", home_dir / "cache"),
            log_dir=_env_path("GDC_LOG_DIR", home_dir / "logs"),
            download_dir=_env_path("GDC_DOWNLOAD_DIR", home_dir / "downloads"),
            credentials_path=_env_path("GDC_CREDENTIALS_PATH", home_dir / "credentials.json"),
            token_dir=_env_path("GDC_TOKEN_DIR", home_dir / "tokens"),
            log_level=log_level,
            cache_max_age_hours=_env_int("GDC_CACHE_MAX_AGE_HOURS", DEFAULT_CACHE_MAX_AGE_HOURS),
            viewport_size=_env_int("GDC_VIEWPORT_SIZE", 0),
            test_sample_size=_env_int("GDC_TEST_SAMPLE_SIZE", DEFAULT_TEST_SAMPLE_SIZE) or DEFAULT_TEST_SAMPLE_SIZE,
        )

    def cache_path(self, mailbox: str) -> Path:
        """Path of the persisted index for one mailbox identity."""
        return self.cache_dir / f"{safe_filename(mailbox)}.json"

    def token_path(self, mailbox: str) -> Path:
        return self.token_dir / f"{safe_filename(mailbox)}.json"
