"""Logging setup - rich console handler plus a dated log file."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from rich.logging import RichHandler

from .display import console


def configure_logging(log_dir: Path, level: str = "INFO") -> Path | None:
    """Send warnings to the console and everything at `level` to a dated log file.

    Returns the log file path, or None when the log directory is not writable
    (console logging is still installed in that case).
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    console_handler = RichHandler(console=console, show_path=False, rich_tracebacks=False)
    console_handler.setLevel(logging.WARNING)
    root.addHandler(console_handler)

    # googleapiclient logs every discovery fetch at INFO
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"gmail-domain-cleaner-{datetime.now().strftime('%Y-%m-%d')}.log"
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as exc:
        root.warning("File logging disabled: %s", exc)
        return None

    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(file_handler)
    return log_path
