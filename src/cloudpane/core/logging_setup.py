"""Root logger configuration.

The TUI owns the terminal while it runs, so records go to a log file. Before
and after the app (startup checks, fatal errors) the CLI can also attach a
Rich console handler.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Chatty third-party loggers that drown out our own records at DEBUG
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(
    debug: bool = False,
    log_file: Optional[Path] = None,
    console: Optional[Console] = None,
) -> None:
    """Configure the root logger.

    Args:
        debug: Log DEBUG and above instead of WARNING and above.
        log_file: File to append records to. Its directory is created.
        console: If given, also log to this Rich console.
    """
    level = logging.DEBUG if debug else logging.WARNING
    handlers: list[logging.Handler] = []

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    if console is not None:
        handlers.append(RichHandler(console=console, show_path=False, rich_tracebacks=debug))

    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(f"Logging configured (debug={debug}, file={log_file})")
