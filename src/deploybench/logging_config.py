"""Logging utilities with Rich integration."""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False, logger_name: Optional[str] = None) -> logging.Logger:
    """Configure process-wide logging with a Rich handler and return a scoped logger."""

    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(console=Console(stderr=True), show_time=True, show_path=False)
    logging.basicConfig(level=level, handlers=[handler], format="%(message)s", force=True)
    # httpx logs every request at INFO; the poll loop would drown the summary.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger = logging.getLogger(logger_name or "deploybench")
    logger.debug("Logging configured with level %s", logging.getLevelName(level))
    return logger


__all__ = ["configure_logging"]
