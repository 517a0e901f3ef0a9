"""
Logging setup for processes embedding livetable.

Library modules only create loggers; nothing is configured on import.
Applications call setup_logging() once at startup.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import LiveTableSettings


def setup_logging(settings: LiveTableSettings | None = None) -> None:
    """Configure logging based on settings.

    Args:
        settings: Live table settings (loaded from env if not provided)
    """
    settings = settings or LiveTableSettings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
