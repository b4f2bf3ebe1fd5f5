# recallbot/core/logging_setup.py
"""Logging configuration rendered through rich."""

import logging
from typing import Optional, Dict, Any

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(
    level: str = "INFO",
    console: Optional[Console] = None,
    config: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Install a RichHandler on the root logger.

    Args:
        level: Default level name, overridden by config['level']
        console: Console to render on (CLI shares its own console)
        config: The 'logging' section of the YAML config
    """
    config = config or {}
    level_name = str(config.get("level", level)).upper()
    if not isinstance(logging.getLevelName(level_name), int):
        level_name = "INFO"

    handler = RichHandler(
        console=console,
        show_path=config.get("show_path", False),
        rich_tracebacks=True,
        markup=False,
    )

    logging.basicConfig(
        level=level_name,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )

    # Chatty third-party loggers
    for noisy in config.get("quiet", ["httpx", "httpcore", "sentence_transformers"]):
        logging.getLogger(noisy).setLevel(logging.WARNING)
