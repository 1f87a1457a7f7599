"""
Logging setup for the CLI.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed once, here, at CLI entry.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="[%X]", handlers=[handler], force=True)
