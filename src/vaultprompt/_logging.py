"""Logging setup for the vp command line.

Library modules only create loggers (``log = logging.getLogger(__name__)``);
handlers are attached here, once, by the CLI entry point.

What goes where:
    debug   - unresolved links, unreadable notes, missing headings or blocks,
              request parameters
    info    - which prompt and model a generation uses
    warning - empty notes, missing prompt files, unknown filters
    error   - prompt files that fail to parse, generation failures

Set VAULTPROMPT_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR) to change the level.
INFO is the default.
"""

import logging
import os
import sys


def configure_logging(debug: bool = False) -> None:
    """Configure logging for the vaultprompt package.

    Call this once at application startup (e.g., in cli.py).
    Subsequent calls only adjust the level.

    Args:
        debug: Force DEBUG level regardless of the environment.
    """
    root_logger = logging.getLogger("vaultprompt")

    level_name = os.environ.get("VAULTPROMPT_LOG_LEVEL", "INFO").upper()
    level = logging.DEBUG if debug else getattr(logging, level_name, logging.INFO)

    if root_logger.handlers:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt="[%(levelname)s] %(name)s: %(message)s"))

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Prevent propagation to root logger (avoids duplicate messages)
    root_logger.propagate = False
