"""
Logging configuration for reposcan.

All reposcan loggers live under the ``reposcan`` namespace and write through
one RichHandler on stderr, so ``--json`` output on stdout stays parseable.
"""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "reposcan"

VERBOSITY_LEVELS = {
    "quiet": logging.ERROR,
    "normal": logging.WARNING,
    "verbose": logging.DEBUG,
}


def level_for(verbose: bool = False, quiet: bool = False) -> int:
    """Map the CLI flags to a level; ``quiet`` wins over ``verbose``."""
    if quiet:
        return VERBOSITY_LEVELS["quiet"]
    if verbose:
        return VERBOSITY_LEVELS["verbose"]
    return VERBOSITY_LEVELS["normal"]


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure the reposcan logger with a rich stderr handler.

    Args:
        verbose: Enable DEBUG level logging (degraded sub-reads, cache hits)
        quiet: Suppress all but ERROR level logging
        log_file: Optional file path that also receives every record at DEBUG

    Returns:
        The ``reposcan`` root logger
    """
    level = level_for(verbose, quiet)

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        markup=False,
        show_time=True,
        show_path=verbose,
    )
    console_handler.setLevel(level)
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.WARNING, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True
    )

    logger = logging.getLogger(ROOT_LOGGER)
    # A log file captures debug detail even when the console is quiet
    logger.setLevel(logging.DEBUG if log_file else level)

    # Subprocess transport chatter is noise at our debug level
    logging.getLogger("asyncio").setLevel(max(level, logging.WARNING))

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger under the reposcan namespace.

    Args:
        name: Module name (e.g., 'reposcan.git.history'); names outside the
              namespace are prefixed with ``reposcan.``

    Returns:
        Logger instance
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER)

    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return logging.getLogger(name)
