"""
Logging configuration for areaeffect.

Library modules only ever call `logging.getLogger("areaeffect")`; handlers are
attached here, once, by whoever owns the process (the CLI, a notebook, a
batch job). That keeps the library silent unless the caller opts in.
"""

from __future__ import annotations

# Python's built-in logging covers everything we need (stream + file).
import logging
# `Path` is used to ensure log paths are created safely and portably.
from pathlib import Path

LOGGER_NAME = "areaeffect"


def configure_logging(log_dir: Path | None, level: str = "INFO") -> logging.Logger:
    # Use a named logger so we control formatting/handlers without touching the root logger.
    logger = logging.getLogger(LOGGER_NAME)
    # Normalize log level strings like "info" -> "INFO" to match logging's expectations.
    logger.setLevel(level.upper())
    # Logs go to our handlers only; ancestors would print them a second time.
    logger.propagate = False

    # Add handlers only once so repeated bootstrap calls do not duplicate lines.
    if not logger.handlers:
        fmt = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        # StreamHandler prints to stderr so progress shows in the terminal.
        stream = logging.StreamHandler()
        stream.setFormatter(fmt)
        stream.setLevel(level.upper())
        logger.addHandler(stream)

        # A file handler is optional: batch runs keep a log, ad-hoc CLI calls may not.
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_dir / "areaeffect.log", encoding="utf-8")
            file_handler.setFormatter(fmt)
            file_handler.setLevel(level.upper())
            logger.addHandler(file_handler)

    return logger
