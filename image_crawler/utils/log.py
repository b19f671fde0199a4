"""
Logging for the image crawler.

One named logger, ``image-crawler``, shared by every module.  Console
output goes through ``colorlog``; the crawl phase tags that prefix most
messages (``[PLAN]``, ``[PAGE]``, ``[SAVE]`` …) get their own colour so
a long run can be skimmed.  Under GitHub Actions, warnings and errors are
turned into workflow annotations instead.
"""

import logging
import os
from pathlib import Path

import colorlog

log = logging.getLogger("image-crawler")

_CONSOLE_DATEFMT = "%H:%M:%S"
_FILE_FMT = "%(asctime)s %(threadName)-12s [%(levelname)s] %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

_LEVEL_COLOURS = {
    "DEBUG":    "cyan",
    "INFO":     "green",
    "WARNING":  "yellow",
    "ERROR":    "red",
    "CRITICAL": "bold_red",
}

# Crawl phase tags and their ANSI styles
_RESET = "\033[0m"
_TAG_STYLES: dict[str, str] = {
    "[PLAN]":     "\033[1;34m",
    "[PAGE]":     "\033[37m",
    "[NEXT]":     "\033[90m",
    "[FALLBACK]": "\033[33m",
    "[HEADLESS]": "\033[36m",
    "[SAVE]":     "\033[1;32m",
    "[ERR]":      "\033[1;31m",
    "[DONE]":     "\033[1;35m",
}

# Libraries that log per-request noise at INFO/DEBUG
_CHATTY_LOGGERS = ("urllib3", "asyncio", "playwright")


def running_in_ci() -> bool:
    return os.environ.get("GITHUB_ACTIONS") == "true"


def highlight_tags(message: str) -> str:
    """Wrap every known phase tag in *message* with its colour."""
    for tag, style in _TAG_STYLES.items():
        if tag in message:
            message = message.replace(tag, f"{style}{tag}{_RESET}")
    return message


class _TagFormatter(colorlog.ColoredFormatter):
    def format(self, record: logging.LogRecord) -> str:
        return highlight_tags(super().format(record))


class _ActionsFormatter(logging.Formatter):
    """Prefix warnings and errors with ``::warning::`` / ``::error::``."""

    def format(self, record: logging.LogRecord) -> str:
        text = highlight_tags(super().format(record))
        if record.levelno >= logging.ERROR:
            return "::error::" + text
        if record.levelno == logging.WARNING:
            return "::warning::" + text
        return text


def _console_handler(debug: bool) -> logging.Handler:
    # Worker thread names only matter when chasing a download problem
    where = " %(threadName)s" if debug else ""
    if running_in_ci():
        handler = logging.StreamHandler()
        handler.setFormatter(_ActionsFormatter(
            f"%(asctime)s{where} [%(levelname)s] %(message)s", datefmt=_CONSOLE_DATEFMT,
        ))
        return handler
    handler = colorlog.StreamHandler()
    handler.setFormatter(_TagFormatter(
        f"%(log_color)s%(asctime)s{where} [%(levelname)s]%(reset)s %(message)s",
        datefmt=_CONSOLE_DATEFMT,
        log_colors=_LEVEL_COLOURS,
    ))
    return handler


def _file_handler(log_file: str) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(path), encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FMT, datefmt=_FILE_DATEFMT))
    return handler


def setup_logging(debug: bool = False, log_file: str | None = None) -> None:
    """Configure the ``image-crawler`` logger.

    Parameters
    ----------
    debug : bool
        Log at DEBUG instead of INFO and show worker thread names.
    log_file : str | None
        Also write every record (always at DEBUG) to this path.
    """
    log.handlers.clear()
    log.setLevel(logging.DEBUG if debug or log_file else logging.INFO)

    console = _console_handler(debug)
    console.setLevel(logging.DEBUG if debug else logging.INFO)
    log.addHandler(console)

    if not debug:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    if log_file:
        log.addHandler(_file_handler(log_file))
        log.info("Logging to file: %s", Path(log_file).resolve())
