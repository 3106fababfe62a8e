"""
Logging configuration for Param Miner with rich formatting.

Everything logs below the ``param_miner`` logger: engine modules through
``logging.getLogger(__name__)``, core helpers through component loggers and
each scan through a logger named after its target host.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install

install(show_locals=False)

ROOT_LOGGER = "param_miner"

# Per-request chatter from the HTTP stack, only shown at DEBUG
HTTP_LOGGERS = ("httpx", "httpcore")

DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
PLAIN_FORMAT = '%(levelname)s - %(name)s - %(message)s'


class ParamMinerLogger:
    """Owns the handlers of the ``param_miner`` logger hierarchy."""

    def __init__(self, name: str = ROOT_LOGGER):
        self.logger = logging.getLogger(name)
        # stdout carries the result tables, logs go to stderr
        self._console = Console(stderr=True)
        self._configured = False

    @property
    def configured(self) -> bool:
        return self._configured

    def configure(
            self,
            level: str = "INFO",
            log_file: Optional[Path] = None,
            rich_console: bool = True,
            show_time: bool = True,
            show_path: bool = False
    ):
        """
        Replace the handlers of the package logger.

        Args:
            level: Logging level name
            log_file: Also write detailed records to this file
            rich_console: Use a RichHandler instead of a plain stream handler
            show_time: Show timestamps in console output
            show_path: Show the emitting file in console output
        """
        numeric_level = getattr(logging, level.upper())

        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        self.logger.setLevel(numeric_level)
        self.logger.propagate = False

        if rich_console:
            console_handler = RichHandler(
                console=self._console,
                show_time=show_time,
                show_path=show_path,
                rich_tracebacks=True,
                markup=False
            )
            console_handler.setFormatter(logging.Formatter('%(message)s'))
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
        self.logger.addHandler(console_handler)

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
            self.logger.addHandler(file_handler)

        http_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
        for name in HTTP_LOGGERS:
            logging.getLogger(name).setLevel(http_level)

        self._configured = True

    def get_logger(self) -> logging.Logger:
        """Get the package logger, configuring defaults on first use."""
        if not self._configured:
            self.configure()
        return self.logger


# Global logger instance
_global_logger = ParamMinerLogger()


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Optional logger name. If None, returns the package logger.

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(name)
    return _global_logger.get_logger()


def configure_logging(
        level: str = "INFO",
        log_file: Optional[Path] = None,
        rich_console: bool = True,
        show_time: bool = True,
        show_path: bool = False
):
    """
    Configure the package logger.

    Calling it again replaces the handlers, so the CLI can reconfigure
    after loading a config file.
    """
    _global_logger.configure(
        level=level,
        log_file=log_file,
        rich_console=rich_console,
        show_time=show_time,
        show_path=show_path
    )


def get_component_logger(component: str) -> logging.Logger:
    """Logger for a core component, e.g. ``http_client`` or ``worker_pool``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{component}")


def get_scan_logger(target_url: str) -> logging.Logger:
    """
    Logger for the scan of one target.

    Args:
        target_url: URL being scanned; its host names the logger

    Returns:
        ``param_miner.scan.<host>`` with dots in the host replaced by underscores
    """
    host = urlsplit(target_url).netloc or "unknown"
    return logging.getLogger(f"{ROOT_LOGGER}.scan").getChild(host.replace(".", "_"))
