"""Logging configuration with console + rotating file output.

Call setup_logging() early in application start.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys

_DEF_FORMAT = "%(asctime)s [%(levelname)8s] %(name)s:%(lineno)d - %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)8s] %(name)s:%(lineno)d - %(message)s"
_SIMPLE_FORMAT = "%(levelname)s: %(message)s"

ROOT_LOGGER_NAME = 'metalpulse'

LOG_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}


class MetalPulseLogger:
    """Owns the handlers of the application's root logger."""

    def __init__(self, name: str = ROOT_LOGGER_NAME, log_file: str | None = None):
        self.logger = logging.getLogger(name)
        self.log_file = log_file
        self._configured = False

    def configure(
        self,
        level: int = logging.INFO,
        console_level: int | None = None,
        file_level: int | None = None,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
    ) -> None:
        if self._configured:
            return

        self.logger.setLevel(level)

        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(console_level or level)
        console_handler.setFormatter(logging.Formatter(_SIMPLE_FORMAT))
        self.logger.addHandler(console_handler)

        if self.log_file:
            try:
                file_handler = logging.handlers.RotatingFileHandler(
                    self.log_file, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
                )
                file_handler.setLevel(file_level or level)
                file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
                self.logger.addHandler(file_handler)
            except OSError as e:
                # console only, with the detailed format
                console_handler.setFormatter(logging.Formatter(_DEF_FORMAT))
                self.logger.warning(f"Could not setup file logging: {e}")

        self._configured = True


_logger_instance: MetalPulseLogger | None = None


def setup_logging(
    level: str = 'INFO',
    log_file: str | None = None,
    console_level: str | None = None,
    file_level: str | None = None,
) -> logging.Logger:
    """Setup logging for the application.

    Args:
        level: Default log level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
        log_file: Path to a rotating log file (console only when omitted)
        console_level: Console log level (defaults to same as level)
        file_level: File log level (defaults to same as level)

    Returns:
        Configured root application logger
    """
    global _logger_instance

    if _logger_instance is None:
        _logger_instance = MetalPulseLogger(ROOT_LOGGER_NAME, log_file)

    def get_level(lvl: str | None) -> int | None:
        return LOG_LEVELS.get(lvl.upper()) if lvl else None

    _logger_instance.configure(
        level=get_level(level) or logging.INFO,
        console_level=get_level(console_level),
        file_level=get_level(file_level),
    )
    logger = _logger_instance.logger
    logger.debug("Logging system initialized")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger of the application logger; handlers come from setup_logging()."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
