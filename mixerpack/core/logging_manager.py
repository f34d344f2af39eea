from __future__ import annotations

import logging
import logging.handlers
import pathlib
import sys
from typing import Any, List, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger

from mixerpack.core.config_manager import LoggingSettings
from mixerpack.utils.exceptions import ConfigurationError


class LoggingManager:
    """Configures application logging.

    Records go through the standard library root logger so that third-party
    output and our own share handlers. ``structlog`` sits on top and renders
    key-value events either as plain text or, with the ``json`` format,
    through ``python-json-logger``.
    """

    LOG_LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def __init__(self, settings: Optional[LoggingSettings] = None) -> None:
        """Initialize the Logging Manager.

        Args:
            settings: Logging section of the configuration. Defaults apply
                when omitted.
        """
        self._settings = settings or LoggingSettings()
        self._root_logger: Optional[logging.Logger] = None
        self._handlers: List[logging.Handler] = []
        self._initialized = False

    @property
    def handlers(self) -> List[logging.Handler]:
        return list(self._handlers)

    def initialize(self, level: Optional[str] = None) -> None:
        """Set up handlers, formatters, and structlog.

        Args:
            level: Overrides the configured log level

        Raises:
            ConfigurationError: If the log file cannot be opened
        """
        level_name = (level or self._settings.level).lower()
        log_level = self.LOG_LEVELS.get(level_name, logging.WARNING)

        self._root_logger = logging.getLogger()
        self._root_logger.setLevel(log_level)
        for handler in list(self._root_logger.handlers):
            self._root_logger.removeHandler(handler)

        formatter = self._create_formatter()

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        self._add_handler(console_handler)

        if self._settings.file.enabled:
            file_path = pathlib.Path(self._settings.file.path)
            try:
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    file_path,
                    maxBytes=10 * 1024 * 1024,
                    backupCount=5,
                    encoding="utf-8",
                )
            except OSError as e:
                raise ConfigurationError(
                    f"Failed to open log file {file_path}: {e}",
                    config_key="logging.file.path",
                ) from e
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            self._add_handler(file_handler)

        self._configure_structlog()
        self._initialized = True

    def _add_handler(self, handler: logging.Handler) -> None:
        assert self._root_logger is not None
        self._root_logger.addHandler(handler)
        self._handlers.append(handler)

    def _create_formatter(self) -> logging.Formatter:
        if self._settings.format == "json":
            return jsonlogger.JsonFormatter(
                fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
                json_ensure_ascii=False,
            )
        return logging.Formatter(self.TEXT_FORMAT)

    def _configure_structlog(self) -> None:
        """Configure structlog to hand rendered events to stdlib logging."""
        processors: List[Any] = [
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]
        if self._settings.format == "json":
            # event fields become JSON keys via the record's extra dict
            processors.append(structlog.stdlib.render_to_log_kwargs)
        else:
            processors.append(structlog.processors.KeyValueRenderer(key_order=["event"], sort_keys=True))

        structlog.configure(
            processors=processors,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )

    def get_logger(self, name: str) -> Union[logging.Logger, Any]:
        """Get a logger for a specific component.

        Args:
            name: The name of the component requesting a logger.

        Returns:
            A structlog logger once initialized, a plain stdlib logger before.
        """
        if not self._initialized:
            return logging.getLogger(name)
        return structlog.get_logger(name)

    def shutdown(self) -> None:
        """Detach and close every handler added by this manager."""
        if self._root_logger is None:
            return
        for handler in self._handlers:
            self._root_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self._initialized = False
