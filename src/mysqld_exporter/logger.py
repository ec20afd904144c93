"""Logging setup for the exporter process."""

import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Callable, Dict, Optional, Union

from cysystemd import journal

LOGGER_NAME = 'mysqld_exporter'

@dataclass(frozen=True)
class LogSettings:
    """Logging options from the command line."""
    level: str = 'info'
    format: str = 'logfmt'
    file: Optional[str] = None
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 3

    @classmethod
    def from_namespace(cls, namespace: Any) -> 'LogSettings':
        return cls(
            level=namespace.log_level,
            format=namespace.log_format,
            file=namespace.log_file,
        )

class LogfmtFormatter(logging.Formatter):
    """key=value formatter."""

    def format(self, record: logging.LogRecord) -> str:
        fields = [
            ('ts', _timestamp(record)),
            ('level', record.levelname.lower()),
            ('logger', record.name),
            ('caller', f"{record.module}:{record.lineno}"),
            ('msg', record.getMessage()),
        ]
        if record.exc_info:
            fields.append(('err', self.formatException(record.exc_info)))
        return ' '.join(f"{key}={_logfmt_value(value)}" for key, value in fields)

class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'ts': _timestamp(record),
            'level': record.levelname.lower(),
            'logger': record.name,
            'caller': f"{record.module}:{record.lineno}",
            'msg': record.getMessage(),
        }
        if record.exc_info:
            payload['err'] = self.formatException(record.exc_info)
        return json.dumps(payload)

def _timestamp(record: logging.LogRecord) -> str:
    moment = datetime.fromtimestamp(record.created, tz=timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')

def _logfmt_value(value: str) -> str:
    if value and not any(c in value for c in ' ="\n\t'):
        return value
    escaped = value.replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n')
    return f'"{escaped}"'

class ProgramLogger:
    """Manages logging configuration and setup."""

    # Verbose logging config
    VERBOSE_DEBUG = True
    VERBOSE_LEVEL = 15  # DEBUG 10, INFO 20

    LEVELS = {
        'debug': logging.DEBUG,
        'verbose': VERBOSE_LEVEL,
        'info': logging.INFO,
        'warn': logging.WARNING,
        'error': logging.ERROR,
    }

    FORMATTERS = {
        'logfmt': LogfmtFormatter,
        'json': JsonFormatter,
    }

    class VerboseLogger(logging.Logger):
        """Enhanced Logger class adding verbose debugging capabilities"""

        def verbose(
            self,
            msg: Union[str, Callable[[], str]],
            *args: Any,
            **kwargs: Any
        ) -> None:
            """Log verbose debug messages with deferred evaluation."""

            if not ProgramLogger.VERBOSE_DEBUG or not self.isEnabledFor(ProgramLogger.VERBOSE_LEVEL):
                return

            # Deferred evaluation of expensive messages
            if callable(msg):
                msg = msg(*args, **kwargs) if (args or kwargs) else msg()
            elif args or kwargs:
                msg = msg.format(*args, **kwargs)
            self.log(ProgramLogger.VERBOSE_LEVEL, msg)

    def __init__(self, settings: LogSettings, name: str = LOGGER_NAME):
        """Initialize logging configuration.

        Args:
            settings: Logging options
            name: Root logger name for the exporter
        """
        # Set VerboseLogger as the default logger class
        logging.addLevelName(self.VERBOSE_LEVEL, 'VERBOSE')
        logging.setLoggerClass(self.VerboseLogger)

        self.settings = settings
        self.name = name
        self._handlers: Dict[str, logging.Handler] = {}
        self._running_under_systemd = bool(os.getenv('INVOCATION_ID'))
        self._logger = self._setup_logging()

    @property
    def logger(self) -> logging.Logger:
        """Get the configured logger instance."""
        return self._logger

    @property
    def level(self) -> str:
        """Get current log level."""
        return logging.getLevelName(self._logger.level)

    @property
    def handlers(self) -> Dict[str, logging.Handler]:
        return self._handlers

    def _get_formatter(self) -> logging.Formatter:
        formatter_class = self.FORMATTERS.get(self.settings.format)
        if formatter_class is None:
            raise ValueError(f"Unknown log format: {self.settings.format}")
        return formatter_class()

    def _setup_logging(self) -> logging.Logger:
        """Set up console, file and journal handlers.

        The journal handler is only added when running under systemd.
        """
        level = self.LEVELS.get(self.settings.level)
        if level is None:
            raise ValueError(f"Unknown log level: {self.settings.level}")

        logger = logging.getLogger(self.name)
        logger.handlers.clear()
        logger.setLevel(level)
        logger.propagate = False

        formatter = self._get_formatter()

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)
        self._handlers['console'] = console_handler

        if self.settings.file:
            file_handler = RotatingFileHandler(
                self.settings.file,
                maxBytes=self.settings.max_bytes,
                backupCount=self.settings.backup_count
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            self._handlers['file'] = file_handler

        if self._running_under_systemd:
            journal_handler = journal.JournaldLogHandler()
            journal_handler.setFormatter(formatter)
            logger.addHandler(journal_handler)
            self._handlers['journal'] = journal_handler

        return logger

    def set_level(self, level: Union[str, int]) -> None:
        if isinstance(level, str):
            level = self.LEVELS[level]
        self._logger.setLevel(level)

    def close(self) -> None:
        """Flush and close every handler."""
        for name, handler in list(self._handlers.items()):
            self._logger.removeHandler(handler)
            handler.close()
            del self._handlers[name]

def collector_logger(logger: logging.Logger, collector: str) -> logging.Logger:
    """Child logger for one collector."""
    return logger.getChild(f"collector.{collector}")
