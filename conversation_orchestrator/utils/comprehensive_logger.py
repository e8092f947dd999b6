"""
Comprehensive Logging System with File and Console Output

Features:
- Configurable log folder (via .env)
- Console and file logging
- Log rotation
- Structured extras appended as JSON
- Performance and exception helpers
- Unicode-safe console output on Windows
"""

import logging
import logging.handlers
import sys
import os
import codecs
from pathlib import Path
from typing import Optional, Dict, Any
import json
import traceback

# Fix Unicode support on Windows BEFORE any logging is configured
if sys.platform == 'win32':
    try:
        if hasattr(sys.stdout, 'encoding') and sys.stdout.encoding and sys.stdout.encoding.lower() != 'utf-8':
            sys.stdout = codecs.getwriter('utf-8')(sys.stdout.buffer, 'backslashreplace')
            sys.stderr = codecs.getwriter('utf-8')(sys.stderr.buffer, 'backslashreplace')
    except (AttributeError, TypeError):
        pass


class SafeStreamHandler(logging.StreamHandler):
    """
    StreamHandler that tolerates consoles without UTF-8 support.
    Cycle paths and status markers contain non-ASCII characters.
    """
    def emit(self, record):
        try:
            msg = self.format(record)
            stream = self.stream
            try:
                stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                encoding = getattr(stream, 'encoding', None) or 'utf-8'
                safe_msg = msg.encode(encoding, errors='replace').decode(encoding)
                stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


class ComprehensiveLogger:
    """
    Centralized logging system with file and console support.

    Usage:
        logger = ComprehensiveLogger.get_logger("my_module")
        logger.info("Message", extra={"task_id": "task_0"})
    """

    _loggers: Dict[str, "TaskLogger"] = {}
    _log_folder: Optional[str] = None
    _config: Dict[str, Any] = {}

    @classmethod
    def initialize(
        cls,
        log_folder: Optional[str] = None,
        log_level: str = "INFO",
        enable_console: bool = True,
        enable_file: bool = True,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5
    ) -> None:
        """
        Initialize the logging system.

        Args:
            log_folder: Folder for log files (default: ./logs)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            enable_console: Enable console logging
            enable_file: Enable file logging
            max_bytes: Max file size before rotation (default: 10MB)
            backup_count: Number of backup files to keep
        """
        cls._log_folder = log_folder or "./logs"
        cls._config = {
            "log_level": log_level.upper(),
            "enable_console": enable_console,
            "enable_file": enable_file,
            "max_bytes": max_bytes,
            "backup_count": backup_count,
        }

        if enable_file:
            Path(cls._log_folder).mkdir(parents=True, exist_ok=True)

        # Loggers created before initialize() pick up the new handlers
        for name in list(cls._loggers):
            cls._loggers[name] = TaskLogger(name, cls._log_folder, cls._config)

    @classmethod
    def get_logger(cls, name: str) -> "TaskLogger":
        """
        Get or create a logger instance.

        Args:
            name: Logger name (typically __name__)

        Returns:
            TaskLogger instance
        """
        if name not in cls._loggers:
            cls._loggers[name] = TaskLogger(name, cls._log_folder, cls._config)

        return cls._loggers[name]

    @classmethod
    def flush(cls):
        """Flush all loggers."""
        for logger in cls._loggers.values():
            logger.flush()


class TaskLogger:
    """
    Individual logger instance with file and console handlers.
    """

    def __init__(
        self,
        name: str,
        log_folder: Optional[str],
        config: Dict[str, Any]
    ):
        self.name = name
        self.log_folder = log_folder or "./logs"
        self.config = config
        self.logger = logging.getLogger(name)
        self.logger.setLevel(config.get("log_level", "INFO"))

        self.logger.handlers.clear()

        if config.get("enable_console"):
            self._add_console_handler()

        if config.get("enable_file"):
            self._add_file_handler()

    def _add_console_handler(self) -> None:
        handler = SafeStreamHandler(sys.stdout)
        handler.setLevel(self.config.get("log_level", "INFO"))

        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        self.logger.addHandler(handler)

    def _add_file_handler(self) -> None:
        """Add rotating file handler with UTF-8 encoding."""
        Path(self.log_folder).mkdir(parents=True, exist_ok=True)

        log_file = os.path.join(self.log_folder, f"{self.name}.log")

        try:
            handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=self.config.get("max_bytes", 10 * 1024 * 1024),
                backupCount=self.config.get("backup_count", 5),
                encoding='utf-8'
            )
            handler.setLevel(self.config.get("log_level", "INFO"))

            formatter = logging.Formatter(
                '%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)
        except OSError as e:
            self.logger.error(f"Failed to add file handler: {e}")

    def debug(self, message: str, extra: Optional[Dict] = None):
        self._log("DEBUG", message, extra)

    def info(self, message: str, extra: Optional[Dict] = None):
        self._log("INFO", message, extra)

    def warning(self, message: str, extra: Optional[Dict] = None):
        self._log("WARNING", message, extra)

    def error(self, message: str, extra: Optional[Dict] = None):
        self._log("ERROR", message, extra)

    def critical(self, message: str, extra: Optional[Dict] = None):
        self._log("CRITICAL", message, extra)

    def isEnabledFor(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def _log(self, level: str, message: str, extra: Optional[Dict] = None) -> None:
        """
        Internal logging method.

        Args:
            level: Log level
            message: Log message
            extra: Extra context dict, appended as JSON
        """
        log_func = getattr(self.logger, level.lower())

        if extra:
            message = f"{message} | {json.dumps(extra, default=str)}"

        log_func(message)

    def log_exception(self, message: str, exc: Optional[BaseException] = None) -> None:
        """
        Log exception with full traceback.

        Args:
            message: Error message
            exc: Exception object (uses current exception if None)
        """
        if exc:
            tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
        else:
            tb = traceback.format_exc().split('\n')

        self.logger.error(f"{message}\n{''.join(tb)}")

    def flush(self) -> None:
        for handler in self.logger.handlers:
            handler.flush()
