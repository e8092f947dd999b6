"""
Logger module - Logging configuration and utilities

This module provides logging configuration with support for:
- File and console logging
- Configuration from .env (ORCHESTRATOR_LOG_* variables)
- Structured logging with context
"""

import logging
import sys
import os
from typing import Optional, Any

_comprehensive_logger_initialized = False


def _ensure_comprehensive_logger_initialized():
    """
    Initialize ComprehensiveLogger with .env configuration on first use.
    This is called automatically by get_logger().
    """
    global _comprehensive_logger_initialized

    if _comprehensive_logger_initialized:
        return

    _comprehensive_logger_initialized = True

    try:
        from .comprehensive_logger import ComprehensiveLogger
        from conversation_orchestrator.config.env_config import EnvConfig

        EnvConfig.load_env_file()

        log_folder = os.getenv("ORCHESTRATOR_LOG_FOLDER", "./logs")
        log_level = os.getenv("ORCHESTRATOR_LOG_LEVEL", "INFO")
        enable_console = os.getenv("ORCHESTRATOR_ENABLE_CONSOLE_LOGGING", "true").lower() == "true"
        enable_file = os.getenv("ORCHESTRATOR_ENABLE_FILE_LOGGING", "false").lower() == "true"
        max_bytes = int(os.getenv("ORCHESTRATOR_LOG_MAX_BYTES", "10485760"))  # 10MB default
        backup_count = int(os.getenv("ORCHESTRATOR_LOG_BACKUP_COUNT", "5"))

        ComprehensiveLogger.initialize(
            log_folder=log_folder,
            log_level=log_level,
            enable_console=enable_console,
            enable_file=enable_file,
            max_bytes=max_bytes,
            backup_count=backup_count
        )

    except Exception as e:
        # Fallback to basic logging if ComprehensiveLogger initialization fails
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        logging.getLogger(__name__).warning(
            f"Failed to initialize ComprehensiveLogger: {e}. Using basic logging."
        )


def get_logger(name: str, level: Optional[str] = None) -> Any:
    """
    Get or create a logger with standard formatting and .env configuration.

    Args:
        name: Logger name (typically __name__)
        level: Optional logging level override (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance (TaskLogger or basic Logger)
    """
    _ensure_comprehensive_logger_initialized()

    try:
        from .comprehensive_logger import ComprehensiveLogger as CL
        return CL.get_logger(name)
    except Exception:
        logger = logging.getLogger(name)

        if not logger.handlers:
            level = (level or os.getenv("ORCHESTRATOR_LOG_LEVEL", "INFO")).upper()
            logger.setLevel(getattr(logging, level))

            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(getattr(logging, level))

            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            handler.setFormatter(formatter)

            logger.addHandler(handler)

        return logger
