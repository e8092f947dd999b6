"""
Environment configuration - Load settings from .env files
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any
import json

from dotenv import load_dotenv


class EnvConfig:
    """
    Load and manage configuration from environment variables and .env files.

    Supports multiple sources with priority:
    1. Environment variables (highest priority)
    2. .env file in current/specified directory or up to 3 parents
    """

    @staticmethod
    def load_env_file(path: Optional[str] = None) -> bool:
        """
        Load environment variables from .env file.

        Args:
            path: Path to .env file (default: search current dir and parents)

        Returns:
            True if file was loaded, False otherwise
        """
        if path:
            env_path = Path(path)
        else:
            env_path = None
            current = Path.cwd()
            for _ in range(4):  # Current dir + 3 parent levels
                potential_path = current / ".env"
                if potential_path.exists():
                    env_path = potential_path
                    break
                if current.parent == current:
                    break
                current = current.parent

        if env_path and env_path.exists():
            # Existing environment variables win over the file
            load_dotenv(env_path, override=False)
            return True

        return False

    @staticmethod
    def get(key: str, default: Optional[str] = None) -> Optional[str]:
        """Get environment variable with optional default."""
        return os.getenv(key, default)

    @staticmethod
    def get_bool(key: str, default: bool = False) -> bool:
        """Get boolean environment variable."""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    @staticmethod
    def get_int(key: str, default: int = 0) -> int:
        """Get integer environment variable."""
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    @staticmethod
    def get_float(key: str, default: float = 0.0) -> float:
        """Get float environment variable."""
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    @staticmethod
    def get_json(key: str, default: Optional[Dict] = None) -> Optional[Any]:
        """Get JSON environment variable."""
        value = os.getenv(key)
        if not value:
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return default

    @staticmethod
    def missing(*keys: str) -> list:
        """Return the names of the given environment variables that are unset."""
        return [key for key in keys if not os.getenv(key)]

    @staticmethod
    def show_config_template() -> str:
        """Return a .env template covering every setting read by the orchestrator."""
        return """
# LLM Configuration
ANTHROPIC_API_KEY=sk-ant-...
ORCHESTRATOR_LLM_PROVIDER=anthropic
ORCHESTRATOR_LLM_MODEL=claude-sonnet-4-20250514
ORCHESTRATOR_LLM_TEMPERATURE=0.0
ORCHESTRATOR_TIMEOUT=30

# Scheduling guards
ORCHESTRATOR_MAX_TICKS=25
ORCHESTRATOR_MAX_NO_TASK_RETRIES=3
ORCHESTRATOR_USE_LLM_TASK_EXTRACTION=true

# Memory bounds
ORCHESTRATOR_CONTEXT_HISTORY_LIMIT=10
ORCHESTRATOR_RECENT_RESULTS_LIMIT=5
ORCHESTRATOR_DECISION_JOURNAL_LIMIT=100

# Logging
ORCHESTRATOR_LOG_LEVEL=INFO
ORCHESTRATOR_LOG_FOLDER=./logs
ORCHESTRATOR_ENABLE_CONSOLE_LOGGING=true
ORCHESTRATOR_ENABLE_FILE_LOGGING=false
"""
