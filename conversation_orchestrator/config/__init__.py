"""
Configuration module - Settings and configuration management
"""

from .orchestrator_config import OrchestratorConfig, LLMConfig, LLMProvider
from .env_config import EnvConfig

__all__ = [
    'OrchestratorConfig',
    'LLMConfig',
    'LLMProvider',
    'EnvConfig',
]
