"""
Utilities module - Helper functions and utilities
"""

from .logger import get_logger
from .comprehensive_logger import ComprehensiveLogger, TaskLogger
from .prompt_builder import PromptBuilder
from .memory import clone_memory, without_keys
from .decision_journal import DecisionJournal
from .state_validator import StateValidator
from .placeholders import (
    substitute_placeholders,
    find_unresolved_placeholders,
    build_missing_parameters_message,
    format_literal,
)

# Exception hierarchy
from .exceptions import (
    # Base
    OrchestratorError,
    # Configuration
    MissingDependencyError,
    # Validation
    ValidationError,
    InvalidParameterError,
    MissingParameterError,
    SchemaValidationError,
    # Task graph
    TaskGraphError,
    TaskNotFoundError,
    CyclicDependencyError,
    # Execution
    ExecutionError,
    PipelineExecutionError,
    IdentityResolutionError,
    LLMError,
    QuotaExceededError,
    # Utilities
    format_cycle,
    is_quota_error,
)

__all__ = [
    'get_logger',
    'ComprehensiveLogger',
    'TaskLogger',
    'PromptBuilder',
    'clone_memory',
    'without_keys',
    'DecisionJournal',
    'StateValidator',
    'substitute_placeholders',
    'find_unresolved_placeholders',
    'build_missing_parameters_message',
    'format_literal',
    'OrchestratorError',
    'MissingDependencyError',
    'ValidationError',
    'InvalidParameterError',
    'MissingParameterError',
    'SchemaValidationError',
    'TaskGraphError',
    'TaskNotFoundError',
    'CyclicDependencyError',
    'ExecutionError',
    'PipelineExecutionError',
    'IdentityResolutionError',
    'LLMError',
    'QuotaExceededError',
    'format_cycle',
    'is_quota_error',
]
