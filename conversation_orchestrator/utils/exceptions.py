"""
Standardized Exception Hierarchy for the Conversation Orchestrator

This module provides the exception hierarchy used across the task store,
supervisor, context resolution engine and pipelines.

Exception Categories:
- Configuration Errors: Issues with settings, environment, or initialization
- Validation Errors: Input and schema validation failures
- Task Graph Errors: Unknown tasks, cycles, deadlocks
- Execution Errors: Pipeline, identity lookup and LLM failures

Usage:
    from conversation_orchestrator.utils.exceptions import (
        OrchestratorError,
        TaskNotFoundError,
        PipelineExecutionError
    )

    if task_id not in index:
        raise TaskNotFoundError(task_id)

    try:
        result = executor(operation, variables, task)
    except Exception as e:
        raise PipelineExecutionError(
            "execute_operation",
            "Operation execution failed",
            task_id=task_id,
            original_error=e
        )

Node boundaries catch these and turn them into task failures or user-facing
messages; none of them escape a supervisor tick.
"""

from typing import Optional, Any, Dict, List


# ============================================================================
# Base Exception
# ============================================================================

class OrchestratorError(Exception):
    """
    Base exception for all orchestrator errors.

    All custom exceptions inherit from this class to enable
    centralized error handling and logging.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for categorization
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# ============================================================================
# Configuration and Initialization Errors
# ============================================================================

class MissingDependencyError(OrchestratorError):
    """Raised when a required dependency is not installed."""

    def __init__(
        self,
        package_name: str,
        install_command: Optional[str] = None,
        purpose: Optional[str] = None
    ):
        message = f"Required package '{package_name}' is not installed"
        if purpose:
            message += f" (needed for {purpose})"
        if install_command:
            message += f"\nInstall with: {install_command}"

        super().__init__(
            message=message,
            error_code="MISSING_DEPENDENCY",
            details={
                "package_name": package_name,
                "install_command": install_command,
                "purpose": purpose
            }
        )
        self.package_name = package_name


# ============================================================================
# Validation Errors
# ============================================================================

class ValidationError(OrchestratorError):
    """Base class for validation errors."""
    pass


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is invalid."""

    def __init__(
        self,
        parameter_name: str,
        message: str,
        expected_type: Optional[str] = None,
        actual_value: Optional[Any] = None
    ):
        details = {"parameter_name": parameter_name}
        if expected_type:
            details["expected_type"] = expected_type
        if actual_value is not None:
            details["actual_value"] = str(actual_value)

        super().__init__(
            message=f"Invalid parameter '{parameter_name}': {message}",
            error_code="INVALID_PARAM",
            details=details
        )
        self.parameter_name = parameter_name


class MissingParameterError(ValidationError):
    """Raised when required operation parameters could not be resolved."""

    def __init__(
        self,
        parameter_names: List[str],
        context: Optional[str] = None
    ):
        message = f"Missing required parameters: {', '.join(parameter_names)}"
        if context:
            message += f" in {context}"

        super().__init__(
            message=message,
            error_code="MISSING_PARAM",
            details={"parameter_names": parameter_names, "context": context}
        )
        self.parameter_names = parameter_names


class SchemaValidationError(ValidationError):
    """Raised when data doesn't match expected schema."""

    def __init__(
        self,
        schema_name: str,
        validation_errors: list,
        data_sample: Optional[Any] = None
    ):
        message = f"Schema validation failed for '{schema_name}'"
        if validation_errors:
            message += f"\nErrors: {'; '.join(str(e) for e in validation_errors)}"

        super().__init__(
            message=message,
            error_code="SCHEMA_VALIDATION",
            details={
                "schema_name": schema_name,
                "validation_errors": [str(e) for e in validation_errors],
                "data_sample": str(data_sample)[:200] if data_sample is not None else None
            }
        )
        self.schema_name = schema_name
        self.validation_errors = validation_errors


# ============================================================================
# Task Graph Errors
# ============================================================================

class TaskGraphError(OrchestratorError):
    """Base class for task graph errors."""
    pass


class TaskNotFoundError(TaskGraphError):
    """Raised when an operation targets a task id that is not in the state."""

    def __init__(self, task_id: str):
        super().__init__(
            message=f"Task '{task_id}' not found in task state",
            error_code="TASK_NOT_FOUND",
            details={"task_id": task_id}
        )
        self.task_id = task_id


class CyclicDependencyError(TaskGraphError):
    """A dependency cycle; its message is the error recorded on each cyclic task."""

    def __init__(self, cycle: List[str]):
        super().__init__(
            message=f"Task failed due to cyclic dependency: {format_cycle(cycle)}",
            error_code="CYCLIC_DEPENDENCY",
            details={"cycle": list(cycle)}
        )
        self.cycle = list(cycle)


# ============================================================================
# Execution Errors
# ============================================================================

class ExecutionError(OrchestratorError):
    """Base class for execution-time errors."""
    pass


class PipelineExecutionError(ExecutionError):
    """Raised when a read or write pipeline fails to process a task."""

    def __init__(
        self,
        operation: str,
        message: str,
        pipeline: Optional[str] = None,
        task_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        full_message = f"Pipeline execution failed for operation '{operation}': {message}"
        if pipeline:
            full_message = f"[{pipeline}] {full_message}"
        if original_error:
            full_message += f"\nCaused by: {str(original_error)}"

        super().__init__(
            message=full_message,
            error_code="PIPELINE_EXEC_ERROR",
            details={
                "operation": operation,
                "pipeline": pipeline,
                "task_id": task_id,
                "original_error": str(original_error) if original_error else None
            }
        )
        self.operation = operation
        self.pipeline = pipeline
        self.task_id = task_id
        self.original_error = original_error


class IdentityResolutionError(ExecutionError):
    """Raised by an identity provider tier that cannot supply user context."""

    def __init__(
        self,
        provider: str,
        message: str,
        original_error: Optional[Exception] = None
    ):
        full_message = f"Identity provider '{provider}' failed: {message}"
        if original_error:
            full_message += f"\nCaused by: {str(original_error)}"

        super().__init__(
            message=full_message,
            error_code="IDENTITY_ERROR",
            details={
                "provider": provider,
                "original_error": str(original_error) if original_error else None
            }
        )
        self.provider = provider
        self.original_error = original_error


class LLMError(ExecutionError):
    """Raised when LLM operations fail."""

    def __init__(
        self,
        provider: str,
        message: str,
        model: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        full_message = f"LLM error with provider '{provider}': {message}"
        if model:
            full_message += f" (model: {model})"
        if original_error:
            full_message += f"\nCaused by: {str(original_error)}"

        super().__init__(
            message=full_message,
            error_code="LLM_ERROR",
            details={
                "provider": provider,
                "model": model,
                "original_error": str(original_error) if original_error else None
            }
        )
        self.provider = provider
        self.model = model
        self.original_error = original_error


class QuotaExceededError(LLMError):
    """Raised when a provider rejects a call because the quota is exhausted (HTTP 429)."""

    def __init__(
        self,
        provider: str,
        model: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            provider=provider,
            message="Quota exceeded",
            model=model,
            original_error=original_error
        )
        self.error_code = "QUOTA_EXCEEDED"


# ============================================================================
# Convenience Functions
# ============================================================================

def format_cycle(cycle: List[str]) -> str:
    """Render a cycle path as 'a → b → a'."""
    if not cycle:
        return ""
    return " → ".join(list(cycle) + [cycle[0]])


def is_quota_error(error: BaseException) -> bool:
    """True when the error (or its cause) is a provider quota rejection."""
    if isinstance(error, QuotaExceededError):
        return True
    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status == 429:
        return True
    text = str(error)
    return "429" in text or "quota" in text.lower()


__all__ = [
    # Base
    "OrchestratorError",

    # Configuration
    "MissingDependencyError",

    # Validation
    "ValidationError",
    "InvalidParameterError",
    "MissingParameterError",
    "SchemaValidationError",

    # Task graph
    "TaskGraphError",
    "TaskNotFoundError",
    "CyclicDependencyError",

    # Execution
    "ExecutionError",
    "PipelineExecutionError",
    "IdentityResolutionError",
    "LLMError",
    "QuotaExceededError",

    # Utilities
    "format_cycle",
    "is_quota_error",
]
