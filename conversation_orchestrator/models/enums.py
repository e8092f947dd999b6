"""
Enums module - Task status, routing targets and other enumeration types
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Lifecycle of a single task"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.FAILED.value)
ACTIVE_STATUSES = (TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value)


class TaskKind(str, Enum):
    """Whether a task reads or writes data on the external API"""
    READ = "read"
    WRITE = "write"


class PipelineTarget(str, Enum):
    """Downstream pipeline a task declares it belongs to"""
    READ_PIPELINE = "read_pipeline"
    WRITE_PIPELINE = "write_pipeline"


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    NEEDS_VERIFICATION = "needs_verification"


class TaskPhase(str, Enum):
    """Processing phase recorded in a task's context"""
    INITIALIZATION = "initialization"
    DATA_GATHERING = "data_gathering"
    EXECUTION = "execution"
    COMPLETION = "completion"


class AgentType(str, Enum):
    """Component a journal entry is attributed to"""
    SUPERVISOR = "supervisor_agent"
    READ_AGENT = "read_agent"
    WRITE_AGENT = "write_agent"


class Route(str, Enum):
    """Graph nodes the supervisor can route to"""
    SUPERVISOR = "supervisor"
    INITIAL_PLAN = "initial_plan"
    READ_PIPELINE = "read_pipeline"
    WRITE_PIPELINE = "write_pipeline"
    END = "end"


class TurnPhase(str, Enum):
    """Turn-level state machine driven by the supervisor"""
    AWAIT_INPUT = "await_input"
    ADMITTING = "admitting"
    SELECTING = "selecting"
    ROUTED = "routed"
    TERMINATED = "terminated"


class ContextSource(str, Enum):
    """Where a resolved parameter value came from"""
    STATIC_REQUEST = "static_request"
    USER_CONTEXT = "user_context"
    DYNAMIC_CONTEXT = "dynamic_context"
