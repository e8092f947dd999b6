"""
Models module - Data structures and enums for the conversation orchestrator
"""

from .enums import (
    TaskStatus,
    TaskKind,
    PipelineTarget,
    VerificationStatus,
    TaskPhase,
    AgentType,
    Route,
    TurnPhase,
    ContextSource,
    TERMINAL_STATUSES,
    ACTIVE_STATUSES,
)
from .task import Task, TaskState, TaskContext, OperationDetails, Source, Citation, DataRequirement
from .context import (
    GatheredContext,
    TypeContext,
    ExtractedPatterns,
    DateRange,
    ResolutionStrategy,
    WorkflowSuggestion,
    ContextAnalysis,
)
from .state import OrchestratorState, AgentDecision

__all__ = [
    'TaskStatus',
    'TaskKind',
    'PipelineTarget',
    'VerificationStatus',
    'TaskPhase',
    'AgentType',
    'Route',
    'TurnPhase',
    'ContextSource',
    'TERMINAL_STATUSES',
    'ACTIVE_STATUSES',
    'Task',
    'TaskState',
    'TaskContext',
    'OperationDetails',
    'Source',
    'Citation',
    'DataRequirement',
    'GatheredContext',
    'TypeContext',
    'ExtractedPatterns',
    'DateRange',
    'ResolutionStrategy',
    'WorkflowSuggestion',
    'ContextAnalysis',
    'OrchestratorState',
    'AgentDecision',
]
