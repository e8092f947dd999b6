"""
Core module - Task graph, context resolution, supervisor and workflow
"""

from .task_store import TaskStore
from .task_extraction import TaskExtractor, basic_extract_tasks, parse_task_list
from .identity import (
    IdentityProvider,
    IdentityResolver,
    PlaceholderIdentityProvider,
    UserServiceIdentityProvider,
    AuthPayloadIdentityProvider,
)
from .context_resolution import ContextResolutionEngine, ContextLookup
from .supervisor import Supervisor
from .pipeline import PipelineRunner, OperationGenerator
from .workflow import WorkflowBuilder
from .orchestrator import ConversationOrchestrator

__all__ = [
    'TaskStore',
    'TaskExtractor',
    'basic_extract_tasks',
    'parse_task_list',
    'IdentityProvider',
    'IdentityResolver',
    'PlaceholderIdentityProvider',
    'UserServiceIdentityProvider',
    'AuthPayloadIdentityProvider',
    'ContextResolutionEngine',
    'ContextLookup',
    'Supervisor',
    'PipelineRunner',
    'OperationGenerator',
    'WorkflowBuilder',
    'ConversationOrchestrator',
]
