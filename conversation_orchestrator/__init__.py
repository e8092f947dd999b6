"""
Conversation Orchestrator - LangGraph-based orchestration core for a conversational agent

Turns each user message into a small dependency graph of read/write tasks,
resolves the parameters every task needs from the request, earlier results
and the caller's identity, and drives the tasks one at a time through read
and write pipelines until the turn finishes.

Features:
- Task graph with cycle detection, dependency-ordered selection and id continuation
- Supervisor with admission control, a tick limit and a deadlock circuit breaker
- Context resolution with per-parameter strategies, confidence and gap analysis
- Tiered identity resolution
- Decision journal for every routing decision
- Checkpointed conversations (LangGraph MemorySaver)

Installation:
pip install langgraph langchain-anthropic langchain-core python-dotenv pydantic

Configuration:
    Create a .env file with your LLM provider configuration:

    ANTHROPIC_API_KEY=sk-ant-...
    ORCHESTRATOR_LLM_PROVIDER=anthropic
    ORCHESTRATOR_LLM_MODEL=claude-sonnet-4-20250514

Example:
    >>> from conversation_orchestrator import ConversationOrchestrator, OrchestratorConfig, EnvConfig
    >>>
    >>> EnvConfig.load_env_file()
    >>> config = OrchestratorConfig.from_env(prefix="ORCHESTRATOR_")
    >>>
    >>> orchestrator = ConversationOrchestrator(config=config, executor=run_operation)
    >>> state = orchestrator.run_turn("list my contracts", thread_id="chat-1")
    >>> summary = orchestrator.get_results_summary(state)
"""

__version__ = "1.0.0"
__all__ = [
    'ConversationOrchestrator',
    'OrchestratorConfig',
    'LLMConfig',
    'EnvConfig',
    'TaskStore',
    'ContextResolutionEngine',
    'Supervisor',
    'TaskStatus',
    'Task',
    'TaskState',
    'OrchestratorState',
]

from conversation_orchestrator.core import (
    ConversationOrchestrator,
    TaskStore,
    ContextResolutionEngine,
    Supervisor,
)
from conversation_orchestrator.config import OrchestratorConfig, LLMConfig, EnvConfig
from conversation_orchestrator.models import TaskStatus, Task, TaskState, OrchestratorState
