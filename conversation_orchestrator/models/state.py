"""
State module - LangGraph state carried between supervisor and pipeline nodes
"""

from typing import TypedDict, Optional, List, Dict, Any

from langchain_core.messages import BaseMessage


class AgentDecision(TypedDict, total=False):
    """One routing decision recorded in the decision journal"""
    agent: str
    action: str
    reason: str
    remaining_tasks: List[str]
    current_task_id: Optional[str]
    timestamp: str


class OrchestratorState(TypedDict, total=False):
    """
    Conversation state for one thread.

    memory is the conversation-scoped key/value store. Nodes never mutate it
    in place; they return a copy with their changes (see utils.memory).
    The task graph lives under memory["task_state"].
    """
    messages: List[BaseMessage]
    memory: Dict[str, Any]
    tick_count: int
    auth_user: Optional[Dict[str, Any]]
    next_route: str
    active_task_id: Optional[str]
    turn_phase: str
