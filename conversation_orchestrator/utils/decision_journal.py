"""
Decision journal - audit trail of routing decisions.

Entries live in conversation memory under ``agent_decisions`` so they are
checkpointed with the rest of the conversation. The journal is read only
for debugging; control flow never consults it.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from conversation_orchestrator.models import AgentDecision
from conversation_orchestrator.utils.memory import clone_memory
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

JOURNAL_KEY = "agent_decisions"


class DecisionJournal:
    """
    Records routing decisions into memory, keeping the last ``max_history``.

    Usage:
        journal = DecisionJournal(max_history=100)
        memory = journal.record(memory, "supervisor_agent", "route_to_read_pipeline",
                                "Processing task_0", remaining_tasks=["list employees"])
    """

    def __init__(self, max_history: int = 100):
        self.max_history = max_history

    def record(
        self,
        memory: Dict[str, Any],
        agent: str,
        action: str,
        reason: str,
        remaining_tasks: Optional[List[str]] = None,
        current_task_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Append a decision and return the updated memory copy.

        Args:
            memory: Conversation memory
            agent: Component making the decision
            action: What was decided (e.g. the route taken)
            reason: Why
            remaining_tasks: Descriptions of tasks still pending
            current_task_id: Task the decision concerns, if any
        """
        entry: AgentDecision = {
            "agent": agent,
            "action": action,
            "reason": reason,
            "remaining_tasks": list(remaining_tasks or []),
            "current_task_id": current_task_id,
            "timestamp": datetime.now().isoformat(),
        }

        new_memory = clone_memory(memory)
        decisions = list(new_memory.get(JOURNAL_KEY) or [])
        decisions.append(entry)
        if len(decisions) > self.max_history:
            decisions = decisions[-self.max_history:]
        new_memory[JOURNAL_KEY] = decisions

        logger.debug(
            f"[ROUTING] {agent} + task:{current_task_id or '-'} → {action} | {reason}"
        )
        return new_memory

    @staticmethod
    def entries(memory: Optional[Dict[str, Any]]) -> List[AgentDecision]:
        return list((memory or {}).get(JOURNAL_KEY) or [])

    @staticmethod
    def get_report(memory: Optional[Dict[str, Any]], last: int = 50) -> str:
        """Generate a report of routing decisions."""
        report = ["=" * 80, "ROUTING DECISION REPORT", "=" * 80]

        for decision in DecisionJournal.entries(memory)[-last:]:
            report.append(
                f"{decision['timestamp']} | {decision['agent']:18} + "
                f"{(decision.get('current_task_id') or '-'):10} → {decision['action']:25} | "
                f"{decision['reason']}"
            )

        return "\n".join(report)
