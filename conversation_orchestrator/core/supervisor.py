"""
Supervisor module - the per-tick step function of a conversation turn.

Each call is one tick:

    1. Message intake      - dedupe assistant turns, find the latest utterance
    2. Tick limit          - stop the turn after ``max_ticks`` ticks
    3. Admission control   - extract tasks for a new utterance
    4. Completion check    - stop when every task is terminal
    5. Selection/routing   - route the next runnable task to its pipeline,
                             or fail stuck tasks after ``max_no_task_retries``
    6. Decision journal    - every routing decision is recorded

The supervisor never raises; unexpected errors end the turn with a message.
"""

from typing import Any, Dict, List, Optional, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from conversation_orchestrator.config import OrchestratorConfig
from conversation_orchestrator.core.task_extraction import TaskExtractor
from conversation_orchestrator.core.task_store import TaskStore
from conversation_orchestrator.models import (
    AgentType,
    OrchestratorState,
    Route,
    Task,
    TaskKind,
    TaskStatus,
    TurnPhase,
)
from conversation_orchestrator.utils.decision_journal import DecisionJournal
from conversation_orchestrator.utils.exceptions import is_quota_error
from conversation_orchestrator.utils.memory import clone_memory, without_keys
from conversation_orchestrator.utils.state_validator import StateValidator
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

TICK_LIMIT_MESSAGE = (
    "I apologize, but I've reached the maximum number of processing steps. "
    "Please try rephrasing your request or breaking it down into smaller parts."
)
NO_TASKS_MESSAGE = (
    "I understand you're asking, but I'm not sure what specific information you need. "
    "Could you please provide more details about what you'd like to know?"
)
DEADLOCK_MESSAGE = (
    "I encountered a dependency deadlock and had to stop processing. "
    "Some tasks could not be completed due to unresolved dependencies."
)
TIMEOUT_MESSAGE = (
    "Some tasks took too long to complete and were terminated to prevent infinite loops."
)
QUOTA_MESSAGE = "We are out of quota. Please try again later."
GENERIC_ERROR_MESSAGE = "Something went wrong while processing your request. Please try again."

DEADLOCK_TASK_ERROR = "Task failed due to dependency deadlock or infinite loop prevention"
TIMEOUT_TASK_ERROR = "Task failed due to timeout or infinite loop prevention"

# Ticks beyond this count with the same utterance are treated as an internal loop
INTERNAL_LOOP_TICKS = 3

PIPELINE_ROUTES = {
    TaskKind.READ.value: Route.READ_PIPELINE.value,
    TaskKind.WRITE.value: Route.WRITE_PIPELINE.value,
}


def message_text(message: BaseMessage) -> str:
    """Plain text of a message; list content is joined from its text parts."""
    content = message.content
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return str(content or "")


def clean_messages(messages: List[BaseMessage]) -> List[BaseMessage]:
    """Drop empty messages and collapse consecutive identical non-human messages."""
    cleaned: List[BaseMessage] = []
    for message in messages or []:
        text = message_text(message)
        if not text.strip():
            continue
        if (
            cleaned
            and not isinstance(message, HumanMessage)
            and type(cleaned[-1]) is type(message)
            and message_text(cleaned[-1]) == text
        ):
            continue
        cleaned.append(message)
    return cleaned


def latest_utterance(messages: List[BaseMessage]) -> Optional[str]:
    for message in reversed(messages):
        if isinstance(message, HumanMessage):
            text = message_text(message).strip()
            return text or None
    return None


class Supervisor:
    """
    Admission, selection and turn termination for one conversation.

    Usage:
        supervisor = Supervisor(TaskExtractor(llm), config)
        workflow.add_node("supervisor", supervisor.step)
    """

    def __init__(
        self,
        task_extractor: Optional[TaskExtractor] = None,
        config: Optional[OrchestratorConfig] = None,
        journal: Optional[DecisionJournal] = None
    ):
        self.config = config or OrchestratorConfig()
        self.task_extractor = task_extractor or TaskExtractor(use_llm=False)
        self.journal = journal or DecisionJournal(self.config.decision_journal_limit)

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    def step(self, state: OrchestratorState) -> OrchestratorState:
        """Run one supervisor tick."""
        try:
            return self._step(state)
        except Exception as e:
            logger.error(f"[SUPERVISOR] Unexpected error, ending turn: {e}")
            logger.log_exception("Supervisor tick failed:", e)
            message = QUOTA_MESSAGE if is_quota_error(e) else GENERIC_ERROR_MESSAGE
            messages = clean_messages(state.get("messages") or [])
            return self._terminate(state, state.get("memory") or {}, messages, message)

    def initial_plan(self, state: OrchestratorState) -> OrchestratorState:
        """Tell the user which tasks were created for their request."""
        memory = state.get("memory") or {}
        task_state = memory.get("task_state")
        pending = TaskStore.tasks_with_status(task_state, TaskStatus.PENDING.value)

        lines = [f"{i}. {task['description']}" for i, task in enumerate(pending, start=1)]
        if len(lines) == 1:
            content = f"I'll take care of this: {pending[0]['description']}"
        else:
            content = f"I'll handle this in {len(lines)} steps:\n" + "\n".join(lines)

        logger.info(f"[SUPERVISOR] Plan with {len(pending)} task(s) sent")
        return {
            **state,
            "messages": list(state.get("messages") or []) + [AIMessage(content=content)],
            "next_route": Route.SUPERVISOR.value,
        }

    @staticmethod
    def route(state: OrchestratorState) -> str:
        """Conditional-edge function: where the last tick sent the turn."""
        return state.get("next_route") or Route.END.value

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _step(self, state: OrchestratorState) -> OrchestratorState:
        tick_count = state.get("tick_count") or 0
        messages = clean_messages(state.get("messages") or [])
        memory = clone_memory(state.get("memory"))
        utterance = latest_utterance(messages)
        if utterance:
            memory["user_request"] = utterance

        logger.info("=" * 80)
        logger.info(f"[SUPERVISOR] Tick {tick_count} | utterance: {(utterance or '-')[:80]}")
        logger.info("=" * 80)

        if tick_count >= self.config.max_ticks:
            logger.error(f"[SUPERVISOR] Tick limit reached ({tick_count}/{self.config.max_ticks})")
            return self._terminate(state, memory, messages, TICK_LIMIT_MESSAGE)

        admitted, memory = self._admit(memory, utterance, tick_count)
        if admitted:
            memory = self.journal.record(
                memory,
                AgentType.SUPERVISOR.value,
                "tasks_created",
                f"Created {len(admitted)} task(s) for the request",
                remaining_tasks=[t["description"] for t in admitted],
            )
            return {
                **state,
                "messages": messages,
                "memory": memory,
                "tick_count": tick_count + 1,
                "next_route": Route.INITIAL_PLAN.value,
                "active_task_id": None,
                "turn_phase": TurnPhase.ADMITTING.value,
            }

        task_state = memory.get("task_state")
        if not task_state or not task_state["tasks"]:
            logger.info("[SUPERVISOR] No tasks to process")
            return self._terminate(state, memory, messages, NO_TASKS_MESSAGE if utterance else None)

        progress = TaskStore.get_task_progress(task_state)
        logger.info(f"[SUPERVISOR] Progress: {progress}")

        if TaskStore.all_tasks_terminal(task_state):
            logger.info(
                f"[SUPERVISOR] All tasks finished "
                f"({progress['completed']} completed, {progress['failed']} failed)"
            )
            return self._terminate(state, memory, messages, None)

        return self._select(state, memory, messages, tick_count)

    def _admit(
        self,
        memory: Dict[str, Any],
        utterance: Optional[str],
        tick_count: int
    ) -> Tuple[List[Task], Dict[str, Any]]:
        """
        Extract and store tasks when the utterance should start new work.

        Returns:
            (newly added tasks, memory) - the list is empty when nothing was admitted
        """
        task_state = memory.get("task_state")
        has_active = TaskStore.has_active_tasks(task_state)
        is_different = memory.get("last_processed_message") != utterance
        already_created = memory.get("last_task_creation_message") == utterance
        fresh = tick_count == 0

        from_internal = tick_count > 0 and not is_different and has_active
        block_loop = already_created and tick_count > INTERNAL_LOOP_TICKS and not is_different

        if block_loop:
            logger.info(f"[SUPERVISOR] Blocking task re-creation for repeated utterance at tick {tick_count}")

        should_create = (
            not has_active
            and bool(utterance)
            and (fresh or is_different)
            and not block_loop
            and not from_internal
        )
        logger.debug(
            f"[SUPERVISOR] Admission: create={should_create} active={has_active} "
            f"different={is_different} fresh={fresh} tick={tick_count}"
        )
        if not should_create:
            return [], memory

        extracted = self.task_extractor.extract_tasks(utterance, memory)
        new_state = TaskStore.extend_with_new_tasks(task_state, extracted, memory)
        admitted = new_state["tasks"][len(new_state["tasks"]) - len(extracted):]

        memory = clone_memory(memory)
        memory["task_state"] = new_state
        memory["last_processed_message"] = utterance
        memory["last_task_creation_message"] = utterance
        memory["user_request"] = utterance

        logger.info(
            "[SUPERVISOR] Admitted tasks: "
            + ", ".join(f"{t['id']}({t['kind']}, deps={t['dependencies']})" for t in admitted)
        )
        StateValidator.log_integrity(new_state, "admission")
        return admitted, memory

    def _select(
        self,
        state: OrchestratorState,
        memory: Dict[str, Any],
        messages: List[BaseMessage],
        tick_count: int
    ) -> OrchestratorState:
        new_task_state, task = TaskStore.select_next_task(memory["task_state"])
        memory["task_state"] = new_task_state
        remaining = [t["description"] for t in TaskStore.tasks_with_status(new_task_state, TaskStatus.PENDING.value)]

        if task is not None:
            route = PIPELINE_ROUTES.get(task["kind"], Route.READ_PIPELINE.value)
            memory = without_keys(memory, ["no_task_retry_count"])
            memory = self.journal.record(
                memory,
                AgentType.SUPERVISOR.value,
                f"route_to_{route}",
                f"Task requires {task['kind']} operation: {task['description']}",
                remaining_tasks=remaining,
                current_task_id=task["id"],
            )
            StateValidator.log_integrity(memory["task_state"], "selection")
            logger.info(f"[SUPERVISOR] {task['id']} → {route}")
            return {
                **state,
                "messages": messages,
                "memory": memory,
                "tick_count": tick_count + 1,
                "next_route": route,
                "active_task_id": task["id"],
                "turn_phase": TurnPhase.ROUTED.value,
            }

        if TaskStore.all_tasks_terminal(new_task_state):
            # Selection failed the last pending tasks as cyclic
            return self._terminate(state, memory, messages, None)

        return self._retry_or_break(state, memory, messages, tick_count, remaining)

    def _retry_or_break(
        self,
        state: OrchestratorState,
        memory: Dict[str, Any],
        messages: List[BaseMessage],
        tick_count: int,
        remaining: List[str]
    ) -> OrchestratorState:
        """Circuit breaker for ticks where tasks remain but none can be selected."""
        task_state = memory["task_state"]
        retries = memory.get("no_task_retry_count") or 0
        has_pending = bool(TaskStore.tasks_with_status(task_state, TaskStatus.PENDING.value))

        if retries >= self.config.max_no_task_retries:
            if has_pending:
                stuck_status, task_error, message = TaskStatus.PENDING.value, DEADLOCK_TASK_ERROR, DEADLOCK_MESSAGE
            else:
                stuck_status, task_error, message = TaskStatus.IN_PROGRESS.value, TIMEOUT_TASK_ERROR, TIMEOUT_MESSAGE

            stuck = [t["id"] for t in TaskStore.tasks_with_status(task_state, stuck_status)]
            logger.error(f"[SUPERVISOR] No progress after {retries} retries, failing {stuck_status} tasks: {stuck}")

            memory["task_state"] = TaskStore.fail_tasks(task_state, (stuck_status,), task_error)
            memory = self.journal.record(
                memory,
                AgentType.SUPERVISOR.value,
                "deadlock_detected" if has_pending else "in_progress_timeout",
                f"Failed {len(stuck)} stuck task(s) after {retries} retries",
                remaining_tasks=remaining,
            )
            memory = without_keys(memory, ["no_task_retry_count"])
            return self._terminate(state, memory, messages, message)

        logger.info(f"[SUPERVISOR] No runnable task, retry {retries + 1}/{self.config.max_no_task_retries}")
        memory["no_task_retry_count"] = retries + 1
        memory = self.journal.record(
            memory,
            AgentType.SUPERVISOR.value,
            "wait_for_dependencies",
            f"No runnable task (retry {retries + 1})",
            remaining_tasks=remaining,
        )
        return {
            **state,
            "messages": messages,
            "memory": memory,
            "tick_count": tick_count + 1,
            "next_route": Route.SUPERVISOR.value,
            "active_task_id": None,
            "turn_phase": TurnPhase.SELECTING.value,
        }

    def _terminate(
        self,
        state: OrchestratorState,
        memory: Dict[str, Any],
        messages: List[BaseMessage],
        content: Optional[str]
    ) -> OrchestratorState:
        """End the turn; the next utterance is evaluated as a fresh turn."""
        memory = without_keys(memory, ["last_task_creation_message"])
        if content:
            messages = list(messages) + [AIMessage(content=content)]
        return {
            **state,
            "messages": messages,
            "memory": memory,
            "next_route": Route.END.value,
            "active_task_id": None,
            "turn_phase": TurnPhase.TERMINATED.value,
        }
