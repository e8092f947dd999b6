"""
Pipeline module - read and write pipelines as graph nodes.

A pipeline processes the task the supervisor marked in progress:

    discovery  -> optional hook that fills in operation_details
    context    -> ContextResolutionEngine snapshot for the task
    generation -> operation text with {{parameter}} placeholders
    substitute -> resolved values written into the operation
    execution  -> injected executor runs the operation
    outcome    -> record_result / record_failure and a message for the user

Every path returns to the supervisor with the task in a terminal state.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional

from langchain_core.messages import AIMessage, HumanMessage

from conversation_orchestrator.core.context_resolution import ContextResolutionEngine
from conversation_orchestrator.core.task_store import TaskStore
from conversation_orchestrator.models import (
    AgentType,
    GatheredContext,
    OrchestratorState,
    Route,
    Task,
    TaskKind,
    TaskPhase,
    TaskStatus,
)
from conversation_orchestrator.utils.decision_journal import DecisionJournal
from conversation_orchestrator.utils.exceptions import (
    LLMError,
    MissingParameterError,
    PipelineExecutionError,
    QuotaExceededError,
    is_quota_error,
)
from conversation_orchestrator.utils.placeholders import (
    build_missing_parameters_message,
    find_unresolved_placeholders,
    substitute_placeholders,
)
from conversation_orchestrator.utils.prompt_builder import PromptBuilder
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

CODE_FENCE_PATTERN = re.compile(r"^```[\w-]*\s*\n?|\n?```\s*$")
RESULT_PREVIEW_CHARS = 500

QUOTA_MESSAGE = "We are out of quota. Please try again later."

Executor = Callable[[str, Task], Any]
OperationDiscovery = Callable[[Task, Dict[str, Any]], Optional[Dict[str, Any]]]


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_PATTERN.sub("", (text or "").strip()).strip()


def format_result_preview(data: Any) -> str:
    """Short JSON preview of a result payload for the completion message."""
    if data is None:
        return ""
    try:
        text = json.dumps(data, indent=2, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        text = str(data)
    if len(text) > RESULT_PREVIEW_CHARS:
        text = text[:RESULT_PREVIEW_CHARS] + "\n..."
    return text


class OperationGenerator:
    """
    Produces the operation text for a task.

    A template in operation_details is used as is; otherwise the LLM is
    asked for one.
    """

    def __init__(self, llm: Any = None, provider: str = "unknown", model: Optional[str] = None):
        self.llm = llm
        self.provider = provider
        self.model = model

    def generate(self, task: Task, context: GatheredContext, user_request: str) -> str:
        """
        Raises:
            PipelineExecutionError: If there is neither a template nor an LLM
            QuotaExceededError: If the provider rejected the call for quota
            LLMError: For any other LLM failure or an empty response
        """
        details = task.get("operation_details") or {}
        template = details.get("template")
        if template:
            logger.debug(f"[PIPELINE] Using operation template for {task['id']}")
            return template

        if self.llm is None:
            raise PipelineExecutionError(
                operation=details.get("operation_name") or "unknown",
                message="no operation template and no LLM configured",
                task_id=task["id"],
            )

        prompt = PromptBuilder.build_operation_prompt(task, context, user_request)
        try:
            response = self.llm.invoke([HumanMessage(content=prompt)])
        except Exception as e:
            if is_quota_error(e):
                raise QuotaExceededError(self.provider, self.model, original_error=e) from e
            raise LLMError(self.provider, "operation generation failed", self.model, original_error=e) from e

        content = response.content if hasattr(response, "content") else str(response)
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        operation = strip_code_fences(content)
        if not operation:
            raise LLMError(self.provider, "empty operation returned", self.model)
        return operation


class PipelineRunner:
    """
    One pipeline node (read or write).

    Args:
        kind: TaskKind value this pipeline serves
        executor: Callable (operation, task) -> result data
        generator: OperationGenerator
        context_engine: ContextResolutionEngine
        discover_operation: Optional callable (task, memory) -> operation_details
        journal: DecisionJournal for completion/failure entries
    """

    def __init__(
        self,
        kind: str,
        executor: Executor,
        generator: Optional[OperationGenerator] = None,
        context_engine: Optional[ContextResolutionEngine] = None,
        discover_operation: Optional[OperationDiscovery] = None,
        journal: Optional[DecisionJournal] = None
    ):
        self.kind = kind
        self.executor = executor
        self.generator = generator or OperationGenerator()
        self.context_engine = context_engine or ContextResolutionEngine()
        self.discover_operation = discover_operation
        self.journal = journal or DecisionJournal()
        self.agent = AgentType.WRITE_AGENT.value if kind == TaskKind.WRITE.value else AgentType.READ_AGENT.value
        self.name = Route.WRITE_PIPELINE.value if kind == TaskKind.WRITE.value else Route.READ_PIPELINE.value

    def run(self, state: OrchestratorState) -> OrchestratorState:
        """Graph node: process the active task and hand back to the supervisor."""
        memory = state.get("memory") or {}
        messages = list(state.get("messages") or [])
        task_id = state.get("active_task_id")
        task = TaskStore.get_task(memory.get("task_state"), task_id) if task_id else None

        if task is None or task["status"] != TaskStatus.IN_PROGRESS.value:
            logger.warning(f"[PIPELINE] {self.name} has no in-progress task (active: {task_id})")
            return self._back_to_supervisor(state, memory, messages)

        logger.info("=" * 80)
        logger.info(f"[PIPELINE] {self.name} processing {task_id}: {task['description']}")
        logger.info("=" * 80)

        user_request = memory.get("user_request") or ""
        operation = None
        try:
            memory = self._discover(memory, task)
            memory, context = self.context_engine.resolve(memory, task_id, user_request, state.get("auth_user"))
            task = TaskStore.get_task(memory["task_state"], task_id)

            template = self.generator.generate(task, context, user_request)
            values = self.context_engine.resolve_parameter_values(context)
            company_id = (context.get("user_context") or {}).get("companyId")
            if company_id:
                # Operations are always scoped to the caller's company
                values["companyId"] = company_id

            operation, unresolved = substitute_placeholders(template, values)
            unresolved = unresolved or find_unresolved_placeholders(operation)
            memory = self._set_phase(memory, task_id, TaskPhase.EXECUTION.value, operation)

            if unresolved:
                message = build_missing_parameters_message(unresolved)
                suggestions = (context.get("context_analysis") or {}).get("workflow_suggestions") or []
                hints = [s["user_message"] for s in suggestions if s.get("user_message")]
                if hints:
                    message += "\n\n" + "\n".join(hints)
                error = MissingParameterError(unresolved, context=task_id)
                return self._fail(state, memory, messages, task, error.message, message)

            data = self.executor(operation, task)
        except QuotaExceededError as e:
            return self._fail(state, memory, messages, task, e.message, QUOTA_MESSAGE)
        except Exception as e:
            if is_quota_error(e):
                return self._fail(state, memory, messages, task, str(e), QUOTA_MESSAGE)
            error = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.error(f"[PIPELINE] {task_id} failed: {error}")
            return self._fail(
                state, memory, messages, task, error,
                f"I couldn't complete \"{task['description']}\": {error}",
            )

        return self._complete(state, memory, messages, task, operation, data)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _discover(self, memory: Dict[str, Any], task: Task) -> Dict[str, Any]:
        if self.discover_operation is None:
            return memory
        details = self.discover_operation(task, memory)
        if not details:
            return memory
        merged = {**(task.get("operation_details") or {}), **details}
        logger.info(f"[PIPELINE] Operation for {task['id']}: {merged.get('operation_name', 'unnamed')}")
        return {
            **memory,
            "task_state": TaskStore.update_task(memory["task_state"], task["id"], {"operation_details": merged}),
        }

    @staticmethod
    def _set_phase(memory: Dict[str, Any], task_id: str, phase: str, operation: Optional[str]) -> Dict[str, Any]:
        task = TaskStore.get_task(memory["task_state"], task_id)
        details = dict(task.get("operation_details") or {})
        if operation:
            details["generated_operation"] = operation
        return {
            **memory,
            "task_state": TaskStore.update_task(memory["task_state"], task_id, {
                "context": {**(task.get("context") or {}), "phase": phase},
                "operation_details": details,
            }),
        }

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _complete(
        self,
        state: OrchestratorState,
        memory: Dict[str, Any],
        messages: List[Any],
        task: Task,
        operation: str,
        data: Any
    ) -> OrchestratorState:
        if isinstance(data, dict) and "data" in data:
            result = dict(data)
        else:
            result = {"data": data}
        result.setdefault("operation", operation)

        task_state = TaskStore.record_result(memory["task_state"], task["id"], result)
        completed = TaskStore.get_task(task_state, task["id"])
        if completed.get("sources") or completed.get("citations"):
            confidence = TaskStore.calculate_task_confidence(completed)
            task_state = TaskStore.update_task(task_state, task["id"], {"confidence": confidence})
        memory = TaskStore.clean_task_memory({**memory, "task_state": task_state})
        memory = self.journal.record(
            memory, self.agent, "task_completed", task["description"],
            remaining_tasks=[t["description"] for t in TaskStore.tasks_with_status(task_state, TaskStatus.PENDING.value)],
            current_task_id=task["id"],
        )

        preview = format_result_preview(result.get("data"))
        content = f"Completed: {task['description']}"
        if preview:
            content += f"\n{preview}"
        return self._back_to_supervisor(state, memory, messages + [AIMessage(content=content)])

    def _fail(
        self,
        state: OrchestratorState,
        memory: Dict[str, Any],
        messages: List[Any],
        task: Task,
        error: str,
        user_message: str
    ) -> OrchestratorState:
        task_state = TaskStore.record_failure(memory["task_state"], task["id"], error)
        memory = TaskStore.clean_task_memory({**memory, "task_state": task_state})
        memory = self.journal.record(
            memory, self.agent, "task_failed", error,
            remaining_tasks=[t["description"] for t in TaskStore.tasks_with_status(task_state, TaskStatus.PENDING.value)],
            current_task_id=task["id"],
        )
        return self._back_to_supervisor(state, memory, messages + [AIMessage(content=user_message)])

    @staticmethod
    def _back_to_supervisor(
        state: OrchestratorState,
        memory: Dict[str, Any],
        messages: List[Any]
    ) -> OrchestratorState:
        return {
            **state,
            "messages": messages,
            "memory": memory,
            "next_route": Route.SUPERVISOR.value,
            "active_task_id": None,
        }
