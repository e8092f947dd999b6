"""
Task store - task graph operations for one conversation.

All operations are pure: they take a TaskState and return a new one. The
``tasks`` list is the arena (creation order), ids are ``task_<n>`` strings,
and ``completed_tasks`` / ``failed_tasks`` mirror task status. Status is the
authoritative field; the two id lists are recomputed for the touched task on
every transition.
"""

import copy
import json
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from conversation_orchestrator.models import (
    Task,
    TaskState,
    TaskStatus,
    TaskKind,
    TaskPhase,
    VerificationStatus,
    PipelineTarget,
    TERMINAL_STATUSES,
    ACTIVE_STATUSES,
)
from conversation_orchestrator.utils.exceptions import CyclicDependencyError, TaskNotFoundError, format_cycle
from conversation_orchestrator.utils.memory import without_keys
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

TASK_ID_PATTERN = re.compile(r"task_(\d+)")

# Per-task scratch keys written by the pipelines while a task is processed
TASK_SCRATCH_KEYS = (
    "discovered_operations",
    "selected_operation",
    "type_details",
    "type_details_summary",
    "operation_context",
    "structured_patterns",
)

DEFAULT_CONFIDENCE = 0.5
VERIFICATION_THRESHOLD = 0.8
SOURCE_VERIFICATION_THRESHOLD = 0.7


def _now() -> str:
    return datetime.now().isoformat()


def task_number(task_id: str) -> Optional[int]:
    """Numeric suffix of a ``task_<n>`` id, or None for other ids."""
    match = TASK_ID_PATTERN.fullmatch(task_id or "")
    return int(match.group(1)) if match else None


class TaskStore:
    """
    Task graph and state machine operations.

    Transitions:
        pending -> in_progress      (select_next_task)
        in_progress -> completed    (record_result)
        in_progress -> failed       (record_failure)
        pending -> failed           (cycle detection, deadlock breaker)

    Nothing leaves completed/failed except reset_task_state and compact.
    """

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @staticmethod
    def create_task(
        task_id: str,
        description: str,
        kind: str = TaskKind.READ.value,
        dependencies: Optional[List[str]] = None,
        **fields: Any
    ) -> Task:
        """
        Create a task with defaults filled in.

        Args:
            task_id: Task id (``task_<n>``)
            description: Natural-language statement of intent
            kind: "read" or "write"
            dependencies: Ids that must complete before this task runs
            **fields: Any other Task field to override (confidence, operation_details, ...)

        Returns:
            New Task in pending status
        """
        kind = TaskKind(kind).value
        now = _now()
        task: Task = {
            "id": task_id,
            "description": description,
            "kind": kind,
            "target_pipeline": (
                PipelineTarget.WRITE_PIPELINE.value if kind == TaskKind.WRITE.value
                else PipelineTarget.READ_PIPELINE.value
            ),
            "dependencies": list(dependencies or []),
            "status": TaskStatus.PENDING.value,
            "result": None,
            "error": None,
            "confidence": DEFAULT_CONFIDENCE,
            "verification_status": VerificationStatus.UNVERIFIED.value,
            "sources": [],
            "citations": [],
            "context": {
                "data_requirements": [],
                "phase": TaskPhase.INITIALIZATION.value,
                "context": {},
            },
            "resolved_context": None,
            "context_version": None,
            "created_at": now,
            "updated_at": now,
        }
        task.update(copy.deepcopy(fields))
        return task

    @staticmethod
    def create_task_state(tasks: Optional[List[Task]] = None) -> TaskState:
        """Create a TaskState, deriving the id lists from task status."""
        tasks = copy.deepcopy(tasks or [])
        numbers = [n for n in (task_number(t["id"]) for t in tasks) if n is not None]
        return {
            "tasks": tasks,
            "completed_tasks": [t["id"] for t in tasks if t["status"] == TaskStatus.COMPLETED.value],
            "failed_tasks": [t["id"] for t in tasks if t["status"] == TaskStatus.FAILED.value],
            "execution_start_time": _now(),
            "max_task_number": max(numbers) if numbers else -1,
        }

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def get_task(state: Optional[TaskState], task_id: str) -> Optional[Task]:
        if not state:
            return None
        for task in state["tasks"]:
            if task["id"] == task_id:
                return task
        return None

    @staticmethod
    def get_in_progress_task(state: Optional[TaskState]) -> Optional[Task]:
        if not state:
            return None
        for task in state["tasks"]:
            if task["status"] == TaskStatus.IN_PROGRESS.value:
                return task
        return None

    @staticmethod
    def has_active_tasks(state: Optional[TaskState]) -> bool:
        """True when any task is pending or in progress."""
        return bool(state) and any(t["status"] in ACTIVE_STATUSES for t in state["tasks"])

    @staticmethod
    def all_tasks_terminal(state: Optional[TaskState]) -> bool:
        """True when the state has tasks and every one is completed or failed."""
        return bool(state) and bool(state["tasks"]) and all(
            t["status"] in TERMINAL_STATUSES for t in state["tasks"]
        )

    @staticmethod
    def tasks_with_status(state: Optional[TaskState], status: str) -> List[Task]:
        if not state:
            return []
        return [t for t in state["tasks"] if t["status"] == status]

    # ------------------------------------------------------------------
    # Graph operations
    # ------------------------------------------------------------------

    @staticmethod
    def detect_cycle(tasks: List[Task]) -> Optional[List[str]]:
        """
        Find a dependency cycle with a DFS over the dependency relation.

        Dependencies on ids outside ``tasks`` are ignored.

        Args:
            tasks: Tasks to inspect

        Returns:
            The cycle as an ordered list of task ids (each id once), or None
        """
        graph = {t["id"]: list(t.get("dependencies") or []) for t in tasks}
        visited = set()
        stack: List[str] = []
        on_stack = set()

        def visit(node: str) -> Optional[List[str]]:
            visited.add(node)
            stack.append(node)
            on_stack.add(node)

            for dep in graph.get(node, []):
                if dep not in graph:
                    continue
                if dep in on_stack:
                    return stack[stack.index(dep):]
                if dep not in visited:
                    cycle = visit(dep)
                    if cycle:
                        return cycle

            stack.pop()
            on_stack.discard(node)
            return None

        for task in tasks:
            if task["id"] not in visited:
                cycle = visit(task["id"])
                if cycle:
                    return list(cycle)
        return None

    @staticmethod
    def fail_cyclic_tasks(state: TaskState) -> TaskState:
        """
        Fail every pending task that sits on a dependency cycle.

        Cycles are searched among pending tasks only: a task leaves pending
        only once its dependencies completed, so nothing else can be on a
        cycle. The search repeats until none is left, so disjoint cycles are
        all cleared.
        """
        while True:
            pending = [t for t in state["tasks"] if t["status"] == TaskStatus.PENDING.value]
            cycle = TaskStore.detect_cycle(pending)
            if not cycle:
                return state

            error = CyclicDependencyError(cycle)
            logger.warning(f"[TASK_STORE] Cycle detected, failing tasks: {format_cycle(cycle)}")
            for task_id in cycle:
                state = TaskStore.record_failure(state, task_id, error.message)

    @staticmethod
    def dependencies_satisfied(state: TaskState, task: Task) -> bool:
        """True when every dependency exists and has status completed."""
        by_id = {t["id"]: t for t in state["tasks"]}
        for dep in task.get("dependencies") or []:
            dep_task = by_id.get(dep)
            if dep_task is None or dep_task["status"] != TaskStatus.COMPLETED.value:
                return False
        return True

    @staticmethod
    def select_next_task(state: Optional[TaskState]) -> Tuple[Optional[TaskState], Optional[Task]]:
        """
        Pick the next runnable task and mark it in progress.

        Cyclic pending tasks are failed first. Nothing is selected while
        another task is in progress. Among pending tasks, the first in
        creation order whose dependencies are all completed wins.

        Returns:
            (updated state, selected task) - the task is None when nothing is runnable
        """
        if not state or not state["tasks"]:
            return state, None

        state = TaskStore.fail_cyclic_tasks(state)

        in_progress = TaskStore.get_in_progress_task(state)
        if in_progress:
            logger.debug(f"[TASK_STORE] {in_progress['id']} still in progress, nothing selected")
            return state, None

        for task in state["tasks"]:
            if task["status"] != TaskStatus.PENDING.value:
                continue
            if not TaskStore.dependencies_satisfied(state, task):
                continue

            state = TaskStore.update_task(state, task["id"], {"status": TaskStatus.IN_PROGRESS.value})
            selected = TaskStore.get_task(state, task["id"])
            logger.info(f"[TASK_STORE] Selected {task['id']}: {task['description']}")
            return state, selected

        return state, None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @staticmethod
    def update_task(state: TaskState, task_id: str, updates: Dict[str, Any]) -> TaskState:
        """
        Apply updates to exactly one task and resync its set membership.

        Raises:
            TaskNotFoundError: If no task has the given id
        """
        index = next((i for i, t in enumerate(state["tasks"]) if t["id"] == task_id), None)
        if index is None:
            raise TaskNotFoundError(task_id)

        new_state = copy.deepcopy(state)
        task = new_state["tasks"][index]
        task.update(copy.deepcopy(updates))
        task["updated_at"] = _now()

        completed = [i for i in new_state["completed_tasks"] if i != task_id]
        failed = [i for i in new_state["failed_tasks"] if i != task_id]
        if task["status"] == TaskStatus.COMPLETED.value:
            completed.append(task_id)
        elif task["status"] == TaskStatus.FAILED.value:
            failed.append(task_id)
        new_state["completed_tasks"] = completed
        new_state["failed_tasks"] = failed
        return new_state

    @staticmethod
    def record_result(state: TaskState, task_id: str, result: Dict[str, Any]) -> TaskState:
        """Complete a task with its result payload."""
        task = TaskStore.get_task(state, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        context = {**(task.get("context") or {}), "phase": TaskPhase.COMPLETION.value}
        logger.info(f"[TASK_STORE] {task_id} completed")
        return TaskStore.update_task(state, task_id, {
            "status": TaskStatus.COMPLETED.value,
            "result": result,
            "error": None,
            "context": context,
        })

    @staticmethod
    def record_failure(state: TaskState, task_id: str, error: str) -> TaskState:
        """Fail a task with a human-readable error."""
        task = TaskStore.get_task(state, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        context = {**(task.get("context") or {}), "last_error": error}
        logger.warning(f"[TASK_STORE] {task_id} failed: {error}")
        return TaskStore.update_task(state, task_id, {
            "status": TaskStatus.FAILED.value,
            "result": None,
            "error": error,
            "context": context,
        })

    @staticmethod
    def fail_tasks(state: TaskState, statuses: Tuple[str, ...], error: str) -> TaskState:
        """Fail every task whose status is in ``statuses``."""
        for task in list(state["tasks"]):
            if task["status"] in statuses:
                state = TaskStore.record_failure(state, task["id"], error)
        return state

    # ------------------------------------------------------------------
    # Extension across turns
    # ------------------------------------------------------------------

    @staticmethod
    def next_task_number(state: Optional[TaskState], memory: Optional[Dict[str, Any]] = None) -> int:
        """
        First free task number.

        With a state, numbering continues after the highest id it holds or
        ever held (compaction keeps the high-water mark). Without one, memory
        is scanned for anything shaped like a task id.
        """
        if state is not None:
            numbers = [n for n in (task_number(t["id"]) for t in state["tasks"]) if n is not None]
            highest = max(numbers + [state.get("max_task_number", -1)])
            return highest + 1

        if not memory:
            return 0

        dump = json.dumps(memory, default=str)
        numbers = [int(n) for n in TASK_ID_PATTERN.findall(dump)]
        return max(numbers) + 1 if numbers else 0

    @staticmethod
    def extend_with_new_tasks(
        state: Optional[TaskState],
        new_tasks: List[Task],
        memory: Optional[Dict[str, Any]] = None
    ) -> TaskState:
        """
        Append freshly extracted tasks, renumbering them to follow existing ids.

        New tasks arrive with local ids ``task_0..task_{k-1}``. A dependency
        ``task_i`` with ``i < k`` refers to the i-th new task and is rewritten
        to its new id; other dependencies are kept as they are.

        Args:
            state: Existing TaskState, or None for the first batch
            new_tasks: Tasks from extraction, locally numbered
            memory: Conversation memory, scanned only when state is None

        Returns:
            New TaskState holding old and new tasks
        """
        start = TaskStore.next_task_number(state, memory)
        id_map = {i: f"task_{start + i}" for i in range(len(new_tasks))}

        renumbered: List[Task] = []
        for i, task in enumerate(new_tasks):
            deps = []
            for dep in task.get("dependencies") or []:
                local = task_number(dep)
                deps.append(id_map[local] if local is not None and local in id_map else dep)
            new_task = copy.deepcopy(task)
            new_task["id"] = id_map[i]
            new_task["dependencies"] = deps
            renumbered.append(new_task)

        if state is None:
            new_state = TaskStore.create_task_state(renumbered)
        else:
            new_state = copy.deepcopy(state)
            new_state["tasks"].extend(renumbered)
            new_state["execution_start_time"] = _now()

        if renumbered:
            new_state["max_task_number"] = max(new_state.get("max_task_number", -1), start + len(renumbered) - 1)
            logger.info(
                f"[TASK_STORE] Added {len(renumbered)} task(s): "
                f"{', '.join(t['id'] for t in renumbered)}"
            )
        return new_state

    # ------------------------------------------------------------------
    # Completed-task context
    # ------------------------------------------------------------------

    @staticmethod
    def data_key(description: str) -> str:
        """Lookup key for a task description: lower case, alphanumerics, spaces as underscores."""
        cleaned = re.sub(r"[^a-z0-9\s]", "", description.lower())
        return re.sub(r"\s+", "_", cleaned.strip())

    @staticmethod
    def get_completed_tasks_context(state: Optional[TaskState], recent_limit: int = 5) -> Dict[str, Any]:
        """
        Aggregate completed task results for context resolution.

        Returns:
            {
                "completed_tasks": completed Task list,
                "recent_results": last ``recent_limit`` result payloads,
                "user_info": result of the first identity lookup task, if any,
                "available_data": {description key: result["data"]}
            }
        """
        completed = TaskStore.tasks_with_status(state, TaskStatus.COMPLETED.value)
        results = [t["result"] for t in completed if t.get("result") is not None]

        user_info = None
        available_data: Dict[str, Any] = {}
        for task in completed:
            description = task["description"].lower()
            if user_info is None and (
                ("user" in description and "info" in description) or "who am i" in description
            ):
                user_info = task.get("result")

            result = task.get("result")
            if isinstance(result, dict) and result.get("data") is not None:
                available_data[TaskStore.data_key(task["description"])] = result["data"]

        return {
            "completed_tasks": completed,
            "recent_results": results[-recent_limit:] if recent_limit else [],
            "user_info": user_info,
            "available_data": available_data,
        }

    # ------------------------------------------------------------------
    # Compaction and reset
    # ------------------------------------------------------------------

    @staticmethod
    def compact(state: TaskState) -> TaskState:
        """
        Keep only pending and in-progress tasks and clear the id lists.

        Dependencies on dropped completed tasks are removed from the kept
        tasks; dependencies on dropped failed tasks stay, so their dependents
        remain blocked.
        """
        kept = [copy.deepcopy(t) for t in state["tasks"] if t["status"] in ACTIVE_STATUSES]
        satisfied = {t["id"] for t in state["tasks"] if t["status"] == TaskStatus.COMPLETED.value}
        for task in kept:
            task["dependencies"] = [d for d in task.get("dependencies") or [] if d not in satisfied]
        logger.info(f"[TASK_STORE] Compacted task state: {len(state['tasks'])} -> {len(kept)} task(s)")
        return {
            "tasks": kept,
            "completed_tasks": [],
            "failed_tasks": [],
            "execution_start_time": state["execution_start_time"],
            "max_task_number": TaskStore.next_task_number(state) - 1,
        }

    @staticmethod
    def reset_task_state(
        state: TaskState,
        reset_completed: bool = True,
        reset_failed: bool = True,
        reset_in_progress: bool = True,
        preserve_dependencies: bool = True
    ) -> TaskState:
        """
        Return selected tasks to pending so they can run again.

        Results and errors of reset tasks are cleared and the id lists rebuilt.
        When every category is reset the execution clock restarts.
        """
        targets = set()
        if reset_completed:
            targets.add(TaskStatus.COMPLETED.value)
        if reset_failed:
            targets.add(TaskStatus.FAILED.value)
        if reset_in_progress:
            targets.add(TaskStatus.IN_PROGRESS.value)

        new_state = copy.deepcopy(state)
        for task in new_state["tasks"]:
            if task["status"] not in targets:
                continue
            task["status"] = TaskStatus.PENDING.value
            task["result"] = None
            task["error"] = None
            task["updated_at"] = _now()
            if not preserve_dependencies:
                task["dependencies"] = []

        new_state["completed_tasks"] = [
            t["id"] for t in new_state["tasks"] if t["status"] == TaskStatus.COMPLETED.value
        ]
        new_state["failed_tasks"] = [
            t["id"] for t in new_state["tasks"] if t["status"] == TaskStatus.FAILED.value
        ]
        if reset_completed and reset_failed and reset_in_progress:
            new_state["execution_start_time"] = _now()
        return new_state

    # ------------------------------------------------------------------
    # Progress and quality metadata
    # ------------------------------------------------------------------

    @staticmethod
    def get_task_progress(state: Optional[TaskState]) -> Dict[str, int]:
        tasks = state["tasks"] if state else []
        progress = {"total": len(tasks)}
        for status in TaskStatus:
            progress[status.value] = sum(1 for t in tasks if t["status"] == status.value)
        progress["data_gathering"] = sum(
            1 for t in tasks
            if (t.get("context") or {}).get("phase") == TaskPhase.DATA_GATHERING.value
        )
        return progress

    @staticmethod
    def needs_verification(task: Task) -> bool:
        if task.get("confidence", DEFAULT_CONFIDENCE) < VERIFICATION_THRESHOLD:
            return True
        if any(s.get("confidence", 0) < SOURCE_VERIFICATION_THRESHOLD for s in task.get("sources") or []):
            return True
        return any(
            c.get("verification_status") == VerificationStatus.NEEDS_VERIFICATION.value
            for c in task.get("citations") or []
        )

    @staticmethod
    def calculate_task_confidence(task: Task) -> float:
        """
        Confidence from provenance: 0.4 x mean source confidence plus
        0.6 x mean citation confidence (verified citations weigh 1.2),
        +0.1 for a verified task, capped at 1.0. 0.5 without provenance.
        """
        sources = task.get("sources") or []
        citations = task.get("citations") or []
        if not sources and not citations:
            return DEFAULT_CONFIDENCE

        source_score = (
            sum(s.get("confidence", 0) for s in sources) / len(sources) if sources else 0.0
        )
        citation_score = 0.0
        if citations:
            weighted = [
                c.get("confidence", 0) * (1.2 if c.get("verification_status") == VerificationStatus.VERIFIED.value else 1.0)
                for c in citations
            ]
            citation_score = sum(weighted) / len(weighted)

        bonus = 0.1 if task.get("verification_status") == VerificationStatus.VERIFIED.value else 0.0
        return min(0.4 * source_score + 0.6 * citation_score + bonus, 1.0)

    @staticmethod
    def add_source(state: TaskState, task_id: str, source: Dict[str, Any]) -> TaskState:
        task = TaskStore.get_task(state, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        entry = {"timestamp": _now(), **source}
        updated = {**task, "sources": list(task.get("sources") or []) + [entry]}
        return TaskStore.update_task(state, task_id, {
            "sources": updated["sources"],
            "confidence": TaskStore.calculate_task_confidence(updated),
        })

    @staticmethod
    def add_citation(state: TaskState, task_id: str, citation: Dict[str, Any]) -> TaskState:
        task = TaskStore.get_task(state, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        entry = {"verification_status": VerificationStatus.UNVERIFIED.value, **citation}
        updated = {**task, "citations": list(task.get("citations") or []) + [entry]}
        return TaskStore.update_task(state, task_id, {
            "citations": updated["citations"],
            "confidence": TaskStore.calculate_task_confidence(updated),
        })

    @staticmethod
    def verify_citation(state: TaskState, task_id: str, citation_index: int) -> TaskState:
        """Mark one citation verified and raise the task's confidence by 0.1 (max 1.0)."""
        task = TaskStore.get_task(state, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        citations = copy.deepcopy(task.get("citations") or [])
        if not 0 <= citation_index < len(citations):
            return state
        citations[citation_index]["verification_status"] = VerificationStatus.VERIFIED.value
        return TaskStore.update_task(state, task_id, {
            "citations": citations,
            "confidence": min(task.get("confidence", DEFAULT_CONFIDENCE) + 0.1, 1.0),
        })

    # ------------------------------------------------------------------
    # Memory hygiene
    # ------------------------------------------------------------------

    @staticmethod
    def clean_task_memory(memory: Dict[str, Any]) -> Dict[str, Any]:
        """Copy of memory without the per-task scratch keys."""
        return without_keys(memory, TASK_SCRATCH_KEYS)
