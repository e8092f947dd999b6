"""
State Validation Module

Integrity checks for the task graph. Used by tests and by the supervisor's
debug logging to catch status/set drift early.
"""

from typing import Dict, List, Any, Tuple

from conversation_orchestrator.models import TaskStatus
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

VALID_STATUSES = {status.value for status in TaskStatus}


class StateValidator:
    """Validates task state integrity and detects anomalies."""

    @staticmethod
    def validate_task_state_integrity(task_state: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """
        Validate that a TaskState is internally consistent.

        Checks:
            - required fields are present
            - ids are unique
            - completed_tasks / failed_tasks match task status exactly
            - at most one task is in progress
            - no pending task depends on itself

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        errors = []

        for field in ("tasks", "completed_tasks", "failed_tasks", "execution_start_time"):
            if field not in task_state:
                errors.append(f"Missing required field: {field}")
        if errors:
            return False, errors

        tasks = task_state["tasks"]
        task_ids = [t.get("id") for t in tasks]
        duplicates = {i for i in task_ids if task_ids.count(i) > 1}
        if duplicates:
            errors.append(f"Duplicate task IDs: {sorted(duplicates)}")

        completed_ids = set(task_state["completed_tasks"])
        failed_ids = set(task_state["failed_tasks"])

        unknown = (completed_ids | failed_ids) - set(task_ids)
        if unknown:
            errors.append(f"Tracked task IDs not in task list: {sorted(unknown)}")

        overlap = completed_ids & failed_ids
        if overlap:
            errors.append(f"Task IDs in both completed and failed: {sorted(overlap)}")

        in_progress = []
        for task in tasks:
            task_id = task.get("id", "unknown")
            status = task.get("status")

            if "description" not in task:
                errors.append(f"Task {task_id}: missing 'description'")
            if status not in VALID_STATUSES:
                errors.append(f"Task {task_id}: invalid status '{status}'")

            if (status == TaskStatus.COMPLETED.value) != (task_id in completed_ids):
                errors.append(f"Task {task_id}: status '{status}' disagrees with completed_tasks")
            if (status == TaskStatus.FAILED.value) != (task_id in failed_ids):
                errors.append(f"Task {task_id}: status '{status}' disagrees with failed_tasks")

            if status == TaskStatus.IN_PROGRESS.value:
                in_progress.append(task_id)
            if status == TaskStatus.PENDING.value and task_id in (task.get("dependencies") or []):
                errors.append(f"Task {task_id}: pending task depends on itself")

        if len(in_progress) > 1:
            errors.append(f"More than one task in progress: {in_progress}")

        return len(errors) == 0, errors

    @staticmethod
    def log_integrity(task_state: Dict[str, Any], node_name: str) -> bool:
        """Validate and log any problems; returns validity."""
        is_valid, errors = StateValidator.validate_task_state_integrity(task_state)
        if not is_valid:
            logger.warning(f"[HEALTH] Task state integrity issues after {node_name}: {'; '.join(errors)}")
        return is_valid
