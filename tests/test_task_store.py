"""
Tests for the task graph: state machine, cycle handling, selection,
id continuation and completed-task context.
"""

import pytest

from conversation_orchestrator.core.task_store import TaskStore, task_number
from conversation_orchestrator.models import TaskStatus, TaskPhase, VerificationStatus
from conversation_orchestrator.utils.exceptions import CyclicDependencyError, TaskNotFoundError
from conversation_orchestrator.utils.state_validator import StateValidator


def make_task(task_id, deps=None, status=TaskStatus.PENDING.value, kind="read", description=None, **fields):
    return TaskStore.create_task(
        task_id,
        description or f"do {task_id}",
        kind=kind,
        dependencies=deps or [],
        status=status,
        **fields
    )


def statuses(state):
    return {t["id"]: t["status"] for t in state["tasks"]}


class TestCreateTask:
    """Task defaults."""

    def test_defaults(self):
        task = TaskStore.create_task("task_0", "list employees")

        assert task["status"] == TaskStatus.PENDING.value
        assert task["confidence"] == 0.5
        assert task["kind"] == "read"
        assert task["target_pipeline"] == "read_pipeline"
        assert task["sources"] == []
        assert task["citations"] == []
        assert task["dependencies"] == []
        assert task["result"] is None and task["error"] is None
        assert task["context"]["phase"] == TaskPhase.INITIALIZATION.value

    def test_write_task_targets_write_pipeline(self):
        task = TaskStore.create_task("task_0", "update salary", kind="write")
        assert task["target_pipeline"] == "write_pipeline"

    def test_invalid_kind_rejected(self):
        with pytest.raises(ValueError):
            TaskStore.create_task("task_0", "x", kind="delete")

    def test_create_task_state_derives_id_lists(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.COMPLETED.value),
            make_task("task_1", status=TaskStatus.FAILED.value),
            make_task("task_2"),
        ])
        assert state["completed_tasks"] == ["task_0"]
        assert state["failed_tasks"] == ["task_1"]
        assert state["max_task_number"] == 2

    def test_task_number(self):
        assert task_number("task_12") == 12
        assert task_number("step_1") is None


class TestCycleDetection:
    """Cyclic tasks are detected and failed, never left pending."""

    def test_detect_cycle_returns_exactly_the_cycle(self):
        tasks = [
            make_task("task_0", deps=["task_1"]),
            make_task("task_1", deps=["task_0"]),
            make_task("task_2"),
        ]
        cycle = TaskStore.detect_cycle(tasks)
        assert cycle is not None
        assert sorted(cycle) == ["task_0", "task_1"]

    def test_no_cycle(self):
        tasks = [make_task("task_0"), make_task("task_1", deps=["task_0"])]
        assert TaskStore.detect_cycle(tasks) is None

    def test_self_dependency_is_a_cycle(self):
        assert TaskStore.detect_cycle([make_task("task_0", deps=["task_0"])]) == ["task_0"]

    def test_unknown_dependency_ignored(self):
        assert TaskStore.detect_cycle([make_task("task_0", deps=["task_9"])]) is None

    def test_selection_fails_cyclic_tasks_and_selects_the_rest(self):
        state = TaskStore.create_task_state([
            make_task("task_0", deps=["task_1"]),
            make_task("task_1", deps=["task_0"]),
            make_task("task_2"),
        ])

        state, task = TaskStore.select_next_task(state)

        assert task["id"] == "task_2"
        assert statuses(state) == {
            "task_0": "failed",
            "task_1": "failed",
            "task_2": "in_progress",
        }
        assert TaskStore.get_task(state, "task_0")["error"] == CyclicDependencyError(["task_0", "task_1"]).message
        assert "cyclic dependency" in TaskStore.get_task(state, "task_0")["error"]
        assert "task_0 → task_1 → task_0" in TaskStore.get_task(state, "task_0")["error"]
        assert StateValidator.validate_task_state_integrity(state) == (True, [])

    def test_disjoint_cycles_all_failed(self):
        state = TaskStore.create_task_state([
            make_task("task_0", deps=["task_1"]),
            make_task("task_1", deps=["task_0"]),
            make_task("task_2", deps=["task_3"]),
            make_task("task_3", deps=["task_2"]),
        ])
        state = TaskStore.fail_cyclic_tasks(state)
        assert set(state["failed_tasks"]) == {"task_0", "task_1", "task_2", "task_3"}

    def test_only_pending_tasks_are_searched(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.COMPLETED.value),
            make_task("task_1", deps=["task_0"], status=TaskStatus.IN_PROGRESS.value),
            make_task("task_2", deps=["task_3"]),
            make_task("task_3", deps=["task_2"]),
        ])
        state = TaskStore.fail_cyclic_tasks(state)

        assert statuses(state) == {
            "task_0": "completed",
            "task_1": "in_progress",
            "task_2": "failed",
            "task_3": "failed",
        }
        assert StateValidator.validate_task_state_integrity(state) == (True, [])


class TestSelection:
    """Dependency-ordered selection with a single task in flight."""

    def test_selection_respects_dependencies(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.COMPLETED.value),
            make_task("task_1", deps=["task_0"]),
            make_task("task_2", deps=["task_1"]),
        ])

        state, task = TaskStore.select_next_task(state)

        assert task["id"] == "task_1"
        assert task["status"] == TaskStatus.IN_PROGRESS.value
        assert TaskStore.get_task(state, "task_2")["status"] == TaskStatus.PENDING.value

    def test_nothing_selected_while_a_task_is_in_progress(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.IN_PROGRESS.value),
            make_task("task_1"),
        ])
        _, task = TaskStore.select_next_task(state)
        assert task is None

    def test_dependency_on_failed_task_blocks_selection(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.FAILED.value),
            make_task("task_1", deps=["task_0"]),
        ])
        _, task = TaskStore.select_next_task(state)
        assert task is None

    def test_status_is_authoritative_over_id_lists(self):
        state = TaskStore.create_task_state([make_task("task_0"), make_task("task_1", deps=["task_0"])])
        state["completed_tasks"] = ["task_0"]  # drifted list, status still pending
        _, task = TaskStore.select_next_task(state)
        assert task["id"] == "task_0"

    def test_empty_state(self):
        assert TaskStore.select_next_task(None) == (None, None)

    def test_input_state_not_mutated(self):
        state = TaskStore.create_task_state([make_task("task_0")])
        TaskStore.select_next_task(state)
        assert state["tasks"][0]["status"] == TaskStatus.PENDING.value


class TestTransitions:
    """Terminal transitions touch only the targeted task."""

    def setup_method(self):
        self.state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.IN_PROGRESS.value),
            make_task("task_1", status=TaskStatus.IN_PROGRESS.value),
            make_task("task_2"),
        ])

    def test_record_result_changes_only_that_task(self):
        state = TaskStore.record_result(self.state, "task_0", {"data": [1, 2]})

        assert statuses(state) == {"task_0": "completed", "task_1": "in_progress", "task_2": "pending"}
        assert state["completed_tasks"] == ["task_0"]
        assert TaskStore.get_task(state, "task_0")["result"] == {"data": [1, 2]}
        assert TaskStore.get_task(state, "task_0")["context"]["phase"] == TaskPhase.COMPLETION.value

    def test_record_failure_changes_only_that_task(self):
        state = TaskStore.record_failure(self.state, "task_1", "boom")

        assert statuses(state) == {"task_0": "in_progress", "task_1": "failed", "task_2": "pending"}
        assert state["failed_tasks"] == ["task_1"]
        failed = TaskStore.get_task(state, "task_1")
        assert failed["error"] == "boom"
        assert failed["result"] is None
        assert failed["context"]["last_error"] == "boom"

    def test_update_unknown_task_raises(self):
        with pytest.raises(TaskNotFoundError):
            TaskStore.update_task(self.state, "task_9", {"status": "completed"})

    def test_fail_tasks_by_status(self):
        state = TaskStore.fail_tasks(self.state, (TaskStatus.PENDING.value,), "deadlock")
        assert statuses(state)["task_2"] == "failed"
        assert statuses(state)["task_0"] == "in_progress"

    def test_sets_stay_consistent(self):
        state = TaskStore.record_result(self.state, "task_0", {"data": 1})
        state = TaskStore.record_failure(state, "task_1", "err")
        state, _ = TaskStore.select_next_task(state)
        state = TaskStore.record_result(state, "task_2", {"data": 2})

        for task in state["tasks"]:
            assert (task["status"] == "completed") == (task["id"] in state["completed_tasks"])
            assert (task["status"] == "failed") == (task["id"] in state["failed_tasks"])


class TestIdContinuation:
    """New tasks continue numbering and keep their dependencies intact."""

    def test_extend_renumbers_and_rewrites_dependencies(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.COMPLETED.value),
            make_task("task_1", status=TaskStatus.FAILED.value),
        ])
        new_tasks = [make_task("task_0"), make_task("task_1", deps=["task_0"])]

        state = TaskStore.extend_with_new_tasks(state, new_tasks)

        assert [t["id"] for t in state["tasks"]] == ["task_0", "task_1", "task_2", "task_3"]
        assert TaskStore.get_task(state, "task_3")["dependencies"] == ["task_2"]
        assert state["max_task_number"] == 3

    def test_first_batch_scans_memory(self):
        memory = {"note": "previously discussed task_7 and task_3"}
        state = TaskStore.extend_with_new_tasks(None, [make_task("task_0")], memory)
        assert state["tasks"][0]["id"] == "task_8"

    def test_first_batch_without_memory_starts_at_zero(self):
        state = TaskStore.extend_with_new_tasks(None, [make_task("task_0"), make_task("task_1")])
        assert [t["id"] for t in state["tasks"]] == ["task_0", "task_1"]

    def test_compaction_keeps_high_water_mark(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.COMPLETED.value),
            make_task("task_1"),
            make_task("task_2", status=TaskStatus.FAILED.value),
        ])
        state = TaskStore.compact(state)

        assert [t["id"] for t in state["tasks"]] == ["task_1"]
        assert state["completed_tasks"] == [] and state["failed_tasks"] == []

        state = TaskStore.extend_with_new_tasks(state, [make_task("task_0")])
        assert state["tasks"][-1]["id"] == "task_3"

    def test_compaction_keeps_dependents_selectable(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.COMPLETED.value),
            make_task("task_1", status=TaskStatus.FAILED.value),
            make_task("task_2", deps=["task_0"]),
            make_task("task_3", deps=["task_0", "task_1"]),
        ])
        state = TaskStore.compact(state)

        assert TaskStore.get_task(state, "task_2")["dependencies"] == []
        assert TaskStore.get_task(state, "task_3")["dependencies"] == ["task_1"]

        state, task = TaskStore.select_next_task(state)
        assert task["id"] == "task_2"
        assert statuses(state) == {"task_2": "in_progress", "task_3": "pending"}


class TestCompletedContext:
    """Aggregation of completed results for context resolution."""

    def test_completed_context(self):
        state = TaskStore.create_task_state([
            make_task("task_0", description="Get user info", status=TaskStatus.COMPLETED.value,
                      result={"data": {"id": "u1", "email": "a@b.com"}}),
            make_task("task_1", description="List Employees!", status=TaskStatus.COMPLETED.value,
                      result={"data": [{"employeeId": "e1"}]}),
            make_task("task_2", description="pending one"),
        ])

        context = TaskStore.get_completed_tasks_context(state)

        assert [t["id"] for t in context["completed_tasks"]] == ["task_0", "task_1"]
        assert len(context["recent_results"]) == 2
        assert context["user_info"] == {"data": {"id": "u1", "email": "a@b.com"}}
        assert context["available_data"]["list_employees"] == [{"employeeId": "e1"}]

    def test_recent_results_are_bounded(self):
        tasks = [
            make_task(f"task_{i}", status=TaskStatus.COMPLETED.value, result={"data": i})
            for i in range(8)
        ]
        context = TaskStore.get_completed_tasks_context(TaskStore.create_task_state(tasks))
        assert [r["data"] for r in context["recent_results"]] == [3, 4, 5, 6, 7]

    def test_empty(self):
        context = TaskStore.get_completed_tasks_context(None)
        assert context == {"completed_tasks": [], "recent_results": [], "user_info": None, "available_data": {}}


class TestMaintenance:
    """Reset, progress, provenance and memory hygiene."""

    def test_reset_task_state(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.COMPLETED.value, result={"data": 1}),
            make_task("task_1", status=TaskStatus.FAILED.value, error="x"),
        ])
        state = TaskStore.reset_task_state(state, reset_failed=False)

        assert statuses(state) == {"task_0": "pending", "task_1": "failed"}
        assert TaskStore.get_task(state, "task_0")["result"] is None
        assert state["completed_tasks"] == []
        assert state["failed_tasks"] == ["task_1"]

    def test_progress(self):
        state = TaskStore.create_task_state([
            make_task("task_0", status=TaskStatus.COMPLETED.value),
            make_task("task_1"),
            make_task("task_2", status=TaskStatus.IN_PROGRESS.value),
        ])
        progress = TaskStore.get_task_progress(state)
        assert progress["total"] == 3
        assert progress["completed"] == 1
        assert progress["pending"] == 1
        assert progress["in_progress"] == 1
        assert progress["failed"] == 0

    def test_sources_and_confidence(self):
        state = TaskStore.create_task_state([make_task("task_0")])
        state = TaskStore.add_source(state, "task_0", {"url": "api://employees", "confidence": 0.9})

        task = TaskStore.get_task(state, "task_0")
        assert task["confidence"] == pytest.approx(0.36)
        assert TaskStore.needs_verification(task)

    def test_verified_citation_raises_confidence(self):
        state = TaskStore.create_task_state([make_task("task_0")])
        state = TaskStore.add_citation(state, "task_0", {"text": "row 3", "confidence": 0.5})
        before = TaskStore.get_task(state, "task_0")["confidence"]

        state = TaskStore.verify_citation(state, "task_0", 0)
        task = TaskStore.get_task(state, "task_0")

        assert task["citations"][0]["verification_status"] == VerificationStatus.VERIFIED.value
        assert task["confidence"] == pytest.approx(before + 0.1)

    def test_confidence_without_provenance(self):
        assert TaskStore.calculate_task_confidence(make_task("task_0")) == 0.5

    def test_clean_task_memory(self):
        memory = {"selected_operation": "x", "type_details": {}, "user_request": "keep me"}
        assert TaskStore.clean_task_memory(memory) == {"user_request": "keep me"}
