#!/usr/bin/env python3
"""
End-to-end tests: full turns through the compiled LangGraph workflow.

No LLM is configured, so tasks come from the heuristic splitter and
operations from templates supplied by the discovery hook.
"""

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from conversation_orchestrator import ConversationOrchestrator, OrchestratorConfig
from conversation_orchestrator.config import LLMConfig
from conversation_orchestrator.core.supervisor import DEADLOCK_MESSAGE, TICK_LIMIT_MESSAGE
from conversation_orchestrator.core.task_store import TaskStore
from conversation_orchestrator.models import TaskStatus, TurnPhase


@pytest.fixture(autouse=True)
def no_api_keys(monkeypatch):
    for key in ("LLM_API_KEY", "ANTHROPIC_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(key, raising=False)


def discover(task, memory):
    return {"operation_name": task["kind"], "template": f"{task['kind']}_operation()"}


class Executor:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []

    def __call__(self, operation, task):
        self.calls.append(task["description"])
        if self.fail_on and self.fail_on in task["description"]:
            raise RuntimeError("backend rejected the request")
        return [{"employeeId": "e1", "name": "Ann"}]


def make_orchestrator(executor=None, write_executor=None, **config_fields):
    config = OrchestratorConfig(llm=LLMConfig(), use_llm_task_extraction=False, **config_fields)
    return ConversationOrchestrator(
        config=config,
        executor=executor or Executor(),
        write_executor=write_executor,
        discover_operation=discover,
    )


def tasks_of(state):
    return state["memory"]["task_state"]["tasks"]


class TestConversationTurns:
    """Full turns through supervisor, plan and pipelines."""

    def test_single_read_task(self):
        executor = Executor()
        orchestrator = make_orchestrator(executor)
        assert orchestrator.llm is None

        state = orchestrator.run_turn("list employees", thread_id="t1", auth_user={"companyId": "co-1"})

        assert executor.calls == ["list employees"]
        assert [t["status"] for t in tasks_of(state)] == [TaskStatus.COMPLETED.value]
        assert state["turn_phase"] == TurnPhase.TERMINATED.value
        assert state["tick_count"] == 2

        contents = [m.content for m in state["messages"]]
        assert contents[0] == "list employees"
        assert contents[1] == "I'll take care of this: list employees"
        assert contents[2].startswith("Completed: list employees")
        assert len(contents) == 3

    def test_read_then_write(self):
        reads, writes = Executor(), Executor()
        orchestrator = make_orchestrator(reads, writes)

        state = orchestrator.run_turn("get all contracts and then update the status of the first one", thread_id="t2")

        assert reads.calls == ["get all contracts"]
        assert writes.calls == ["update the status of the first one"]
        assert [t["status"] for t in tasks_of(state)] == ["completed", "completed"]
        assert state["messages"][1].content.startswith("I'll handle this in 2 steps:")

    def test_same_question_twice_creates_new_tasks(self):
        executor = Executor()
        orchestrator = make_orchestrator(executor)

        orchestrator.run_turn("list employees", thread_id="t3")
        state = orchestrator.run_turn("list employees", thread_id="t3")

        assert [t["id"] for t in tasks_of(state)] == ["task_0", "task_1"]
        assert all(t["status"] == TaskStatus.COMPLETED.value for t in tasks_of(state))
        assert len(executor.calls) == 2
        assert sum(isinstance(m, HumanMessage) for m in state["messages"]) == 2

    def test_failed_prerequisite_ends_in_deadlock_break(self):
        executor = Executor(fail_on="contracts")
        orchestrator = make_orchestrator(executor)

        state = orchestrator.run_turn("get all contracts and then list the employees", thread_id="t4")

        statuses = [t["status"] for t in tasks_of(state)]
        assert statuses == ["failed", "failed"]
        assert executor.calls == ["get all contracts"]
        assert state["turn_phase"] == TurnPhase.TERMINATED.value
        assert state["messages"][-1].content == DEADLOCK_MESSAGE
        assert state["tick_count"] <= 25
        assert any("couldn't complete" in m.content for m in state["messages"] if isinstance(m, AIMessage))

    def test_tick_limit_then_next_turn_continues(self):
        executor = Executor()
        orchestrator = make_orchestrator(executor, max_ticks=2)

        request = "get the contracts and then list the employees"
        first = orchestrator.run_turn(request, thread_id="t5")
        assert first["messages"][-1].content == TICK_LIMIT_MESSAGE
        assert [t["status"] for t in tasks_of(first)] == ["completed", "pending"]

        # Pending work blocks admission, so the repeated request resumes it
        second = orchestrator.run_turn(request, thread_id="t5")
        assert [t["status"] for t in tasks_of(second)] == ["completed", "completed"]
        assert len(tasks_of(second)) == 2

    def test_state_is_checkpointed_per_thread(self):
        orchestrator = make_orchestrator()
        orchestrator.run_turn("list employees", thread_id="a")

        assert orchestrator.get_state("b") is None
        assert len(tasks_of(orchestrator.get_state("a"))) == 1

    def test_without_executor_task_fails_with_message(self):
        config = OrchestratorConfig(llm=LLMConfig(), use_llm_task_extraction=False)
        orchestrator = ConversationOrchestrator(config=config, discover_operation=discover)

        state = orchestrator.run_turn("list employees", thread_id="t6")
        task = tasks_of(state)[0]

        assert task["status"] == TaskStatus.FAILED.value
        assert "no operation executor configured" in task["error"]
        assert state["turn_phase"] == TurnPhase.TERMINATED.value
        assert "couldn't complete" in state["messages"][-1].content


class TestOrchestratorHelpers:
    """Summary, journal report and compaction."""

    def setup_method(self):
        self.orchestrator = make_orchestrator()
        self.state = self.orchestrator.run_turn("list employees", thread_id="h1")

    def test_results_summary(self):
        summary = self.orchestrator.get_results_summary(self.state)

        assert summary["user_request"] == "list employees"
        assert summary["progress"]["completed"] == 1
        assert summary["tasks"][0]["id"] == "task_0"
        assert summary["decisions"] == 3

    def test_decision_report(self):
        report = self.orchestrator.get_decision_report("h1")
        assert "tasks_created" in report
        assert "route_to_read_pipeline" in report
        assert "task_completed" in report

    def test_compaction_keeps_numbering(self):
        compacted = self.orchestrator.compact_history("h1")
        assert tasks_of(compacted) == []

        state = self.orchestrator.run_turn("list contracts", thread_id="h1")
        assert [t["id"] for t in tasks_of(state)] == ["task_1"]

    def test_compact_unknown_thread(self):
        assert self.orchestrator.compact_history("nope") is None

    def test_task_progress_after_turn(self):
        progress = TaskStore.get_task_progress(self.state["memory"]["task_state"])
        assert progress["total"] == 1
        assert progress["completed"] == 1
