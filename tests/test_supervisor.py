"""
Tests for the supervisor step function: admission control, routing,
tick limit and the no-progress circuit breaker.
"""

from langchain_core.messages import AIMessage, HumanMessage

from conversation_orchestrator.config import OrchestratorConfig
from conversation_orchestrator.core.supervisor import (
    DEADLOCK_MESSAGE,
    DEADLOCK_TASK_ERROR,
    NO_TASKS_MESSAGE,
    TICK_LIMIT_MESSAGE,
    TIMEOUT_MESSAGE,
    Supervisor,
    clean_messages,
    latest_utterance,
)
from conversation_orchestrator.core.task_store import TaskStore
from conversation_orchestrator.models import Route, TaskStatus, TurnPhase
from conversation_orchestrator.utils.decision_journal import DecisionJournal
from conversation_orchestrator.utils.state_validator import StateValidator


class StubExtractor:
    """Returns a fixed task list (fresh copies) and counts calls."""

    def __init__(self, specs=None):
        self.specs = specs or [("do the thing", "read", [])]
        self.calls = 0

    def extract_tasks(self, utterance, memory=None):
        self.calls += 1
        return [
            TaskStore.create_task(f"task_{i}", desc, kind=kind, dependencies=deps)
            for i, (desc, kind, deps) in enumerate(self.specs)
        ]


class FailingExtractor:
    def extract_tasks(self, utterance, memory=None):
        raise RuntimeError("Error code: 429 - rate limit exceeded")


def turn_state(text, memory=None, tick_count=0, messages=None):
    return {
        "messages": list(messages or []) + [HumanMessage(content=text)],
        "memory": memory or {},
        "tick_count": tick_count,
        "auth_user": None,
        "next_route": None,
        "active_task_id": None,
        "turn_phase": TurnPhase.AWAIT_INPUT.value,
    }


def task(task_id, status=TaskStatus.PENDING.value, deps=None, kind="read"):
    return TaskStore.create_task(task_id, f"do {task_id}", kind=kind, dependencies=deps or [], status=status)


def memory_with(tasks, utterance):
    return {
        "task_state": TaskStore.create_task_state(tasks),
        "last_processed_message": utterance,
    }


def actions(state):
    return [d["action"] for d in DecisionJournal.entries(state["memory"])]


class TestMessageIntake:
    """Message cleanup and utterance detection."""

    def test_clean_messages_collapses_repeated_assistant_messages(self):
        messages = [
            HumanMessage(content="hi"),
            AIMessage(content="working"),
            AIMessage(content="working"),
            AIMessage(content=""),
            HumanMessage(content="hi"),
        ]
        cleaned = clean_messages(messages)
        assert [m.content for m in cleaned] == ["hi", "working", "hi"]

    def test_latest_utterance(self):
        messages = [HumanMessage(content="first"), AIMessage(content="ok"), HumanMessage(content=" second ")]
        assert latest_utterance(messages) == "second"
        assert latest_utterance([AIMessage(content="only me")]) is None


class TestAdmission:
    """When a new utterance turns into tasks."""

    def setup_method(self):
        self.extractor = StubExtractor()
        self.supervisor = Supervisor(task_extractor=self.extractor)

    def test_fresh_turn_creates_tasks(self):
        state = self.supervisor.step(turn_state("list employees"))

        assert state["next_route"] == Route.INITIAL_PLAN.value
        assert state["tick_count"] == 1
        assert state["turn_phase"] == TurnPhase.ADMITTING.value
        assert [t["id"] for t in state["memory"]["task_state"]["tasks"]] == ["task_0"]
        assert state["memory"]["last_processed_message"] == "list employees"
        assert state["memory"]["user_request"] == "list employees"
        assert actions(state) == ["tasks_created"]

    def test_no_admission_while_tasks_are_active(self):
        memory = memory_with([task("task_0")], "older request")
        state = self.supervisor.step(turn_state("new request", memory=memory))

        assert self.extractor.calls == 0
        assert state["next_route"] == Route.READ_PIPELINE.value
        assert len(state["memory"]["task_state"]["tasks"]) == 1

    def test_internal_tick_does_not_recreate(self):
        memory = memory_with([task("task_0", status=TaskStatus.COMPLETED.value)], "list employees")
        memory["last_task_creation_message"] = "list employees"

        state = self.supervisor.step(turn_state("list employees", memory=memory, tick_count=2))

        assert self.extractor.calls == 0
        assert state["next_route"] == Route.END.value
        assert state["turn_phase"] == TurnPhase.TERMINATED.value
        assert "last_task_creation_message" not in state["memory"]

    def test_different_utterance_mid_turn_is_admitted(self):
        memory = memory_with([task("task_0", status=TaskStatus.COMPLETED.value)], "list employees")
        state = self.supervisor.step(turn_state("list contracts", memory=memory, tick_count=2))

        assert self.extractor.calls == 1
        assert state["memory"]["task_state"]["tasks"][-1]["id"] == "task_1"

    def test_initial_plan_lists_pending_tasks(self):
        supervisor = Supervisor(task_extractor=StubExtractor([
            ("find the employee", "read", []),
            ("update the salary", "write", ["task_0"]),
        ]))
        state = supervisor.initial_plan(supervisor.step(turn_state("update salary of employee x")))

        plan = state["messages"][-1].content
        assert plan.startswith("I'll handle this in 2 steps:")
        assert "1. find the employee" in plan
        assert "2. update the salary" in plan
        assert state["next_route"] == Route.SUPERVISOR.value

    def test_initial_plan_single_task(self):
        state = self.supervisor.initial_plan(self.supervisor.step(turn_state("list employees")))
        assert state["messages"][-1].content == "I'll take care of this: do the thing"


class TestRouting:
    """Selection and routing to pipelines."""

    def setup_method(self):
        self.supervisor = Supervisor(task_extractor=StubExtractor())

    def test_routes_read_task(self):
        memory = memory_with([task("task_0")], "list employees")
        state = self.supervisor.step(turn_state("list employees", memory=memory, tick_count=1))

        assert state["next_route"] == Route.READ_PIPELINE.value
        assert state["active_task_id"] == "task_0"
        assert state["tick_count"] == 2
        assert state["turn_phase"] == TurnPhase.ROUTED.value
        assert TaskStore.get_task(state["memory"]["task_state"], "task_0")["status"] == TaskStatus.IN_PROGRESS.value
        assert actions(state) == ["route_to_read_pipeline"]

    def test_routes_write_task(self):
        memory = memory_with([task("task_0", kind="write")], "raise salary")
        state = self.supervisor.step(turn_state("raise salary", memory=memory, tick_count=1))
        assert state["next_route"] == Route.WRITE_PIPELINE.value

    def test_routes_in_dependency_order(self):
        memory = memory_with([
            task("task_0", status=TaskStatus.COMPLETED.value),
            task("task_1", deps=["task_0"]),
            task("task_2", deps=["task_1"]),
        ], "x")
        state = self.supervisor.step(turn_state("x", memory=memory, tick_count=1))
        assert state["active_task_id"] == "task_1"

    def test_all_terminal_ends_without_message(self):
        memory = memory_with([
            task("task_0", status=TaskStatus.COMPLETED.value),
            task("task_1", status=TaskStatus.FAILED.value),
        ], "x")
        state = self.supervisor.step(turn_state("x", memory=memory, tick_count=3))

        assert state["next_route"] == Route.END.value
        assert not isinstance(state["messages"][-1], AIMessage)

    def test_no_tasks_asks_for_details(self):
        state = self.supervisor.step(turn_state("hmm", memory={"last_processed_message": "hmm"}, tick_count=1))
        assert state["next_route"] == Route.END.value
        assert state["messages"][-1].content == NO_TASKS_MESSAGE

    def test_cyclic_tasks_fail_and_turn_ends(self):
        memory = memory_with([task("task_0", deps=["task_1"]), task("task_1", deps=["task_0"])], "x")
        state = self.supervisor.step(turn_state("x", memory=memory, tick_count=1))

        assert state["next_route"] == Route.END.value
        task_state = state["memory"]["task_state"]
        assert [t["status"] for t in task_state["tasks"]] == ["failed", "failed"]
        assert StateValidator.validate_task_state_integrity(task_state)[0]

    def test_route_function(self):
        assert Supervisor.route({"next_route": "read_pipeline"}) == "read_pipeline"
        assert Supervisor.route({}) == Route.END.value


class TestTurnGuards:
    """Tick limit and no-progress circuit breaker."""

    def test_tick_limit_ends_turn_without_failing_tasks(self):
        supervisor = Supervisor(task_extractor=StubExtractor(), config=OrchestratorConfig(max_ticks=25))
        memory = memory_with([task("task_0")], "x")

        state = supervisor.step(turn_state("x", memory=memory, tick_count=25))

        assert state["next_route"] == Route.END.value
        assert state["messages"][-1].content == TICK_LIMIT_MESSAGE
        assert TaskStore.get_task(state["memory"]["task_state"], "task_0")["status"] == TaskStatus.PENDING.value

    def test_deadlock_breaker_fails_stuck_tasks(self):
        supervisor = Supervisor(task_extractor=StubExtractor())
        memory = memory_with([
            task("task_0", status=TaskStatus.FAILED.value),
            task("task_1", deps=["task_0"]),
        ], "x")
        state = turn_state("x", memory=memory, tick_count=1)

        routes = []
        while True:
            state = supervisor.step(state)
            routes.append(state["next_route"])
            if state["next_route"] == Route.END.value:
                break
            assert len(routes) < 25

        assert routes == ["supervisor", "supervisor", "supervisor", "end"]
        assert state["turn_phase"] == TurnPhase.TERMINATED.value
        assert state["messages"][-1].content == DEADLOCK_MESSAGE
        stuck = TaskStore.get_task(state["memory"]["task_state"], "task_1")
        assert stuck["status"] == TaskStatus.FAILED.value
        assert stuck["error"] == DEADLOCK_TASK_ERROR
        assert "no_task_retry_count" not in state["memory"]
        assert actions(state)[-1] == "deadlock_detected"

    def test_stuck_in_progress_task_times_out(self):
        supervisor = Supervisor(task_extractor=StubExtractor(), config=OrchestratorConfig(max_no_task_retries=1))
        memory = memory_with([task("task_0", status=TaskStatus.IN_PROGRESS.value)], "x")

        state = supervisor.step(turn_state("x", memory=memory, tick_count=1))
        assert state["memory"]["no_task_retry_count"] == 1
        state = supervisor.step(state)

        assert state["messages"][-1].content == TIMEOUT_MESSAGE
        assert TaskStore.get_task(state["memory"]["task_state"], "task_0")["status"] == TaskStatus.FAILED.value

    def test_selection_clears_retry_count(self):
        supervisor = Supervisor(task_extractor=StubExtractor())
        memory = memory_with([task("task_0")], "x")
        memory["no_task_retry_count"] = 2

        state = supervisor.step(turn_state("x", memory=memory, tick_count=1))

        assert state["next_route"] == Route.READ_PIPELINE.value
        assert "no_task_retry_count" not in state["memory"]

    def test_turn_always_terminates_within_tick_limit(self):
        supervisor = Supervisor(task_extractor=StubExtractor())
        memory = memory_with([
            task("task_0", status=TaskStatus.FAILED.value),
            task("task_1", deps=["task_0"]),
            task("task_2", deps=["task_1"]),
        ], "x")
        state = turn_state("x", memory=memory, tick_count=0)

        for _ in range(25):
            state = supervisor.step(state)
            if state["next_route"] == Route.END.value:
                break

        assert state["turn_phase"] == TurnPhase.TERMINATED.value
        assert state["tick_count"] <= 25
        assert TaskStore.all_tasks_terminal(state["memory"]["task_state"])

    def test_unexpected_error_ends_turn_with_message(self):
        supervisor = Supervisor(task_extractor=FailingExtractor())
        state = supervisor.step(turn_state("list employees"))

        assert state["next_route"] == Route.END.value
        assert state["messages"][-1].content == "We are out of quota. Please try again later."


class TestReAsk:
    """Same utterance submitted again in a later turn."""

    def test_same_utterance_creates_disjoint_tasks(self):
        extractor = StubExtractor()
        supervisor = Supervisor(task_extractor=extractor)

        first = supervisor.step(turn_state("list employees"))
        first_ids = [t["id"] for t in first["memory"]["task_state"]["tasks"]]
        task_state = TaskStore.record_failure(first["memory"]["task_state"], "task_0", "done with it")
        memory = {**first["memory"], "task_state": task_state}

        second = supervisor.step(turn_state("list employees", memory=memory, messages=first["messages"]))
        ids = [t["id"] for t in second["memory"]["task_state"]["tasks"]]

        assert extractor.calls == 2
        assert second["next_route"] == Route.INITIAL_PLAN.value
        assert first_ids == ["task_0"]
        assert ids == ["task_0", "task_1"]
