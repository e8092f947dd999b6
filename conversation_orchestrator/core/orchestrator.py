"""
Orchestrator module - ConversationOrchestrator, the entry point for one conversation
"""

from typing import Any, Dict, List, Optional

from langgraph.checkpoint.memory import MemorySaver
from langchain_core.messages import HumanMessage
from langchain_core.runnables.config import RunnableConfig

from conversation_orchestrator.config import OrchestratorConfig
from conversation_orchestrator.core.context_resolution import ContextResolutionEngine
from conversation_orchestrator.core.identity import IdentityProvider, IdentityResolver
from conversation_orchestrator.core.pipeline import (
    Executor,
    OperationDiscovery,
    OperationGenerator,
    PipelineRunner,
)
from conversation_orchestrator.core.supervisor import Supervisor
from conversation_orchestrator.core.task_extraction import TaskExtractor
from conversation_orchestrator.core.task_store import TaskStore
from conversation_orchestrator.models import OrchestratorState, Route, TaskKind, TurnPhase
from conversation_orchestrator.utils.decision_journal import DecisionJournal
from conversation_orchestrator.utils.exceptions import (
    InvalidParameterError,
    MissingDependencyError,
    PipelineExecutionError,
)
from conversation_orchestrator.utils.logger import get_logger
from .workflow import WorkflowBuilder

logger = get_logger(__name__)


def _unsupported_executor(operation: str, task) -> Any:
    raise PipelineExecutionError(
        operation=operation,
        message="no operation executor configured",
        task_id=task["id"],
    )


class ConversationOrchestrator:
    """
    Runs user turns through the supervisor/pipeline graph.

    State for each conversation is checkpointed per ``thread_id`` so task
    graphs, context history and the decision journal carry across turns.

    Example:
        >>> orchestrator = ConversationOrchestrator(
        ...     config=OrchestratorConfig.from_env(),
        ...     executor=run_graphql,
        ... )
        >>> state = orchestrator.run_turn("list my contracts", thread_id="chat-1",
        ...                               auth_user={"id": "u1", "companyId": "c1"})
        >>> state["messages"][-1].content
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        llm: Any = None,
        executor: Optional[Executor] = None,
        write_executor: Optional[Executor] = None,
        discover_operation: Optional[OperationDiscovery] = None,
        identity_providers: Optional[List[IdentityProvider]] = None,
        checkpointer: Any = None
    ):
        """
        Args:
            config: OrchestratorConfig (defaults are used when omitted)
            llm: Chat model; built from config.llm when omitted and an API key is available
            executor: Callable (operation, task) -> result for read operations
            write_executor: Executor for write operations (defaults to ``executor``)
            discover_operation: Optional hook (task, memory) -> operation_details
            identity_providers: Identity tiers tried in order
            checkpointer: LangGraph checkpointer (defaults to MemorySaver)
        """
        self.config = config or OrchestratorConfig()
        logger.debug(f"Configuration: {self.config.to_dict()}")

        self.llm = llm if llm is not None else self._initialize_llm()

        self.journal = DecisionJournal(self.config.decision_journal_limit)
        self.context_engine = ContextResolutionEngine(
            identity_resolver=IdentityResolver(identity_providers),
            history_limit=self.config.context_history_limit,
            recent_results_limit=self.config.recent_results_limit,
        )
        generator = OperationGenerator(
            llm=self.llm,
            provider=self.config.llm.provider,
            model=self.config.llm.model_name,
        )
        read_executor = executor or _unsupported_executor

        self.supervisor = Supervisor(
            task_extractor=TaskExtractor(llm=self.llm, use_llm=self.config.use_llm_task_extraction),
            config=self.config,
            journal=self.journal,
        )
        self.read_pipeline = PipelineRunner(
            TaskKind.READ.value, read_executor, generator, self.context_engine, discover_operation, self.journal
        )
        self.write_pipeline = PipelineRunner(
            TaskKind.WRITE.value, write_executor or read_executor, generator, self.context_engine,
            discover_operation, self.journal
        )

        self.workflow = WorkflowBuilder(self.supervisor, self.read_pipeline, self.write_pipeline).build()
        self.checkpointer = checkpointer or MemorySaver()
        self.app = self.workflow.compile(checkpointer=self.checkpointer)

        logger.info(
            f"ConversationOrchestrator ready (llm={'yes' if self.llm is not None else 'no'}, "
            f"max_ticks={self.config.max_ticks})"
        )

    def _initialize_llm(self):
        """
        Initialize LLM based on provider configuration.

        Returns:
            Initialized LLM instance, or None when no API key is configured
        """
        llm_config = self.config.llm
        if not llm_config.api_key:
            logger.warning(
                f"No API key for {llm_config.provider} ({llm_config.api_key_env_var}); "
                "running with heuristic task extraction and operation templates only"
            )
            return None

        provider = llm_config.provider.lower()
        kwargs: Dict[str, Any] = {
            "model": llm_config.model_name,
            "temperature": llm_config.temperature,
            "api_key": llm_config.api_key,
            "timeout": llm_config.timeout,
        }
        if llm_config.max_tokens:
            kwargs["max_tokens"] = llm_config.max_tokens
        kwargs.update(llm_config.extra_params)

        try:
            if provider == "anthropic":
                from langchain_anthropic import ChatAnthropic
                return ChatAnthropic(**kwargs)

            elif provider == "openai":
                from langchain_openai import ChatOpenAI
                return ChatOpenAI(**kwargs)

            else:
                raise InvalidParameterError(
                    parameter_name="provider",
                    message=f"Unsupported LLM provider: {provider}. Supported providers: anthropic, openai"
                )
        except ImportError as e:
            raise MissingDependencyError(
                package_name=f"langchain-{provider}",
                install_command=f"pip install langchain-{provider}",
                purpose=f"{provider} LLM provider"
            ) from e

    def _run_config(self, thread_id: str) -> RunnableConfig:
        return {
            "configurable": {"thread_id": thread_id},
            "recursion_limit": self.config.recursion_limit,
        }

    def run_turn(
        self,
        message: str,
        thread_id: str = "default",
        auth_user: Optional[Dict[str, Any]] = None
    ) -> OrchestratorState:
        """
        Process one user message.

        The tick counter starts at 0 for every turn; the supervisor uses it to
        tell the new utterance apart from its own internal ticks.

        Args:
            message: User utterance
            thread_id: Conversation identifier (for checkpointing)
            auth_user: Authenticated identity payload for this turn

        Returns:
            Final state of the turn
        """
        previous = self.get_state(thread_id) or {}
        state: OrchestratorState = {
            "messages": list(previous.get("messages") or []) + [HumanMessage(content=message)],
            "memory": previous.get("memory") or {},
            "tick_count": 0,
            "auth_user": auth_user if auth_user is not None else previous.get("auth_user"),
            "next_route": None,
            "active_task_id": None,
            "turn_phase": TurnPhase.AWAIT_INPUT.value,
        }

        logger.info(f"[ORCHESTRATOR] Turn on thread {thread_id}: {message[:100]}")
        final_state = self.app.invoke(state, self._run_config(thread_id))

        task_state = (final_state.get("memory") or {}).get("task_state")
        logger.info(
            f"[ORCHESTRATOR] Turn finished after {final_state.get('tick_count', 0)} tick(s): "
            f"{TaskStore.get_task_progress(task_state)}"
        )
        return final_state

    def get_state(self, thread_id: str = "default") -> Optional[OrchestratorState]:
        """Last checkpointed state of a conversation, or None if it has none."""
        snapshot = self.app.get_state({"configurable": {"thread_id": thread_id}})
        values = getattr(snapshot, "values", None)
        return dict(values) if values else None

    def compact_history(self, thread_id: str = "default") -> Optional[OrchestratorState]:
        """
        Drop completed and failed tasks from a conversation's task graph.

        New task ids keep counting from the highest id ever used.
        """
        state = self.get_state(thread_id)
        if not state:
            return None
        memory = dict(state.get("memory") or {})
        if not memory.get("task_state"):
            return state

        memory["task_state"] = TaskStore.compact(memory["task_state"])
        self.app.update_state(
            {"configurable": {"thread_id": thread_id}}, {"memory": memory}, as_node=Route.SUPERVISOR.value
        )
        logger.info(f"[ORCHESTRATOR] Compacted task state for thread {thread_id}")
        return self.get_state(thread_id)

    def get_results_summary(self, state: OrchestratorState) -> dict:
        """Generate a summary of all results."""
        memory = state.get("memory") or {}
        task_state = memory.get("task_state")
        tasks = task_state["tasks"] if task_state else []
        return {
            "user_request": memory.get("user_request"),
            "progress": TaskStore.get_task_progress(task_state),
            "ticks_used": state.get("tick_count", 0),
            "tasks": [
                {
                    "id": t["id"],
                    "description": t["description"],
                    "kind": t["kind"],
                    "status": t["status"],
                    "result": t.get("result"),
                    "error": t.get("error"),
                }
                for t in tasks
            ],
            "decisions": len(DecisionJournal.entries(memory)),
        }

    def get_decision_report(self, thread_id: str = "default", last: int = 50) -> str:
        state = self.get_state(thread_id) or {}
        return DecisionJournal.get_report(state.get("memory"), last=last)
