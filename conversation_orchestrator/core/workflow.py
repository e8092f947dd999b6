"""
Workflow module - LangGraph workflow construction
"""

from langgraph.graph import StateGraph, END

from conversation_orchestrator.models import OrchestratorState, Route
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowBuilder:
    """
    Builds the LangGraph workflow for one conversation turn.

    The supervisor is the hub: every other node returns to it, and it
    decides through ``next_route`` where the turn goes next.
    """

    def __init__(self, supervisor, read_pipeline, write_pipeline):
        """
        Args:
            supervisor: Supervisor instance (step, initial_plan, route)
            read_pipeline: PipelineRunner for read tasks
            write_pipeline: PipelineRunner for write tasks
        """
        self.supervisor = supervisor
        self.read_pipeline = read_pipeline
        self.write_pipeline = write_pipeline

    def build(self) -> StateGraph:
        """
        Build the workflow graph.

        Workflow:
        1. supervisor → admission, completion check, task selection
        2. initial_plan → announce the tasks created for a request
        3. read_pipeline / write_pipeline → process the selected task
        4. Every node returns to supervisor until it routes to END

        Returns:
            Configured StateGraph instance
        """
        workflow = StateGraph(OrchestratorState)

        workflow.add_node(Route.SUPERVISOR.value, self.supervisor.step)
        workflow.add_node(Route.INITIAL_PLAN.value, self.supervisor.initial_plan)
        workflow.add_node(Route.READ_PIPELINE.value, self.read_pipeline.run)
        workflow.add_node(Route.WRITE_PIPELINE.value, self.write_pipeline.run)

        workflow.set_entry_point(Route.SUPERVISOR.value)

        workflow.add_conditional_edges(
            Route.SUPERVISOR.value,
            self.supervisor.route,
            {
                Route.SUPERVISOR.value: Route.SUPERVISOR.value,
                Route.INITIAL_PLAN.value: Route.INITIAL_PLAN.value,
                Route.READ_PIPELINE.value: Route.READ_PIPELINE.value,
                Route.WRITE_PIPELINE.value: Route.WRITE_PIPELINE.value,
                Route.END.value: END,
            }
        )

        workflow.add_edge(Route.INITIAL_PLAN.value, Route.SUPERVISOR.value)
        workflow.add_edge(Route.READ_PIPELINE.value, Route.SUPERVISOR.value)
        workflow.add_edge(Route.WRITE_PIPELINE.value, Route.SUPERVISOR.value)

        logger.debug("[WORKFLOW] Graph built: supervisor, initial_plan, read_pipeline, write_pipeline")
        return workflow
