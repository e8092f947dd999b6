"""
Task module - Task and task graph structure definitions
"""

from typing import TypedDict, Optional, List, Dict, Any


class Source(TypedDict, total=False):
    """Provenance record for data a task relied on"""
    type: str
    name: str
    confidence: float
    timestamp: str
    url: Optional[str]


class Citation(TypedDict, total=False):
    text: str
    source: str
    confidence: float
    verification_status: str


class DataRequirement(TypedDict, total=False):
    type: str
    description: str
    required: bool
    satisfied: bool


class TaskContext(TypedDict, total=False):
    """Working context carried on a task while it is processed"""
    data_requirements: List[DataRequirement]
    phase: str
    context: Dict[str, Any]
    retry_count: int
    last_error: Optional[str]


class OperationDetails(TypedDict, total=False):
    """Declared shape of the operation a task runs against the external API"""
    operation_name: str
    raw_type_details: str
    template: str
    required_parameters: List[str]
    optional_parameters: List[str]
    parameter_types: Dict[str, str]
    input_type_name: str
    output_type_name: str
    generated_operation: str


class Task(TypedDict, total=False):
    """Individual task structure with lifecycle, outcome and provenance data"""
    id: str
    description: str
    kind: str
    target_pipeline: str
    dependencies: List[str]
    status: str
    result: Optional[Dict[str, Any]]
    error: Optional[str]
    confidence: float
    verification_status: str
    sources: List[Source]
    citations: List[Citation]
    context: TaskContext
    operation_details: OperationDetails
    resolved_context: Optional[Dict[str, Any]]
    context_version: Optional[str]
    created_at: str
    updated_at: str


class TaskState(TypedDict):
    """
    Task graph for one conversation.

    completed_tasks and failed_tasks are lists of ids treated as sets so the
    structure stays JSON-serializable in checkpoints. max_task_number is the
    highest task number ever issued, so ids are not reused after compaction.
    """
    tasks: List[Task]
    completed_tasks: List[str]
    failed_tasks: List[str]
    execution_start_time: str
    max_task_number: int
