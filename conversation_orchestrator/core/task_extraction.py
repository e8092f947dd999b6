"""
Task extraction - split a user utterance into tasks.

The LLM is asked for a JSON array of tasks which is validated with pydantic.
Anything unusable (no LLM, call failure, malformed JSON, schema violations,
an empty list) falls through to a deterministic conjunction splitter, so
``extract_tasks`` always returns at least one task and never raises.
"""

import json
import re
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, Field, TypeAdapter, field_validator

from conversation_orchestrator.core.task_store import TaskStore
from conversation_orchestrator.models import Task, TaskKind, PipelineTarget
from conversation_orchestrator.utils.exceptions import SchemaValidationError
from conversation_orchestrator.utils.prompt_builder import PromptBuilder
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

EMAIL = r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"
EMPLOYEE_EMAIL_PATTERN = re.compile(
    rf"(.+?)\s+(?:of\s+)?employee\s+with\s+email\s+({EMAIL})", re.IGNORECASE
)
CONJUNCTION_PATTERN = re.compile(r"\b(and|then|after|next|before|while|when)\b", re.IGNORECASE)
CONJUNCTIONS = {"and", "then", "after", "next", "before", "while", "when"}
WRITE_VERB_PATTERN = re.compile(
    r"\b(create|update|delete|modify|change|set|add|remove|edit|rename)\b", re.IGNORECASE
)
TASK_DEPENDENCY_PATTERN = re.compile(r"^task_\d+$")

SHORT_REQUEST_LENGTH = 20


class ExtractedTask(BaseModel):
    """One task as returned by the extraction model."""

    description: str = Field(min_length=1)
    type: TaskKind
    target_pipeline: Optional[PipelineTarget] = None
    dependencies: List[str] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        # query/mutation are accepted as read/write
        aliases = {"query": "read", "mutation": "write"}
        if isinstance(value, str):
            return aliases.get(value.strip().lower(), value.strip().lower())
        return value

    @field_validator("description")
    @classmethod
    def _strip_description(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("description cannot be blank")
        return value

    @field_validator("dependencies")
    @classmethod
    def _check_dependency_ids(cls, value: List[str]) -> List[str]:
        for dep in value:
            if not TASK_DEPENDENCY_PATTERN.match(dep):
                raise ValueError(f"invalid dependency id '{dep}'")
        return value


_EXTRACTED_TASKS = TypeAdapter(List[ExtractedTask])


def parse_task_list(content: str) -> List[ExtractedTask]:
    """
    Parse and validate an LLM task list.

    The array is taken from the first ``[`` to the last ``]`` so surrounding
    prose and code fences are ignored.

    Raises:
        ValueError: If no JSON array can be found or decoded
        SchemaValidationError: If the array doesn't match the task schema
    """
    if not content or not isinstance(content, str):
        raise ValueError(f"Invalid content type: {type(content)}, expected string")

    start = content.find("[")
    end = content.rfind("]")
    if start == -1 or end <= start:
        raise ValueError("No JSON array found in response")

    try:
        raw = json.loads(content[start:end + 1])
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse task list: {e}") from e

    try:
        return _EXTRACTED_TASKS.validate_python(raw)
    except Exception as e:
        errors = e.errors() if hasattr(e, "errors") else [str(e)]
        raise SchemaValidationError("task_list", errors, data_sample=raw) from e


def _task(index: int, description: str, kind: str, dependencies: List[str], confidence: float) -> Task:
    return TaskStore.create_task(
        f"task_{index}",
        description,
        kind=kind,
        dependencies=dependencies,
        confidence=confidence,
    )


def basic_extract_tasks(user_request: str) -> List[Task]:
    """
    Deterministic task splitter used when the LLM path is unavailable.

    1. "<action> [of] employee with email <addr>" becomes a lookup task plus
       the action on the found employee.
    2. Short requests, or requests without " and ", become one read task.
    3. Otherwise the request is split on sequencing conjunctions; each part
       depends on the previous one and is a write when it starts a mutation.
    """
    text = (user_request or "").strip()
    normalized = text.lower()

    match = EMPLOYEE_EMAIL_PATTERN.search(text)
    if match:
        action = match.group(1).strip()
        email = match.group(2)
        kind = TaskKind.WRITE.value if WRITE_VERB_PATTERN.search(action) else TaskKind.READ.value
        return [
            _task(0, f"find employee with email {email}", TaskKind.READ.value, [], 0.6),
            _task(1, f"{action} for the employee", kind, ["task_0"], 0.6),
        ]

    if len(normalized) < SHORT_REQUEST_LENGTH or " and " not in normalized:
        return [_task(0, text, TaskKind.READ.value, [], 0.5)]

    tasks: List[Task] = []
    for part in CONJUNCTION_PATTERN.split(text):
        part = part.strip()
        if not part or part.lower() in CONJUNCTIONS:
            continue
        index = len(tasks)
        kind = TaskKind.WRITE.value if WRITE_VERB_PATTERN.search(part) else TaskKind.READ.value
        dependencies = [f"task_{index - 1}"] if index > 0 else []
        tasks.append(_task(index, part, kind, dependencies, 0.3))

    if not tasks:
        return [_task(0, text, TaskKind.READ.value, [], 0.3)]
    return tasks


class TaskExtractor:
    """
    Turns an utterance into locally numbered tasks (``task_0``, ``task_1``, ...).

    TaskStore.extend_with_new_tasks renumbers them into the conversation.
    """

    def __init__(self, llm: Any = None, use_llm: bool = True):
        self.llm = llm
        self.use_llm = use_llm

    def extract_tasks(self, user_request: str, memory: Optional[Dict[str, Any]] = None) -> List[Task]:
        """
        Extract tasks from a user request. Never raises.

        Args:
            user_request: Latest user utterance
            memory: Conversation memory (completed tasks are shown to the LLM)

        Returns:
            Non-empty list of pending tasks with local ids
        """
        if self.llm is not None and self.use_llm:
            try:
                tasks = self._extract_with_llm(user_request, memory or {})
                if tasks:
                    logger.info(f"[EXTRACT] LLM extracted {len(tasks)} task(s)")
                    return tasks
                logger.warning("[EXTRACT] LLM returned no tasks, using heuristic extraction")
            except Exception as e:
                logger.warning(f"[EXTRACT] LLM extraction failed, using heuristic extraction: {e}")

        tasks = basic_extract_tasks(user_request)
        logger.info(f"[EXTRACT] Heuristic extraction produced {len(tasks)} task(s)")
        return tasks

    def _extract_with_llm(self, user_request: str, memory: Dict[str, Any]) -> List[Task]:
        task_state = memory.get("task_state")
        completed = TaskStore.get_completed_tasks_context(task_state)["completed_tasks"]
        prompt = PromptBuilder.build_task_extraction_prompt(user_request, completed)

        response = self.llm.invoke([HumanMessage(content=prompt)])
        content = response.content if hasattr(response, "content") else str(response)
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )

        extracted = parse_task_list(content)

        tasks = []
        for i, item in enumerate(extracted):
            kind = item.type.value
            target = item.target_pipeline.value if item.target_pipeline else None
            task = _task(i, item.description, kind, item.dependencies, 0.5)
            if target:
                task["target_pipeline"] = target
            tasks.append(task)
        return tasks
