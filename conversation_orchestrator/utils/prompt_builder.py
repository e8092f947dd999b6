"""
Prompt builder module - Constructs prompts for LLM interactions
"""

import json
from typing import Dict, Any, List, Optional


class PromptBuilder:
    """
    Builds the prompts the orchestrator sends to the LLM.

    Task extraction and operation generation are the only two LLM calls the
    core makes; keeping their wording here makes both easy to test.
    """

    @staticmethod
    def build_task_extraction_prompt(
        user_request: str,
        completed_tasks: Optional[List[Dict[str, Any]]] = None
    ) -> str:
        """
        Build the prompt that splits a user request into tasks.

        Args:
            user_request: The latest user utterance
            completed_tasks: Tasks finished earlier in the conversation, for reference

        Returns:
            Formatted prompt string
        """
        history_section = ""
        if completed_tasks:
            lines = [f"- {t['id']}: {t['description']}" for t in completed_tasks[-5:]]
            history_section = (
                "\nALREADY COMPLETED IN THIS CONVERSATION (do not repeat):\n"
                + "\n".join(lines)
                + "\n"
            )

        return f"""
You split user requests into the smallest set of data operations needed to answer them.

USER REQUEST: {user_request}
{history_section}
Rules:
- Use "read" for lookups and listings, "write" for anything that creates, updates or deletes data
- "target_pipeline" is "read_pipeline" for read tasks and "write_pipeline" for write tasks
- Number tasks task_0, task_1, ... in the order they must run
- A task that needs the output of another lists it in "dependencies"
- Do not invent tasks the user did not ask for

Respond with ONLY a JSON array:
[
  {{
    "description": "what this task does",
    "type": "read" | "write",
    "target_pipeline": "read_pipeline" | "write_pipeline",
    "dependencies": ["task_0"]
  }}
]
"""

    @staticmethod
    def build_operation_prompt(
        task: Dict[str, Any],
        gathered_context: Dict[str, Any],
        user_request: str
    ) -> str:
        """
        Build the prompt that turns a task into an operation string.

        Parameters without a resolved value must appear as ``{{name}}``
        placeholders so they can be substituted afterwards.
        """
        operation_details = task.get("operation_details") or {}
        strategies = gathered_context.get("resolution_strategies") or {}
        analysis = gathered_context.get("context_analysis") or {}

        parameter_lines = []
        for name, strategy in strategies.items():
            marker = "required" if strategy.get("required") else "optional"
            sources = ", ".join(strategy.get("sources") or []) or "unresolved"
            parameter_lines.append(
                f"- {name} ({strategy.get('type', 'String')}, {marker}): "
                f"sources={sources}, confidence={strategy.get('confidence', 0):.1f}"
            )
        parameters = "\n".join(parameter_lines) or "- none declared"

        return f"""
Generate the operation for this task.

USER REQUEST: {user_request}
TASK: {task.get('description', '')}
KIND: {task.get('kind', 'read')}
OPERATION: {operation_details.get('operation_name', 'unknown')}

TYPE DETAILS:
{operation_details.get('raw_type_details', 'not available')}

PARAMETERS:
{parameters}

MISSING REQUIRED PARAMETERS: {json.dumps(analysis.get('missing_required_params', []))}

Write every parameter value as a placeholder: {{{{parameterName}}}}.
Respond with ONLY the operation text, no explanation.
"""
