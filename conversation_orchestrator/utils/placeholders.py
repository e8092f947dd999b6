"""
Placeholder substitution for generated operations.

Generated operations reference parameters as ``{{name}}`` (or ``<name>``).
Resolved values are written in literal form: strings quoted, lists as
bracketed, comma-joined literals, numbers and booleans verbatim. Anything
without a value stays in place so it can be reported as a gap.
"""

import json
import re
from typing import Any, Dict, List, Tuple

from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}|<(\w+)>")
UNRESOLVED_PATTERN = re.compile(r"\{\{([^}]+)\}\}")

PARAMETER_SUGGESTIONS = {
    "contractids": 'Specify contract IDs in your request, or use "all contracts" for all available contracts',
    "companyid": "Specify the company name or ID in your request",
    "userid": "Make sure user authentication is properly set up",
    "status": 'Specify the status filter (e.g., "active", "pending", "completed")',
}


def _has_value(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def format_literal(value: Any) -> str:
    """Literal form of a value inside an operation."""
    if isinstance(value, (list, tuple, set)):
        items = [json.dumps(v) if isinstance(v, str) else format_literal(v) for v in value]
        return "[" + ", ".join(items) + "]"
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, (bool, int, float)) or value is None:
        return json.dumps(value)
    return json.dumps(value, default=str)


def substitute_placeholders(template: str, values: Dict[str, Any]) -> Tuple[str, List[str]]:
    """
    Replace placeholders with literal values.

    A placeholder already wrapped in double quotes in the template
    (``"{{name}}"``) is replaced together with its quotes, so string values
    are never double-quoted.

    Args:
        template: Operation text with placeholders
        values: Parameter name -> value

    Returns:
        (operation text, names left unresolved)
    """
    unresolved: List[str] = []

    def replace(match: "re.Match") -> str:
        name = match.group(1) or match.group(2)
        value = values.get(name)
        if not _has_value(value):
            if name not in unresolved:
                unresolved.append(name)
            return match.group(0)
        return format_literal(value)

    quoted_pattern = re.compile(r'"(?:\{\{\s*(\w+)\s*\}\}|<(\w+)>)"')
    operation = quoted_pattern.sub(replace, template)
    operation = PLACEHOLDER_PATTERN.sub(replace, operation)

    if unresolved:
        logger.warning(f"[PLACEHOLDER] Unresolved placeholders: {', '.join(unresolved)}")
    return operation, unresolved


def find_unresolved_placeholders(operation: str) -> List[str]:
    """Names of ``{{...}}`` placeholders still present, in order, without duplicates."""
    names: List[str] = []
    for match in UNRESOLVED_PATTERN.finditer(operation or ""):
        name = match.group(1).strip()
        if name not in names:
            names.append(name)
    return names


def placeholder_suggestion(name: str) -> str:
    return PARAMETER_SUGGESTIONS.get(name.lower(), f"Provide the {name} parameter in your request")


def build_missing_parameters_message(names: List[str]) -> str:
    """User-facing message listing unresolved parameters with a hint for each."""
    lines = "\n".join(f"• {name}: {placeholder_suggestion(name)}" for name in names)
    return (
        "I need more information to complete your request. "
        "The following parameters are missing:\n\n"
        f"{lines}\n\n"
        "Please provide these details and try again."
    )
