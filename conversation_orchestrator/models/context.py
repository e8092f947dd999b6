"""
Context module - Structures produced by the context resolution engine
"""

from typing import TypedDict, Optional, List, Dict, Any


class TypeContext(TypedDict, total=False):
    required_params: List[str]
    optional_params: List[str]
    param_types: Dict[str, str]
    input_type_name: Optional[str]
    output_type_name: Optional[str]


class DateRange(TypedDict, total=False):
    start_date: Optional[str]
    end_date: Optional[str]
    type: str


class ExtractedPatterns(TypedDict, total=False):
    """Raw pattern hits from the utterance, before they are mapped onto parameters"""
    company_ids: List[str]
    contract_ids: List[str]
    employee_ids: List[str]
    user_ids: List[str]
    emails: List[str]
    status_values: List[str]
    date_ranges: List[DateRange]


class ResolutionStrategy(TypedDict, total=False):
    """
    How one declared parameter is resolved.

    sources holds ContextSource values in priority order; fallback is the
    unresolved placeholder used when no source contributed a value.
    """
    parameter: str
    sources: List[str]
    confidence: float
    required: bool
    type: str
    fallback: Optional[str]


class WorkflowSuggestion(TypedDict, total=False):
    missing: str
    suggestion: str
    action: str
    query_type: str
    user_message: str


class ContextAnalysis(TypedDict):
    has_all_required_params: bool
    missing_required_params: List[str]
    available_data_types: List[str]
    workflow_suggestions: List[WorkflowSuggestion]


class GatheredContext(TypedDict, total=False):
    """One resolution snapshot for one task"""
    user_request: str
    static_context: Dict[str, Any]
    dynamic_context: Dict[str, Any]
    user_context: Dict[str, Any]
    type_context: TypeContext
    extracted_patterns: ExtractedPatterns
    resolution_strategies: Dict[str, ResolutionStrategy]
    context_analysis: ContextAnalysis
    timestamp: str
    task_id: Optional[str]
    task_kind: Optional[str]
