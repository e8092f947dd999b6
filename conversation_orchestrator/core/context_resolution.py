"""
Context resolution engine - per-task parameter resolution.

For the task being processed, the engine assembles parameter values from
four places and scores how each declared parameter can be resolved:

    static   - patterns in the user's utterance
    dynamic  - identifiers in results of completed tasks
    user     - identity of the authenticated caller
    type     - the operation's declared required/optional parameters

The result is a GatheredContext snapshot, stored on the task (audit), in
memory["gathered_context"] (cross-task reuse) and in the rolling
memory["context_history"].

Keys inside static/dynamic/user context use the external API's parameter
spelling (companyId, contractIds, availableEmployeeIds, ...) because
strategies are matched against declared parameter names.

Nothing here raises: a failing stage contributes an empty part and the
rest of the snapshot is still produced.
"""

import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from conversation_orchestrator.core.identity import IdentityResolver
from conversation_orchestrator.core.task_store import TaskStore
from conversation_orchestrator.models import (
    ContextSource,
    GatheredContext,
    ExtractedPatterns,
    ResolutionStrategy,
    ContextAnalysis,
    Task,
    TaskPhase,
    TaskState,
    TypeContext,
)
from conversation_orchestrator.utils.memory import clone_memory
from conversation_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)

STATIC = ContextSource.STATIC_REQUEST.value
USER = ContextSource.USER_CONTEXT.value
DYNAMIC = ContextSource.DYNAMIC_CONTEXT.value

# Source -> confidence of a generic match
SOURCE_CONFIDENCE = {
    STATIC: 0.9,
    USER: 0.8,
    "dynamic_direct": 0.7,
    "dynamic_list": 0.6,
}

EMAIL = r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"

COMPANY_PATTERNS = [
    re.compile(r"company[:\s]+([\"']?)([a-zA-Z0-9_-]+)\1", re.IGNORECASE),
    re.compile(r"for\s+company\s+([\"']?)([a-zA-Z0-9_-]+)\1", re.IGNORECASE),
    re.compile(r"companyId[:\s]+([\"']?)([a-zA-Z0-9_-]+)\1", re.IGNORECASE),
]
CONTRACT_PATTERNS = [
    re.compile(r"contract[s]?[:\s]+([\"']?)([a-zA-Z0-9_,\s-]+)\1", re.IGNORECASE),
    re.compile(r"contractId[s]?[:\s]+([\"']?)([a-zA-Z0-9_,\s-]+)\1", re.IGNORECASE),
    re.compile(r"for\s+contract[s]?\s+([\"']?)([a-zA-Z0-9_,\s-]+)\1", re.IGNORECASE),
]
EMPLOYEE_PATTERNS = [
    re.compile(r"employeeId[s]?[:\s]+([\"']?)([a-zA-Z0-9_,\s-]+)\1", re.IGNORECASE),
    re.compile(r"employee[s]?\s+(?:id[s]?\s+)?([\"']?)([a-zA-Z0-9_,\s-]+)\1(?:\s|$|,)", re.IGNORECASE),
    re.compile(r"for\s+employee[s]?\s+([\"']?)([a-zA-Z0-9_,\s-]+)\1(?:\s|$|,)", re.IGNORECASE),
]
EMAIL_PATTERNS = [
    re.compile(rf"email[s]?\s+({EMAIL})", re.IGNORECASE),
    re.compile(rf"with\s+email\s+({EMAIL})", re.IGNORECASE),
]
STATUS_PATTERNS = [
    re.compile(r"status[:\s]+([\"']?)(\w+)\1", re.IGNORECASE),
    re.compile(r"with\s+status\s+([\"']?)(\w+)\1", re.IGNORECASE),
]
STATUS_KEYWORDS = ("active", "pending", "completed", "cancelled", "draft")
DATE_RANGE_PATTERN = re.compile(
    r"(?:from|since)\s+(\d{4}-\d{2}-\d{2})(?:\s+(?:to|until)\s+(\d{4}-\d{2}-\d{2}))?",
    re.IGNORECASE,
)
ID_SPLIT_PATTERN = re.compile(r"[,\s]+")
EMPLOYEE_ID_STOPWORDS = {"with", "email", "for", "of", "and"}

REQUIRED_FIELDS_PATTERN = re.compile(r"Required Fields:\s*\n((?:\s*\w+:.*\n?)+)")
OPTIONAL_FIELDS_PATTERN = re.compile(r"Optional Fields:\s*\n((?:\s*\w+:.*\n?)+)")
REQUIRED_FIELD_LINE = re.compile(r"^\s*(\w+):\s*([^\s!]+)!?", re.MULTILINE)
OPTIONAL_FIELD_LINE = re.compile(r"^\s*(\w+):\s*([^\s!]+)", re.MULTILINE)
SIMPLE_FIELD_PATTERN = re.compile(r"(\w+):\s*(.+)$")
COMMON_PARAMETERS = ("companyId", "pagination", "conditionType", "data", "filter")

# Parameter-name fragments that enable each static category when a schema is declared
STATIC_CATEGORY_FRAGMENTS = {
    "company": ("company",),
    "contract": ("contract",),
    "employee": ("employee", "search"),
    "email": ("email", "employee", "search", "user"),
}

EMPLOYEE_SHAPE_FIELDS = ("firstName", "lastName", "email", "role", "employeeContract")


def _dedupe(values: List[Any]) -> List[Any]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _non_empty(value: Any) -> bool:
    if isinstance(value, (list, tuple, set, dict, str)):
        return len(value) > 0
    return value is not None and value is not False


def _capitalize(name: str) -> str:
    return name[:1].upper() + name[1:]


class ContextResolutionEngine:
    """
    Builds the GatheredContext for one task.

    Usage:
        engine = ContextResolutionEngine(identity_resolver=IdentityResolver([...]))
        memory, context = engine.resolve(memory, "task_3", user_request, auth_user)
    """

    def __init__(
        self,
        identity_resolver: Optional[IdentityResolver] = None,
        history_limit: int = 10,
        recent_results_limit: int = 5
    ):
        self.identity_resolver = identity_resolver or IdentityResolver()
        self.history_limit = history_limit
        self.recent_results_limit = recent_results_limit

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def resolve(
        self,
        memory: Dict[str, Any],
        task_id: str,
        user_request: str,
        auth_user: Optional[Dict[str, Any]] = None
    ) -> Tuple[Dict[str, Any], GatheredContext]:
        """
        Gather context for a task and store it.

        Args:
            memory: Conversation memory holding task_state
            task_id: Task being processed
            user_request: Utterance the task came from
            auth_user: Raw authentication payload

        Returns:
            (updated memory copy, gathered context)
        """
        task_state = memory.get("task_state")
        task = TaskStore.get_task(task_state, task_id)
        context = self.gather(user_request, task, task_state, auth_user)
        try:
            new_memory = self.store(memory, task_id, context)
        except Exception as e:
            logger.error(f"[CONTEXT] Failed to store gathered context for {task_id}: {e}")
            new_memory = clone_memory(memory)
        return new_memory, context

    def gather(
        self,
        user_request: str,
        task: Optional[Task],
        task_state: Optional[TaskState],
        auth_user: Optional[Dict[str, Any]] = None
    ) -> GatheredContext:
        """Compute a GatheredContext without storing it."""
        logger.info(
            f"[CONTEXT] Gathering context for {task['id'] if task else 'no task'}: "
            f"{(user_request or '')[:100]}"
        )

        type_context = self._stage(
            "type", lambda: self.extract_type_context(task),
            {"required_params": [], "optional_params": [], "param_types": {}},
        )
        static_context, patterns = self._stage(
            "static", lambda: self.extract_static_parameters(user_request or "", type_context),
            ({}, self._empty_patterns()),
        )
        completed_context = self._stage(
            "completed", lambda: TaskStore.get_completed_tasks_context(task_state, self.recent_results_limit),
            {"completed_tasks": [], "recent_results": [], "user_info": None, "available_data": {}},
        )
        dynamic_context = self._stage(
            "dynamic", lambda: self.extract_dynamic_context(completed_context), {},
        )
        user_context = self._stage(
            "user", lambda: self.extract_user_context(completed_context, auth_user), {},
        )
        strategies = self._stage(
            "strategies",
            lambda: self.generate_resolution_strategies(static_context, dynamic_context, user_context, type_context),
            {},
        )
        analysis = self._stage(
            "analysis",
            lambda: self.analyze(strategies, static_context, dynamic_context),
            {
                "has_all_required_params": False,
                "missing_required_params": [],
                "available_data_types": [],
                "workflow_suggestions": [],
            },
        )

        context: GatheredContext = {
            "user_request": user_request or "",
            "static_context": static_context,
            "dynamic_context": dynamic_context,
            "user_context": user_context,
            "type_context": type_context,
            "extracted_patterns": patterns,
            "resolution_strategies": strategies,
            "context_analysis": analysis,
            "timestamp": datetime.now().isoformat(),
            "task_id": task["id"] if task else None,
            "task_kind": task.get("kind") if task else None,
        }

        logger.info(
            f"[CONTEXT] Resolved {len(strategies)} parameter(s); "
            f"missing required: {analysis['missing_required_params'] or 'none'}"
        )
        return context

    @staticmethod
    def _stage(name: str, func, default):
        try:
            return func()
        except Exception as e:
            logger.error(f"[CONTEXT] {name} extraction failed, continuing without it: {e}")
            return default

    # ------------------------------------------------------------------
    # Type context
    # ------------------------------------------------------------------

    @staticmethod
    def extract_type_context(task: Optional[Task]) -> TypeContext:
        """
        Declared parameters of the task's operation.

        Explicit parameter lists in operation_details win. Otherwise the raw
        type description is parsed: "Required Fields:" / "Optional Fields:"
        sections, then a comma-separated ``name: Type`` list (trailing ``!``
        marks required), then a scan for common parameter names.
        """
        type_context: TypeContext = {
            "required_params": [],
            "optional_params": [],
            "param_types": {},
            "input_type_name": None,
            "output_type_name": None,
        }
        details = (task or {}).get("operation_details") or {}
        if not details:
            return type_context

        type_context["input_type_name"] = details.get("input_type_name")
        type_context["output_type_name"] = details.get("output_type_name")

        if details.get("required_parameters") or details.get("optional_parameters"):
            type_context["required_params"] = list(details.get("required_parameters") or [])
            type_context["optional_params"] = list(details.get("optional_parameters") or [])
            type_context["param_types"] = dict(details.get("parameter_types") or {})
            return type_context

        raw = details.get("raw_type_details") or ""
        if not raw:
            return type_context

        def usable(name: str) -> bool:
            return len(name) > 1 and "Field" not in name and "Type" not in name

        required_match = REQUIRED_FIELDS_PATTERN.search(raw)
        if required_match:
            for name, param_type in REQUIRED_FIELD_LINE.findall(required_match.group(1)):
                if usable(name):
                    type_context["required_params"].append(name)
                    type_context["param_types"][name] = param_type.replace("!", "")

        optional_match = OPTIONAL_FIELDS_PATTERN.search(raw)
        if optional_match:
            for name, param_type in OPTIONAL_FIELD_LINE.findall(optional_match.group(1)):
                if usable(name):
                    type_context["optional_params"].append(name)
                    type_context["param_types"][name] = param_type

        if not type_context["required_params"] and not type_context["optional_params"]:
            for definition in (part.strip() for part in raw.split(",")):
                match = SIMPLE_FIELD_PATTERN.search(definition) if definition else None
                if not match or len(match.group(1)) <= 1:
                    continue
                name, type_def = match.group(1), match.group(2).strip()
                type_context["param_types"][name] = re.sub(r"[\[\]!]", "", type_def)
                if type_def.endswith("!"):
                    type_context["required_params"].append(name)
                else:
                    type_context["optional_params"].append(name)

        if not type_context["required_params"] and not type_context["optional_params"]:
            lowered = raw.lower()
            for name in COMMON_PARAMETERS:
                if name.lower() in lowered:
                    type_context["optional_params"].append(name)
                    type_context["param_types"][name] = "String"

        return type_context

    # ------------------------------------------------------------------
    # Static context
    # ------------------------------------------------------------------

    @staticmethod
    def _empty_patterns() -> ExtractedPatterns:
        return {
            "company_ids": [],
            "contract_ids": [],
            "employee_ids": [],
            "user_ids": [],
            "emails": [],
            "status_values": [],
            "date_ranges": [],
        }

    @staticmethod
    def extract_static_parameters(
        user_request: str,
        type_context: Optional[TypeContext] = None,
        today: Optional[date] = None
    ) -> Tuple[Dict[str, Any], ExtractedPatterns]:
        """
        Pattern-match identifiers, status filters and date ranges in the utterance.

        With a declared schema, a category is only extracted when some
        parameter name looks like it (company, contract, employee/search,
        email/user, status, date). Without a schema identifiers are still
        extracted but status and dates are not.

        Returns:
            (static context keyed by parameter name, raw pattern hits)
        """
        type_context = type_context or {}
        params = list(type_context.get("required_params") or []) + list(type_context.get("optional_params") or [])
        params += [p for p in (type_context.get("param_types") or {}) if p not in params]
        lowered_params = [p.lower() for p in params]
        has_schema = bool(params)

        def wants(category: str) -> bool:
            if not has_schema:
                return True
            return any(f in p for p in lowered_params for f in STATIC_CATEGORY_FRAGMENTS[category])

        static: Dict[str, Any] = {}
        patterns = ContextResolutionEngine._empty_patterns()

        if wants("company"):
            for pattern in COMPANY_PATTERNS:
                for match in pattern.finditer(user_request):
                    patterns["company_ids"].append(match.group(2))
                    static["companyId"] = match.group(2)

        if wants("contract"):
            for pattern in CONTRACT_PATTERNS:
                for match in pattern.finditer(user_request):
                    ids = [i for i in ID_SPLIT_PATTERN.split(match.group(2)) if i.strip()]
                    patterns["contract_ids"].extend(ids)
                    static["contractIds"] = _dedupe(patterns["contract_ids"])

        if wants("email"):
            emails = []
            for pattern in EMAIL_PATTERNS:
                for match in pattern.finditer(user_request):
                    emails.append(match.group(1))
            emails = _dedupe(emails)
            if emails:
                patterns["emails"] = emails
                patterns["user_ids"].extend(emails)
                static["emails"] = emails

        if wants("employee"):
            for pattern in EMPLOYEE_PATTERNS:
                for match in pattern.finditer(user_request):
                    ids = [
                        i for i in ID_SPLIT_PATTERN.split(match.group(2))
                        if i.strip() and "@" not in i and i.lower() not in EMPLOYEE_ID_STOPWORDS
                    ]
                    if ids:
                        patterns["employee_ids"].extend(ids)
                        static["employeeIds"] = _dedupe(patterns["employee_ids"])

        if "status" in params:
            for pattern in STATUS_PATTERNS:
                for match in pattern.finditer(user_request):
                    value = match.group(2).upper()
                    patterns["status_values"].append(value)
                    static["status"] = value
            lowered = user_request.lower()
            for keyword in STATUS_KEYWORDS:
                if keyword in lowered:
                    patterns["status_values"].append(keyword.upper())
                    static.setdefault("status", keyword.upper())

        if any("date" in p for p in lowered_params):
            ContextResolutionEngine._extract_dates(user_request, static, patterns, today or date.today())

        return static, patterns

    @staticmethod
    def _extract_dates(
        user_request: str,
        static: Dict[str, Any],
        patterns: ExtractedPatterns,
        today: date
    ) -> None:
        for match in DATE_RANGE_PATTERN.finditer(user_request):
            patterns["date_ranges"].append(
                {"start_date": match.group(1), "end_date": match.group(2), "type": "specific"}
            )
            static["startDate"] = match.group(1)
            if match.group(2):
                static["endDate"] = match.group(2)

        lowered = user_request.lower()
        relative = []
        if "last month" in lowered:
            last_month_end = today.replace(day=1) - timedelta(days=1)
            relative.append(("last_month", last_month_end.replace(day=1), last_month_end))
        if "this month" in lowered:
            relative.append(("this_month", today.replace(day=1), today))
        if "today" in lowered:
            relative.append(("today", today, today))

        for range_type, start, end in relative:
            patterns["date_ranges"].append(
                {"start_date": start.isoformat(), "end_date": end.isoformat(), "type": range_type}
            )
            static["startDate"] = start.isoformat()
            static["endDate"] = end.isoformat()

    # ------------------------------------------------------------------
    # Dynamic context
    # ------------------------------------------------------------------

    @staticmethod
    def extract_dynamic_context(completed_context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Harvest identifiers from completed task results.

        Lists of entities and single objects are both scanned; an object's
        ``id`` counts as an employee id when the object looks like an
        employee. A list of employees is kept whole with its first entry
        as the default employeeId.
        """
        dynamic: Dict[str, Any] = dict(completed_context.get("available_data") or {})
        recent_results = completed_context.get("recent_results") or []

        contract_ids: List[Any] = []
        employee_ids: List[Any] = []
        company_ids: List[Any] = []
        user_ids: List[Any] = []
        employee_list: Optional[List[Any]] = None

        def add(bucket: List[Any], value: Any) -> None:
            if value not in (None, "") and value not in bucket:
                bucket.append(value)

        def looks_like_employee(item: Dict[str, Any]) -> bool:
            return any(item.get(f) for f in EMPLOYEE_SHAPE_FIELDS)

        def employee_of(item: Dict[str, Any]) -> Dict[str, Any]:
            # "employee" may also be a plain name string
            employee = item.get("employee")
            return employee if isinstance(employee, dict) else {}

        def nested_employee_ids(item: Dict[str, Any]) -> None:
            employee = employee_of(item)
            add(employee_ids, employee.get("id"))
            add(employee_ids, employee.get("employeeId"))

        for result in recent_results:
            data = result.get("data") if isinstance(result, dict) else None
            if not data:
                continue

            if isinstance(data, list):
                first = data[0] if isinstance(data[0], dict) else {}
                if first.get("employeeId") or employee_of(first).get("id"):
                    employee_list = data

                for item in data:
                    if not isinstance(item, dict):
                        continue
                    add(contract_ids, item.get("contractId"))
                    add(employee_ids, item.get("employeeId"))
                    add(company_ids, item.get("companyId"))
                    add(user_ids, item.get("userId"))

                    if item.get("id"):
                        if "contractId" in item:
                            add(contract_ids, item["id"])
                        elif "employeeId" in item:
                            add(employee_ids, item["id"])
                        elif "companyId" in item:
                            add(company_ids, item["companyId"])
                        elif looks_like_employee(item):
                            add(employee_ids, item["id"])

                    nested_employee_ids(item)

            elif isinstance(data, dict):
                employees = data.get("employees")
                if isinstance(employees, list):
                    employee_list = employees
                    for emp in employees:
                        if not isinstance(emp, dict):
                            continue
                        add(employee_ids, emp.get("employeeId"))
                        add(employee_ids, emp.get("id"))
                        nested_employee_ids(emp)

                add(contract_ids, data.get("contractId"))
                add(employee_ids, data.get("employeeId"))
                add(company_ids, data.get("companyId"))
                add(user_ids, data.get("userId"))

                if data.get("id") and looks_like_employee(data):
                    add(employee_ids, data["id"])

                nested_employee_ids(data)

        if contract_ids:
            dynamic["availableContractIds"] = contract_ids
            dynamic["contractId"] = contract_ids[0]

        if employee_ids:
            dynamic["availableEmployeeIds"] = employee_ids
            if employee_list is not None:
                dynamic["employeeList"] = employee_list
                dynamic["employeeIds"] = employee_ids
                dynamic["hasEmployeeList"] = True
                dynamic["employeeDetails"] = [
                    {
                        "id": emp.get("employeeId") or emp.get("id") or employee_of(emp).get("id"),
                        "name": emp.get("name") or emp.get("employeeName") or employee_of(emp).get("name"),
                        "email": emp.get("email") or emp.get("employeeEmail") or employee_of(emp).get("email"),
                    }
                    for emp in employee_list if isinstance(emp, dict)
                ]
                first = employee_list[0] if employee_list and isinstance(employee_list[0], dict) else {}
                default_id = first.get("employeeId") or first.get("id") or employee_of(first).get("id")
                dynamic["employeeId"] = default_id or employee_ids[0]
            else:
                dynamic["employeeId"] = employee_ids[0]

        if company_ids:
            dynamic["availableCompanyIds"] = company_ids
            dynamic["companyId"] = company_ids[0]

        if user_ids:
            dynamic["availableUserIds"] = user_ids
            dynamic["userId"] = user_ids[0]

        dynamic["hasUserInfo"] = bool(completed_context.get("user_info"))
        dynamic["hasRecentResults"] = len(recent_results) > 0
        dynamic["completedTaskCount"] = len(completed_context.get("completed_tasks") or [])

        logger.debug(
            f"[CONTEXT] Dynamic ids: contracts={len(contract_ids)} employees={len(employee_ids)} "
            f"companies={len(company_ids)} users={len(user_ids)} employee_list={employee_list is not None}"
        )
        return dynamic

    # ------------------------------------------------------------------
    # User context
    # ------------------------------------------------------------------

    def extract_user_context(
        self,
        completed_context: Dict[str, Any],
        auth_user: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Identity values for the caller.

        A completed "user info" lookup and the raw auth payload provide base
        values; the identity provider chain then fills in what is missing.
        """
        user: Dict[str, Any] = {}

        info = completed_context.get("user_info")
        if isinstance(info, dict):
            info = info.get("data", info) if isinstance(info.get("data"), dict) else info
            for source_key, key in (
                ("id", "userId"),
                ("email", "userEmail"),
                ("companyId", "companyId"),
                ("contractIds", "userContractIds"),
                ("department", "userDepartment"),
                ("role", "userRole"),
            ):
                if info.get(source_key):
                    user[key] = info[source_key]

        if auth_user:
            for source_key, key in (("id", "userId"), ("email", "userEmail"), ("companyId", "companyId")):
                if auth_user.get(source_key) and not user.get(key):
                    user[key] = auth_user[source_key]

        values, provider = self.identity_resolver.resolve(auth_user)
        for key, value in values.items():
            if not user.get(key):
                user[key] = value

        logger.debug(
            f"[CONTEXT] User context keys: {sorted(user)} (identity tier: {provider or 'none'})"
        )
        return user

    # ------------------------------------------------------------------
    # Strategies and analysis
    # ------------------------------------------------------------------

    @staticmethod
    def generate_resolution_strategies(
        static: Dict[str, Any],
        dynamic: Dict[str, Any],
        user: Dict[str, Any],
        type_context: TypeContext
    ) -> Dict[str, ResolutionStrategy]:
        """
        One strategy per declared parameter (required first, then optional).

        Confidence is the maximum over contributing sources. Strategies with
        no source are kept only for required parameters, which then carry a
        ``<parameter>`` fallback placeholder.
        """
        required = list(type_context.get("required_params") or [])
        optional = [p for p in type_context.get("optional_params") or [] if p not in required]
        param_types = type_context.get("param_types") or {}

        strategies: Dict[str, ResolutionStrategy] = {}
        for parameter in required + optional:
            is_required = parameter in required
            sources: List[str] = []
            confidence = 0.0

            def contribute(source: str, score: float) -> None:
                nonlocal confidence
                if source not in sources:
                    sources.append(source)
                confidence = max(confidence, score)

            if _non_empty(static.get(parameter)):
                contribute(STATIC, SOURCE_CONFIDENCE[STATIC])
            if _non_empty(user.get(parameter)):
                contribute(USER, SOURCE_CONFIDENCE[USER])

            plural_key = f"available{_capitalize(parameter)}s"
            singular_key = f"available{_capitalize(parameter)}"
            if isinstance(dynamic.get(plural_key), list) and dynamic[plural_key]:
                contribute(DYNAMIC, SOURCE_CONFIDENCE["dynamic_list"])
            elif isinstance(dynamic.get(singular_key), list) and dynamic[singular_key]:
                contribute(DYNAMIC, SOURCE_CONFIDENCE["dynamic_list"])
            elif _non_empty(dynamic.get(parameter)):
                contribute(DYNAMIC, SOURCE_CONFIDENCE["dynamic_direct"])

            if parameter == "companyId" and user.get("companyId"):
                contribute(USER, 0.8)

            if parameter in ("contractIds", "contractId"):
                if static.get("contractIds"):
                    contribute(STATIC, 0.9)
                elif user.get("userContractIds"):
                    contribute(USER, 0.7)
                elif dynamic.get("availableContractIds"):
                    contribute(DYNAMIC, 0.6)
                elif _non_empty(user.get("contractIds")):
                    contribute(USER, 0.5)

            if parameter in ("employeeIds", "employeeId"):
                if static.get("employeeIds"):
                    contribute(STATIC, 0.9)
                elif user.get("userEmployeeIds"):
                    contribute(USER, 0.7)
                elif dynamic.get("availableEmployeeIds"):
                    contribute(DYNAMIC, 0.6)
                elif dynamic.get("employeeId"):
                    contribute(DYNAMIC, 0.8)

            if parameter == "employeeCompanyId":
                if user.get("companyId"):
                    contribute(USER, 0.8)
                elif static.get("companyId"):
                    contribute(STATIC, 0.9)
                elif dynamic.get("companyId"):
                    contribute(DYNAMIC, 0.7)

            if parameter == "search":
                if static.get("emails"):
                    contribute(STATIC, 0.9)
                elif static.get("employeeIds"):
                    contribute(STATIC, 0.8)
                elif dynamic.get("availableEmployeeIds"):
                    contribute(DYNAMIC, 0.6)

            if parameter == "status":
                if static.get("status"):
                    contribute(STATIC, 0.9)
                else:
                    # Declared status defaults downstream; no concrete source
                    confidence = max(confidence, 0.5)

            if not sources and not is_required:
                continue

            strategies[parameter] = {
                "parameter": parameter,
                "sources": sources,
                "confidence": confidence,
                "required": is_required,
                "type": param_types.get(parameter, "String"),
                "fallback": f"<{parameter}>" if is_required and not sources else None,
            }

        return strategies

    @staticmethod
    def analyze(
        strategies: Dict[str, ResolutionStrategy],
        static: Dict[str, Any],
        dynamic: Dict[str, Any]
    ) -> ContextAnalysis:
        """
        Gap analysis over the strategies.

        Recognized gaps produce a workflow suggestion: a prerequisite lookup
        for missing employee or contract ids, or an explicit limitation when
        only an email was given for an employee.
        """
        missing = [s["parameter"] for s in strategies.values() if s["required"] and not s["sources"]]
        suggestions = []

        for parameter in missing:
            if parameter == "employeeId" and not dynamic.get("availableEmployeeIds"):
                emails = static.get("emails") or []
                if emails:
                    suggestions.append({
                        "missing": "employeeId",
                        "suggestion": "email_search_not_supported",
                        "action": "Email-based employee search is not supported by available queries",
                        "query_type": "limitation",
                        "user_message": (
                            f"I found the email {emails[0]}, but unfortunately none of the available "
                            "employee queries support searching by email address. You may need to "
                            "search by the employee's name instead."
                        ),
                    })
                else:
                    suggestions.append({
                        "missing": "employeeId",
                        "suggestion": "prerequisite_query",
                        "action": "Run employee list query first",
                        "query_type": "employee_list",
                        "user_message": "I need employee information first. Let me get the employee list for you.",
                    })
            elif parameter == "contractId" and not dynamic.get("availableContractIds"):
                suggestions.append({
                    "missing": "contractId",
                    "suggestion": "prerequisite_query",
                    "action": "Run contract list query first",
                    "query_type": "contract_list",
                    "user_message": "I need contract information first. Let me get the contract list for you.",
                })

        return {
            "has_all_required_params": not missing,
            "missing_required_params": missing,
            "available_data_types": [
                key for key in dynamic
                if key.startswith("available") or key.endswith("List") or key.endswith("Id")
            ],
            "workflow_suggestions": suggestions,
        }

    # ------------------------------------------------------------------
    # Concrete values
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_parameter_values(context: GatheredContext) -> Dict[str, Any]:
        """
        Pick one concrete value per resolvable parameter.

        Sources are tried in strategy order; singular ``...Id`` parameters
        take the first element of a list and plural ``...Ids`` parameters
        wrap a scalar.
        """
        static = context.get("static_context") or {}
        dynamic = context.get("dynamic_context") or {}
        user = context.get("user_context") or {}

        def candidates(parameter: str, source: str) -> List[Any]:
            cap = _capitalize(parameter)
            if source == STATIC:
                return [
                    static.get(parameter),
                    static.get("contractIds") if parameter.startswith("contractId") else None,
                    static.get("employeeIds") if parameter.startswith("employeeId") else None,
                    static.get("companyId") if parameter == "employeeCompanyId" else None,
                    (static.get("emails") or static.get("employeeIds")) if parameter == "search" else None,
                ]
            if source == USER:
                return [
                    user.get(parameter),
                    user.get("companyId") if parameter == "employeeCompanyId" else None,
                    (user.get("userContractIds") or user.get("contractIds"))
                    if parameter.startswith("contractId") else None,
                    user.get("userEmployeeIds") if parameter.startswith("employeeId") else None,
                ]
            return [
                dynamic.get(f"available{cap}s"),
                dynamic.get(f"available{cap}"),
                dynamic.get(parameter),
                dynamic.get("availableContractIds") if parameter.startswith("contractId") else None,
                (dynamic.get("employeeId") if parameter == "employeeId" else dynamic.get("availableEmployeeIds"))
                if parameter.startswith("employeeId") or parameter == "search" else None,
                dynamic.get("companyId") if parameter == "employeeCompanyId" else None,
            ]

        values: Dict[str, Any] = {}
        for parameter, strategy in (context.get("resolution_strategies") or {}).items():
            for source in strategy.get("sources") or []:
                value = next((v for v in candidates(parameter, source) if _non_empty(v)), None)
                if value is None:
                    continue
                values[parameter] = ContextResolutionEngine._coerce(parameter, value)
                break
        return values

    @staticmethod
    def _coerce(parameter: str, value: Any) -> Any:
        if parameter.endswith("Ids"):
            return list(value) if isinstance(value, (list, tuple)) else [value]
        if isinstance(value, (list, tuple)) and (parameter.endswith("Id") or parameter == "search"):
            return value[0] if value else None
        return value

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def store(self, memory: Dict[str, Any], task_id: str, context: GatheredContext) -> Dict[str, Any]:
        """
        Persist a context snapshot on the task, as the current context and
        in the bounded history. Returns the updated memory copy.
        """
        new_memory = clone_memory(memory)

        task_state = new_memory.get("task_state")
        task = TaskStore.get_task(task_state, task_id)
        if task is not None:
            task_context = dict(task.get("context") or {})
            task_context["phase"] = TaskPhase.DATA_GATHERING.value
            new_memory["task_state"] = TaskStore.update_task(task_state, task_id, {
                "resolved_context": context,
                "context_version": context["timestamp"],
                "context": task_context,
            })

        new_memory["gathered_context"] = context

        history = list(new_memory.get("context_history") or [])
        history.append({**context, "task_id": task_id, "task_kind": task.get("kind") if task else None})
        if len(history) > self.history_limit:
            history = history[-self.history_limit:]
        new_memory["context_history"] = history

        if context.get("user_request"):
            new_memory["user_request"] = context["user_request"]
        return new_memory


class ContextLookup:
    """Read helpers for stored context snapshots."""

    @staticmethod
    def current(memory: Optional[Dict[str, Any]]) -> Optional[GatheredContext]:
        return (memory or {}).get("gathered_context")

    @staticmethod
    def for_task(memory: Optional[Dict[str, Any]], task_id: str) -> Optional[GatheredContext]:
        task = TaskStore.get_task((memory or {}).get("task_state"), task_id)
        return task.get("resolved_context") if task else None

    @staticmethod
    def history(memory: Optional[Dict[str, Any]]) -> List[GatheredContext]:
        return list((memory or {}).get("context_history") or [])

    @staticmethod
    def most_relevant(memory: Optional[Dict[str, Any]], task_id: Optional[str] = None) -> Optional[GatheredContext]:
        """Current context, else the task's own snapshot, else the latest history entry."""
        current = ContextLookup.current(memory)
        if current:
            return current
        if task_id:
            task_context = ContextLookup.for_task(memory, task_id)
            if task_context:
                return task_context
        history = ContextLookup.history(memory)
        return history[-1] if history else None
