# ============================================================================
#  File: plan_builder.py
#  Purpose: Turns planner output or YAML templates into validated Plan objects
# ============================================================================
# SECTION 1: Imports
# ============================================================================
#
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from loguru import logger

from plan_orchestrator.error_handling import PlanValidationError
from plan_orchestrator.models import (
    Action,
    ActionKind,
    ActionRef,
    Coordination,
    DiagnoseIssue,
    ExecutionStrategy,
    FileTarget,
    Level,
    NoPayload,
    OperatorQuestion,
    Orchestration,
    Plan,
    QualityMetrics,
    SpawnCollaborator,
)
#
# ============================================================================
# SECTION 2: Helpers
# ============================================================================
# Function 2.1: _pick
# ============================================================================
def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Returns the first present, non-None value among snake/camel spellings."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


def _clamp(value: float) -> float:
    return min(max(float(value), 0.0), 1.0)


def _enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise PlanValidationError(f"Unknown {what}: {value!r}") from None


def _refs(values: Optional[Iterable[Any]]) -> Tuple[ActionRef, ...]:
    return tuple(ActionRef.parse(v) for v in (values or []))
#
# ============================================================================
# Function 2.2: _build_payload
# ============================================================================
def _build_payload(kind: ActionKind, data: Mapping[str, Any]):
    if kind is ActionKind.ASK_USER:
        return OperatorQuestion(question=data.get("question") or "")
    if kind is ActionKind.SPAWN_AGENT:
        return SpawnCollaborator(agent_type=_pick(data, "agent_type", "agentType"))
    if kind is ActionKind.DEBUG_ISSUE:
        return DiagnoseIssue(target=data.get("target"))
    if kind in (ActionKind.COORDINATE_AGENTS, ActionKind.ANALYZE_DEPENDENCIES):
        return NoPayload()
    return FileTarget(target=data.get("target"))
#
# ============================================================================
# SECTION 3: Builders
# ============================================================================
# Function 3.1: build_action
# ============================================================================
def build_action(index: int, data: Mapping[str, Any]) -> Action:
    """Builds one action, filling the defaults planner output may omit."""
    kind = _enum(ActionKind, _pick(data, "type", "kind", default="ask_user"), "action type")
    coordination = data.get("coordination") or {}
    confidence = data.get("confidence")

    return Action(
        index=index,
        kind=kind,
        payload=_build_payload(kind, data),
        reason=data.get("reason") or "No reason provided",
        dependencies=frozenset(_refs(data.get("dependencies"))),
        coordination=Coordination(
            parallel=bool(coordination.get("parallel", False)),
            resources=frozenset(coordination.get("resources") or []),
            constraints=tuple(coordination.get("constraints") or []),
        ),
        priority=_enum(Level, data.get("priority") or "medium", "priority"),
        impact=_enum(Level, data.get("impact") or "medium", "impact"),
        confidence=_clamp(0.7 if confidence is None else confidence),
        estimated_time=_pick(data, "estimated_time", "estimatedTime", default="Unknown"),
    )
#
# ============================================================================
# Function 3.2: build_orchestration
# ============================================================================
def build_orchestration(data: Optional[Mapping[str, Any]], actions: List[Action]) -> Orchestration:
    """
    Builds orchestration metadata. The dependency map is derived from the
    actions when absent; an explicit map must agree with them.
    """
    data = data or {}
    derived = {action.ref: tuple(action.sorted_dependencies()) for action in actions}

    explicit = data.get("dependencies")
    if explicit:
        for raw_key, raw_deps in explicit.items():
            key = ActionRef.parse(raw_key)
            if not 0 <= key.index < len(actions):
                raise PlanValidationError(f"Dependency map references unknown action {key}")
            declared = frozenset(_refs(raw_deps))
            if declared != actions[key.index].dependencies:
                raise PlanValidationError(
                    f"Dependency map for {key} ({sorted(str(r) for r in declared)}) does not match "
                    f"the action's own dependencies ({sorted(str(r) for r in actions[key.index].dependencies)})"
                )

    groups = tuple(
        _refs(group) for group in (_pick(data, "parallel_groups", "parallelGroups", default=[]))
    )
    grouped = [ref for group in groups for ref in group]
    repeated = sorted({ref for ref in grouped if grouped.count(ref) > 1})
    if repeated:
        raise PlanValidationError(
            f"Parallel groups list {', '.join(str(r) for r in repeated)} more than once"
        )

    return Orchestration(
        strategy=_enum(
            ExecutionStrategy,
            _pick(data, "execution_strategy", "executionStrategy", "strategy", default="sequential"),
            "execution strategy",
        ),
        estimated_duration=float(_pick(data, "estimated_duration", "estimatedDuration", default=30)),
        resource_requirements=tuple(_pick(data, "resource_requirements", "resourceRequirements", default=[])),
        risk_level=_enum(Level, _pick(data, "risk_level", "riskAssessment", default="medium"), "risk level"),
        dependencies=derived,
        parallel_groups=groups,
    )
#
# ============================================================================
# Function 3.3: build_plan
# ============================================================================
def build_plan(plan_data: Mapping[str, Any], name: Optional[str] = None) -> Plan:
    """
    Builds an immutable Plan from a planner response or template mapping.

    Args:
        plan_data: Parsed JSON/YAML plan definition
        name: Overrides the plan name found in the data

    Returns:
        Plan: The validated plan

    Raises:
        PlanValidationError: On unknown enums, unparseable references or an
            inconsistent dependency map
    """
    actions = [build_action(i, a) for i, a in enumerate(plan_data.get("actions") or [])]
    quality = _pick(plan_data, "quality_metrics", "qualityMetrics", default={})
    confidence = plan_data.get("confidence")

    plan = Plan(
        name=name or plan_data.get("name") or "Unnamed Plan",
        actions=tuple(actions),
        analysis=plan_data.get("analysis") or "Analysis not provided",
        confidence=_clamp(0.5 if confidence is None else confidence),
        orchestration=build_orchestration(plan_data.get("orchestration"), actions),
        quality=QualityMetrics(
            plan_completeness=_clamp(_pick(quality, "plan_completeness", "planCompleteness", default=0.7)),
            action_cohesion=_clamp(_pick(quality, "action_cohesion", "actionCohesion", default=0.7)),
            implementation_feasibility=_clamp(
                _pick(quality, "implementation_feasibility", "implementationFeasibility", default=0.7)
            ),
        ),
    )
    logger.debug(
        f"Built plan '{plan.name}': {len(plan.actions)} actions, {plan.strategy.value} strategy"
    )
    return plan
#
#
## End of Script
