# ============================================================================
#  File: analyzer.py
#  Purpose: Read-only pre-flight diagnostics over orchestration plans
# ============================================================================
# SECTION 1: Imports
# ============================================================================
#
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from loguru import logger

from plan_orchestrator.dependency_resolver import critical_path, detect_cycle, invalid_references
from plan_orchestrator.error_handling import get_error_message
from plan_orchestrator.models import Action, ExecutionStrategy, Level, Plan

LOW_FEASIBILITY = 0.7
LOW_CONFIDENCE = 0.5
HIGH_RESOURCE_COUNT = 3
#
# ============================================================================
# SECTION 2: Result Structures
# ============================================================================
@dataclass(frozen=True)
class OrchestrationAnalysis:
    parallelizable_actions: int
    critical_path: List[Action]
    resource_conflicts: List[str]
    optimization_suggestions: List[str]


@dataclass(frozen=True)
class PlanValidation:
    is_ready: bool
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
#
# ============================================================================
# SECTION 3: Diagnostics
# ============================================================================
# Function 3.1: parallelizable_count
# ============================================================================
def parallelizable_count(actions: Sequence[Action]) -> int:
    """Actions flagged concurrent-capable that have no dependencies."""
    return sum(1 for a in actions if a.is_parallel and not a.dependencies)
#
# ============================================================================
# Function 3.2: find_resource_conflicts
# ============================================================================
def find_resource_conflicts(actions: Sequence[Action]) -> List[str]:
    """
    A resource requested by several actions is a conflict unless every one
    of them is concurrent-capable. Advisory only: the lock manager still
    serializes access at run time.
    """
    usage: Dict[str, List[Action]] = {}
    for action in actions:
        for resource in sorted(action.resources):
            usage.setdefault(resource, []).append(action)

    conflicts = []
    for resource, users in usage.items():
        if len(users) > 1 and not all(a.is_parallel for a in users):
            conflicts.append(f"Resource conflict: {resource} needed by {len(users)} actions")
    return conflicts
#
# ============================================================================
# Function 3.3: generate_optimization_suggestions
# ============================================================================
def generate_optimization_suggestions(plan: Plan) -> List[str]:
    suggestions = []

    sequential = [a for a in plan.actions if not a.is_parallel and not a.dependencies]
    if len(sequential) > 1:
        suggestions.append(f"{len(sequential)} actions could be parallelized")

    heavy = [a for a in plan.actions if len(a.resources) > HIGH_RESOURCE_COUNT]
    if heavy:
        suggestions.append(f"{len(heavy)} actions have high resource requirements")

    if plan.orchestration.risk_level is Level.HIGH:
        suggestions.append("Consider breaking down high-risk actions into smaller steps")

    if plan.quality.implementation_feasibility < LOW_FEASIBILITY:
        suggestions.append("Plan feasibility is low - consider alternative approaches")

    if plan.strategy is ExecutionStrategy.MIXED and not plan.orchestration.parallel_groups:
        suggestions.append("Mixed strategy declares no parallel groups and will run sequentially")

    return suggestions
#
# ============================================================================
# Function 3.4: analyze_orchestration
# ============================================================================
def analyze_orchestration(plan: Plan) -> OrchestrationAnalysis:
    analysis = OrchestrationAnalysis(
        parallelizable_actions=parallelizable_count(plan.actions),
        critical_path=critical_path(plan.actions),
        resource_conflicts=find_resource_conflicts(plan.actions),
        optimization_suggestions=generate_optimization_suggestions(plan),
    )
    logger.debug(
        f"Analyzed plan '{plan.name}': {analysis.parallelizable_actions} parallelizable, "
        f"critical path {len(analysis.critical_path)}, {len(analysis.resource_conflicts)} conflicts"
    )
    return analysis
#
# ============================================================================
# Function 3.5: validate_orchestration_plan
# ============================================================================
def validate_orchestration_plan(plan: Plan) -> PlanValidation:
    """
    Checks execution readiness: cycles, invalid references and resource
    conflicts are issues; low-confidence actions are recommendations.
    """
    issues: List[str] = []
    recommendations: List[str] = []

    if detect_cycle(plan.actions):
        issues.append(get_error_message('E105'))
    issues.extend(invalid_references(plan.actions))
    issues.extend(find_resource_conflicts(plan.actions))

    low_confidence = [a for a in plan.actions if a.confidence < LOW_CONFIDENCE]
    if low_confidence:
        recommendations.append(f"{len(low_confidence)} actions have low confidence - consider review")

    if issues:
        logger.warning(f"Plan '{plan.name}' is not ready: {issues}")
    return PlanValidation(is_ready=not issues, issues=issues, recommendations=recommendations)
#
#
## End of Script
