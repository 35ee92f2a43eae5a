# ============================================================================
#  File: dependency_resolver.py
#  Purpose: Dependency checks, cycle detection and critical path tracing
# ============================================================================
# SECTION 1: Imports
# ============================================================================
#
from typing import FrozenSet, List, Sequence, Set

from plan_orchestrator.error_handling import get_error_message
from plan_orchestrator.models import Action, Workflow
#
# ============================================================================
# SECTION 2: Functions
# ============================================================================
# Function 2.1: dependencies_satisfied
# ============================================================================
def dependencies_satisfied(action: Action, workflow: Workflow) -> bool:
    """True iff every referenced action is in the workflow's completed set."""
    return all(dep.index in workflow.completed for dep in action.dependencies)
#
# ============================================================================
# Function 2.2: detect_cycle
# ============================================================================
def detect_cycle(actions: Sequence[Action]) -> bool:
    """
    Depth-first search over the dependency graph with a recursion stack.

    A self-reference counts as a cycle. References outside the plan are
    skipped here; ``invalid_references`` reports them.
    """
    visited: Set[int] = set()
    stack: Set[int] = set()

    def has_cycle(index: int) -> bool:
        if index in stack:
            return True
        if index in visited:
            return False

        visited.add(index)
        stack.add(index)

        for dep in actions[index].sorted_dependencies():
            if 0 <= dep.index < len(actions) and has_cycle(dep.index):
                return True

        stack.discard(index)
        return False

    return any(has_cycle(i) for i in range(len(actions)) if i not in visited)
#
# ============================================================================
# Function 2.3: invalid_references
# ============================================================================
def invalid_references(actions: Sequence[Action]) -> List[str]:
    """
    Structural problems in dependency references: self-references and
    indices outside the plan. At run time such an action simply never has
    its dependencies satisfied.
    """
    issues = []
    for action in actions:
        for dep in action.sorted_dependencies():
            if dep.index == action.index:
                issues.append(get_error_message('E106', f"action {action.index} depends on itself"))
            elif not 0 <= dep.index < len(actions):
                issues.append(
                    get_error_message('E106', f"action {action.index} references missing action {dep.index}")
                )
    return issues
#
# ============================================================================
# Function 2.4: critical_path
# ============================================================================
def _trace(action: Action, actions: Sequence[Action], visited: FrozenSet[int]) -> List[Action]:
    if action.index in visited:
        return []
    visited = visited | {action.index}

    if not action.dependencies:
        return [action]

    longest: List[Action] = []
    for dep in action.sorted_dependencies():
        if 0 <= dep.index < len(actions):
            sub_path = _trace(actions[dep.index], actions, visited)
            if len(sub_path) > len(longest):
                longest = sub_path
    return longest + [action]


def critical_path(actions: Sequence[Action]) -> List[Action]:
    """
    Longest dependency chain in the plan, ordered from root to leaf.

    Each trace carries its own visited set, which also stops recursion on a
    cycle. The first action (by index) reaching the maximum length wins.
    """
    longest: List[Action] = []
    for action in actions:
        path = _trace(action, actions, frozenset())
        if len(path) > len(longest):
            longest = path
    return longest
#
#
## End of Script
