# ============================================================================
#  File: models.py
#  Purpose: Plan, action and workflow data structures for the orchestrator
# ============================================================================
# SECTION 1: Imports
# ============================================================================
#
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple, Union

from plan_orchestrator.error_handling import PlanValidationError
#
# ============================================================================
# SECTION 2: Enums
# ============================================================================
# Class 2.1: ActionKind
# ============================================================================
class ActionKind(Enum):
    """Closed set of action categories a plan may contain"""

    IMPROVE_FILE = "improve_file"
    CREATE_FILE = "create_file"
    DELETE_FILE = "delete_file"
    ASK_USER = "ask_user"
    DEBUG_ISSUE = "debug_issue"
    ADD_FEATURE = "add_feature"
    SPAWN_AGENT = "spawn_agent"
    COORDINATE_AGENTS = "coordinate_agents"
    ANALYZE_DEPENDENCIES = "analyze_dependencies"
    GENERATE_TESTS = "generate_tests"
#
# ============================================================================
# Class 2.2: Level
# ============================================================================
class Level(Enum):
    """Advisory low/medium/high scale for priority, impact and risk"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
#
# ============================================================================
# Class 2.3: ExecutionStrategy
# ============================================================================
class ExecutionStrategy(Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    MIXED = "mixed"
#
# ============================================================================
# Class 2.4: WorkflowStatus
# ============================================================================
class WorkflowStatus(Enum):
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
#
# ============================================================================
# Class 2.5: ActionOutcome
# ============================================================================
class ActionOutcome(Enum):
    """How one action ended within a single workflow run"""

    COMPLETED = "completed"
    DEPENDENCIES_UNMET = "dependencies_unmet"
    RESOURCES_UNAVAILABLE = "resources_unavailable"
    EXECUTION_FAILED = "execution_failed"
    EXECUTION_ERROR = "execution_error"

    @property
    def succeeded(self) -> bool:
        return self is ActionOutcome.COMPLETED
#
# ============================================================================
# SECTION 3: Action References
# ============================================================================
# Class 3.1: ActionRef
# ============================================================================
_REF_PATTERN = re.compile(r"^(?:action_)?(\d+)$")


@dataclass(frozen=True, order=True)
class ActionRef:
    """
    Typed reference to an action by its 0-based position in a plan.

    Planner output and templates spell references as ``action_<n>``; that
    text is converted here, once, when a plan is built.
    """

    index: int

    def __str__(self) -> str:
        return f"action_{self.index}"

    @classmethod
    def parse(cls, value: Union[int, str, "ActionRef"]) -> "ActionRef":
        if isinstance(value, ActionRef):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        if isinstance(value, str):
            match = _REF_PATTERN.match(value.strip())
            if match:
                return cls(int(match.group(1)))
        raise PlanValidationError(f"Invalid action reference: {value!r}")
#
# ============================================================================
# SECTION 4: Action Payloads
# ============================================================================
# Each action kind carries only the fields relevant to it.
# ============================================================================
@dataclass(frozen=True)
class FileTarget:
    target: Optional[str] = None


@dataclass(frozen=True)
class OperatorQuestion:
    question: str = ""


@dataclass(frozen=True)
class SpawnCollaborator:
    agent_type: Optional[str] = None


@dataclass(frozen=True)
class DiagnoseIssue:
    target: Optional[str] = None


@dataclass(frozen=True)
class NoPayload:
    pass


ActionPayload = Union[FileTarget, OperatorQuestion, SpawnCollaborator, DiagnoseIssue, NoPayload]

PAYLOAD_TYPES = {
    ActionKind.IMPROVE_FILE: FileTarget,
    ActionKind.CREATE_FILE: FileTarget,
    ActionKind.DELETE_FILE: FileTarget,
    ActionKind.ADD_FEATURE: FileTarget,
    ActionKind.GENERATE_TESTS: FileTarget,
    ActionKind.ASK_USER: OperatorQuestion,
    ActionKind.DEBUG_ISSUE: DiagnoseIssue,
    ActionKind.SPAWN_AGENT: SpawnCollaborator,
    ActionKind.COORDINATE_AGENTS: NoPayload,
    ActionKind.ANALYZE_DEPENDENCIES: NoPayload,
}
#
# ============================================================================
# SECTION 5: Plan Structures
# ============================================================================
# Class 5.1: Coordination
# ============================================================================
@dataclass(frozen=True)
class Coordination:
    """Scheduling hints. Constraints are informational and never enforced."""

    parallel: bool = False
    resources: FrozenSet[str] = frozenset()
    constraints: Tuple[str, ...] = ()
#
# ============================================================================
# Class 5.2: Action
# ============================================================================
@dataclass(frozen=True)
class Action:
    """An atomic unit of orchestrated work."""

    index: int
    kind: ActionKind
    payload: Optional[ActionPayload] = None
    reason: str = "No reason provided"
    dependencies: FrozenSet[ActionRef] = frozenset()
    coordination: Coordination = field(default_factory=Coordination)
    priority: Level = Level.MEDIUM
    impact: Level = Level.MEDIUM
    confidence: float = 0.7
    estimated_time: str = "Unknown"

    def __post_init__(self):
        expected = PAYLOAD_TYPES[self.kind]
        if self.payload is None:
            object.__setattr__(self, "payload", expected())
        if not isinstance(self.payload, expected):
            raise PlanValidationError(
                f"Action {self.index} ({self.kind.value}) expects {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )

    @property
    def ref(self) -> ActionRef:
        return ActionRef(self.index)

    @property
    def target(self) -> Optional[str]:
        return getattr(self.payload, "target", None)

    @property
    def resources(self) -> FrozenSet[str]:
        return self.coordination.resources

    @property
    def is_parallel(self) -> bool:
        return self.coordination.parallel

    def sorted_dependencies(self) -> List[ActionRef]:
        return sorted(self.dependencies)
#
# ============================================================================
# Class 5.3: Orchestration
# ============================================================================
@dataclass(frozen=True)
class Orchestration:
    strategy: ExecutionStrategy = ExecutionStrategy.SEQUENTIAL
    estimated_duration: float = 30  # minutes
    resource_requirements: Tuple[str, ...] = ()
    risk_level: Level = Level.MEDIUM
    dependencies: Dict[ActionRef, Tuple[ActionRef, ...]] = field(default_factory=dict)
    parallel_groups: Tuple[Tuple[ActionRef, ...], ...] = ()
#
# ============================================================================
# Class 5.4: QualityMetrics
# ============================================================================
@dataclass(frozen=True)
class QualityMetrics:
    """Advisory scores in [0, 1]; the scheduler never reads them."""

    plan_completeness: float = 0.7
    action_cohesion: float = 0.7
    implementation_feasibility: float = 0.7
#
# ============================================================================
# Class 5.5: Plan
# ============================================================================
@dataclass(frozen=True)
class Plan:
    """
    A named, ordered collection of actions plus orchestration metadata.
    Action order defines identity and is fixed once the plan exists.
    """

    name: str
    actions: Tuple[Action, ...]
    analysis: str = "Analysis not provided"
    confidence: float = 0.5
    orchestration: Orchestration = field(default_factory=Orchestration)
    quality: QualityMetrics = field(default_factory=QualityMetrics)
    plan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        for position, action in enumerate(self.actions):
            if action.index != position:
                raise PlanValidationError(
                    f"Action at position {position} carries index {action.index}"
                )

    def __len__(self) -> int:
        return len(self.actions)

    def action(self, ref: ActionRef) -> Optional[Action]:
        """Returns the referenced action, or None for an out-of-range reference."""
        if 0 <= ref.index < len(self.actions):
            return self.actions[ref.index]
        return None

    @property
    def strategy(self) -> ExecutionStrategy:
        return self.orchestration.strategy
#
# ============================================================================
# SECTION 6: Execution State
# ============================================================================
# Class 6.1: ActionResult
# ============================================================================
_RESULT_TEMPLATES = {
    ActionOutcome.COMPLETED: "Action {index} completed successfully",
    ActionOutcome.DEPENDENCIES_UNMET: "Action {index} failed: Dependencies not met",
    ActionOutcome.RESOURCES_UNAVAILABLE: "Action {index} failed: Resources unavailable",
    ActionOutcome.EXECUTION_FAILED: "Action {index} failed: Execution unsuccessful",
    ActionOutcome.EXECUTION_ERROR: "Action {index} error: {detail}",
}


@dataclass(frozen=True)
class ActionResult:
    index: int
    outcome: ActionOutcome
    detail: Optional[str] = None

    @property
    def message(self) -> str:
        return _RESULT_TEMPLATES[self.outcome].format(index=self.index, detail=self.detail or "Unknown error")
#
# ============================================================================
# Class 6.2: Workflow
# ============================================================================
@dataclass
class Workflow:
    """Live execution state for one submitted plan."""

    plan: Plan
    workflow_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: WorkflowStatus = WorkflowStatus.RUNNING
    current_action_index: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    parallel_executions: Set[int] = field(default_factory=set)
    completed: Set[int] = field(default_factory=set)
    failed: Set[int] = field(default_factory=set)
    resources_in_use: Set[str] = field(default_factory=set)
    results: List[ActionResult] = field(default_factory=list)

    @property
    def is_running(self) -> bool:
        return self.status is WorkflowStatus.RUNNING

    @property
    def progress(self) -> float:
        total = len(self.plan.actions)
        return len(self.completed) / total if total else 0.0

    def record(self, result: ActionResult) -> ActionResult:
        # keeps completed and failed disjoint
        if result.outcome.succeeded:
            self.failed.discard(result.index)
            self.completed.add(result.index)
        else:
            self.completed.discard(result.index)
            self.failed.add(result.index)
        self.results.append(result)
        return result

    def report(self) -> str:
        return "\n".join(result.message for result in self.results)
#
#
## End of Script
