# ============================================================================
#  File: __init__.py
#  Purpose: Budget-gated execution of agent orchestration plans
# ============================================================================
from plan_orchestrator.budget_ledger import AdmissionDecision, BudgetLedger, DegradationLevel
from plan_orchestrator.error_handling import AdmissionDeniedError, OrchestrationError, PlanValidationError
from plan_orchestrator.executor import WorkflowExecutor
from plan_orchestrator.models import Action, ActionKind, ActionRef, ExecutionStrategy, Plan, Workflow, WorkflowStatus
from plan_orchestrator.plan_builder import build_plan
from plan_orchestrator.resource_locks import ResourceLockManager

__version__ = "0.1.0"

__all__ = [
    "Action",
    "ActionKind",
    "ActionRef",
    "AdmissionDecision",
    "AdmissionDeniedError",
    "BudgetLedger",
    "DegradationLevel",
    "ExecutionStrategy",
    "OrchestrationError",
    "Plan",
    "PlanValidationError",
    "ResourceLockManager",
    "Workflow",
    "WorkflowExecutor",
    "WorkflowStatus",
    "build_plan",
]
