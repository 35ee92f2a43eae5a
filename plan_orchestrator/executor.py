# ============================================================================
#  File: executor.py
#  Purpose: Runs orchestration plans under sequential, parallel or mixed
#           strategies behind the token-budget admission gate
# ============================================================================
# SECTION 1: Global Variable Definitions & Imports
# ============================================================================
import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from plan_orchestrator.budget_ledger import BudgetLedger
from plan_orchestrator.config import (
    AUTO_EXECUTE_SAFE_PATHS,
    DEFAULT_PLAN_COST_ESTIMATE,
    DEFAULT_PLAN_OPERATION,
)
from plan_orchestrator.config_manager import ExecutorSettings
from plan_orchestrator.dependency_resolver import dependencies_satisfied
from plan_orchestrator.error_handling import AdmissionDeniedError, describe_exception
from plan_orchestrator.event_stream import EventStream
from plan_orchestrator.models import (
    Action,
    ActionKind,
    ActionOutcome,
    ActionResult,
    ExecutionStrategy,
    Plan,
    Workflow,
    WorkflowStatus,
)
from plan_orchestrator.resource_locks import ResourceLockManager
from plan_orchestrator.runners import ActionRunner
from plan_orchestrator.telemetry import record_telemetry
#
# ============================================================================
# SECTION 2: Data Structures
# ============================================================================
# Class 2.1: ExecutionMetrics
# ============================================================================
@dataclass
class ExecutionMetrics:
    """Aggregates updated once per finished workflow. Times are in seconds."""

    total_executed: int = 0
    successful: int = 0
    failed: int = 0
    average_execution_time: float = 0.0
    last_execution_time: float = 0.0
    workflows_finished: int = 0
#
# ============================================================================
# Class 2.2: WorkflowExecutor
# ============================================================================
# Owns the active workflow registry, the resource lock table and the
# auto-execution queue. All strategies share one per-action protocol:
# dependency check, scoped resource reservation, runner call, record.
# ============================================================================
class WorkflowExecutor:
    #
    # =========================================================================
    # Method 2.2.1: __init__
    # =========================================================================
    #
    def __init__(
        self,
        runner: ActionRunner,
        ledger: BudgetLedger,
        settings: Optional[ExecutorSettings] = None,
        lock_manager: Optional[ResourceLockManager] = None,
        events: Optional[EventStream] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.runner = runner
        self.ledger = ledger
        self.settings = settings or ExecutorSettings()
        self.locks = lock_manager or ResourceLockManager()
        self.events = events
        self._now = now or (lambda: datetime.now(timezone.utc))

        self.active_workflows: Dict[str, Workflow] = {}
        self._metrics = ExecutionMetrics()
        self._queue: List[Action] = []
        self._is_executing = False
        self._queue_task: Optional[asyncio.Task] = None
    #
    # =========================================================================
    # Method 2.2.2: update_settings
    # =========================================================================
    #
    def update_settings(self, **changes: Any) -> ExecutorSettings:
        self.settings = self.settings.model_copy(update=changes)
        logger.info(
            f"Settings updated: Auto-execution {'enabled' if self.settings.enable_auto_execution else 'disabled'}"
        )
        return self.settings
    #
    # =========================================================================
    # Async Method 2.2.3: execute_plan
    # =========================================================================
    #
    async def execute_plan(
        self,
        plan: Plan,
        estimated_cost: int = DEFAULT_PLAN_COST_ESTIMATE,
        operation_class: str = DEFAULT_PLAN_OPERATION,
    ) -> str:
        """
        Runs a plan to completion and returns the aggregated text report.

        Args:
            plan: The plan to execute
            estimated_cost: Token estimate submitted to the budget ledger
            operation_class: Operation class submitted to the budget ledger

        Returns:
            str: One line per resolved action, in execution (sequential) or
                settlement (parallel, mixed) order

        Raises:
            AdmissionDeniedError: The ledger refused the run; nothing executed
        """
        decision = self.ledger.admit(estimated_cost, operation_class)
        if not decision.allowed:
            logger.warning(f"Plan '{plan.name}' rejected by token budget: {decision.reason}")
            await self._publish("plan_rejected", plan=plan.name, reason=decision.reason)
            raise AdmissionDeniedError(decision)

        workflow = Workflow(plan=plan, start_time=self._now())
        self.active_workflows[workflow.workflow_id] = workflow

        logger.info(
            f"Starting orchestrated workflow {workflow.workflow_id}: "
            f"{len(plan.actions)} actions, {plan.strategy.value} strategy"
        )
        try:
            await self._publish(
                "workflow_started",
                workflow_id=workflow.workflow_id,
                plan=plan.name,
                strategy=plan.strategy.value,
                actions=len(plan.actions),
            )
            report = await self._dispatch(workflow)
            if workflow.is_running:
                workflow.status = WorkflowStatus.COMPLETED
            logger.info(
                f"Workflow {workflow.workflow_id} {workflow.status.value}: "
                f"{len(workflow.completed)} completed, {len(workflow.failed)} failed"
            )
            return report
        except Exception:
            workflow.status = WorkflowStatus.FAILED
            logger.exception(f"Workflow {workflow.workflow_id} failed")
            raise
        finally:
            self._teardown(workflow)
            await self._publish(
                "workflow_finished",
                workflow_id=workflow.workflow_id,
                status=workflow.status.value,
                completed=sorted(workflow.completed),
                failed=sorted(workflow.failed),
            )
    #
    # =========================================================================
    # Method 2.2.4: _teardown
    # =========================================================================
    #
    def _teardown(self, workflow: Workflow) -> None:
        """Releases what the workflow still owns and folds it into the metrics."""
        if workflow.resources_in_use:
            self.locks.release(set(workflow.resources_in_use), workflow)
        self.active_workflows.pop(workflow.workflow_id, None)

        elapsed = (self._now() - workflow.start_time).total_seconds()
        m = self._metrics
        m.total_executed += len(workflow.completed) + len(workflow.failed)
        m.successful += len(workflow.completed)
        m.failed += len(workflow.failed)
        m.last_execution_time = elapsed
        m.workflows_finished += 1
        m.average_execution_time += (elapsed - m.average_execution_time) / m.workflows_finished
    #
    # =========================================================================
    # Async Method 2.2.5: _dispatch
    # =========================================================================
    #
    async def _dispatch(self, workflow: Workflow) -> str:
        strategy = workflow.plan.strategy
        if strategy is ExecutionStrategy.PARALLEL:
            return await self._execute_parallel(workflow)
        if strategy is ExecutionStrategy.MIXED:
            return await self._execute_mixed(workflow)
        return await self._execute_sequential(workflow)
    #
    # =========================================================================
    # Async Method 2.2.6: _execute_sequential
    # =========================================================================
    #
    async def _execute_sequential(self, workflow: Workflow) -> str:
        """Strict index order; stops early once the workflow leaves 'running'."""
        actions = workflow.plan.actions
        for action in actions:
            if not workflow.is_running:
                logger.info(f"Workflow {workflow.workflow_id} is {workflow.status.value}; stopping at action {action.index}")
                break
            workflow.current_action_index = action.index
            result = await self._execute_action(workflow, action)

            ran = result.outcome not in (ActionOutcome.DEPENDENCIES_UNMET, ActionOutcome.RESOURCES_UNAVAILABLE)
            if ran and action.index < len(actions) - 1:
                await asyncio.sleep(self.settings.inter_action_pause)
        return workflow.report()
    #
    # =========================================================================
    # Async Method 2.2.7: _execute_parallel
    # =========================================================================
    #
    async def _execute_parallel(self, workflow: Workflow) -> str:
        """Launches every dependency-free, concurrent-capable action at once."""
        selected = [a for a in workflow.plan.actions if a.is_parallel and not a.dependencies]
        skipped = len(workflow.plan.actions) - len(selected)
        if skipped:
            logger.info(f"Parallel strategy skips {skipped} actions that are sequential or have dependencies")
        await self._run_batch(workflow, selected)
        return workflow.report()
    #
    # =========================================================================
    # Async Method 2.2.8: _execute_mixed
    # =========================================================================
    #
    async def _execute_mixed(self, workflow: Workflow) -> str:
        """Declared parallel groups in order, each group fully concurrent."""
        plan = workflow.plan
        groups = plan.orchestration.parallel_groups
        if not groups:
            logger.info("Mixed strategy without parallel groups; falling back to sequential")
            return await self._execute_sequential(workflow)

        scheduled = set()
        for number, group in enumerate(groups):
            if not workflow.is_running:
                logger.info(f"Workflow {workflow.workflow_id} is {workflow.status.value}; skipping remaining groups")
                break

            batch = []
            for ref in group:
                action = plan.action(ref)
                if action is None:
                    logger.warning(f"Parallel group {number} references unknown action {ref}")
                    workflow.results.append(
                        ActionResult(ref.index, ActionOutcome.EXECUTION_ERROR, f"Unknown action reference {ref}")
                    )
                elif action.index in scheduled:
                    logger.warning(f"Parallel group {number} repeats {ref}; it runs only once")
                else:
                    scheduled.add(action.index)
                    batch.append(action)

            await self._run_batch(workflow, batch)
            if number < len(groups) - 1:
                await asyncio.sleep(self.settings.inter_group_pause)
        return workflow.report()
    #
    # =========================================================================
    # Async Method 2.2.9: _run_batch
    # =========================================================================
    #
    async def _run_batch(self, workflow: Workflow, actions: Sequence[Action]) -> List[ActionResult]:
        """Runs actions concurrently and waits for all of them to settle."""

        async def run_one(action: Action) -> ActionResult:
            workflow.parallel_executions.add(action.index)
            try:
                return await self._execute_action(workflow, action)
            finally:
                workflow.parallel_executions.discard(action.index)

        if actions:
            logger.info(f"Executing {len(actions)} actions concurrently: {[a.index for a in actions]}")
        return list(await asyncio.gather(*(run_one(a) for a in actions)))
    #
    # =========================================================================
    # Async Method 2.2.10: _execute_action
    # =========================================================================
    #
    async def _execute_action(self, workflow: Workflow, action: Action) -> ActionResult:
        """
        Per-action protocol. Every failure is recorded and returned; nothing
        but cancellation escapes. The scoped reservation guarantees release.
        """
        if not dependencies_satisfied(action, workflow):
            return self._finish(workflow, ActionResult(action.index, ActionOutcome.DEPENDENCIES_UNMET))

        with self.locks.reserved(action.resources, workflow) as acquired:
            if not acquired:
                return self._finish(workflow, ActionResult(action.index, ActionOutcome.RESOURCES_UNAVAILABLE))
            try:
                success = await self._invoke_runner(action)
            except Exception as e:
                return self._finish(
                    workflow, ActionResult(action.index, ActionOutcome.EXECUTION_ERROR, describe_exception(e))
                )
            outcome = ActionOutcome.COMPLETED if success else ActionOutcome.EXECUTION_FAILED
            return self._finish(workflow, ActionResult(action.index, outcome))

    def _finish(self, workflow: Workflow, result: ActionResult) -> ActionResult:
        workflow.record(result)
        if result.outcome.succeeded:
            logger.info(f"[{workflow.workflow_id}] {result.message}")
        else:
            logger.warning(f"[{workflow.workflow_id}] {result.message}")
        return result

    async def _invoke_runner(self, action: Action) -> bool:
        call = self.runner.execute
        if self.settings.telemetry_enabled:
            call = record_telemetry("executor", action.kind.value, self.settings.telemetry_dir)(call)
        return bool(await call(action))
    #
    # =========================================================================
    # Method 2.2.11: Progress and metrics
    # =========================================================================
    #
    def estimate_time_remaining(self, workflow: Workflow) -> float:
        """Seconds left, extrapolated from progress; the plan estimate before any progress."""
        progress = workflow.progress
        if progress == 0:
            return workflow.plan.orchestration.estimated_duration * 60
        elapsed = (self._now() - workflow.start_time).total_seconds()
        return max(0.0, elapsed / progress - elapsed)

    def get_active_workflows(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": workflow.workflow_id,
                "status": workflow.status.value,
                "progress": workflow.progress,
                "estimated_time_remaining": self.estimate_time_remaining(workflow),
            }
            for workflow in list(self.active_workflows.values())
        ]

    def get_orchestration_metrics(self) -> Dict[str, Any]:
        metrics = asdict(self._metrics)
        metrics["active_workflows"] = len(self.active_workflows)
        return metrics
    #
    # =========================================================================
    # Method 2.2.12: Emergency controls
    # =========================================================================
    #
    def trigger_shutdown(self) -> None:
        self.ledger.trigger_shutdown()

    def clear_shutdown(self) -> None:
        self.ledger.clear_shutdown()

    def stop(self) -> None:
        """
        Emergency stop for the whole process: pauses every active workflow,
        empties the auto-execution queue and drops every resource lock,
        whoever holds it.
        """
        self._is_executing = False
        self.clear_queue()
        for workflow in self.active_workflows.values():
            workflow.status = WorkflowStatus.PAUSED
            workflow.resources_in_use.clear()
        self.locks.release_all()
        logger.warning(f"Auto-execution stopped; {len(self.active_workflows)} workflows paused")
    #
    # =========================================================================
    # Method 2.2.13: Auto-execution queue
    # =========================================================================
    #
    def is_action_executable(self, action: Action) -> bool:
        """Whether an action is safe to run unattended under current settings."""
        if action.kind.value not in self.settings.auto_execute_types:
            return False

        if self.settings.safe_mode:
            return action.kind in (ActionKind.ASK_USER, ActionKind.DEBUG_ISSUE)

        if action.kind is ActionKind.DELETE_FILE:
            return True
        if action.kind in (ActionKind.IMPROVE_FILE, ActionKind.CREATE_FILE):
            target = action.target
            return bool(target) and any(target.startswith(p) for p in AUTO_EXECUTE_SAFE_PATHS)
        return action.kind in (ActionKind.ASK_USER, ActionKind.DEBUG_ISSUE)

    def queue_actions_from_plan(self, plan: Plan) -> int:
        """
        Queues the plan's auto-executable actions (up to max_actions_per_run)
        and starts draining the queue. Must be called with a running loop.

        Returns:
            int: Number of actions queued
        """
        if not self.settings.enable_auto_execution:
            return 0

        if not self.ledger.is_auto_execution_allowed():
            analytics = self.ledger.analytics()
            logger.warning(
                f"Auto-execution blocked by token budget system "
                f"({round(analytics.usage_fraction * 100)}% daily usage)"
            )
            return 0

        executable = [a for a in plan.actions if self.is_action_executable(a)]
        executable = executable[: self.settings.max_actions_per_run]
        self._queue.extend(executable)

        if executable:
            logger.info(f"Queued {len(executable)} actions for auto-execution")
            if not self._is_executing:
                self._queue_task = asyncio.get_running_loop().create_task(self._process_queue())
        return len(executable)

    async def _process_queue(self) -> None:
        if self._is_executing or not self._queue:
            return

        self._is_executing = True
        try:
            while self._queue:
                action = self._queue.pop(0)
                logger.info(f"Auto-executing action: {action.kind.value} - {action.reason}")
                try:
                    if not await self._invoke_runner(action):
                        logger.warning(f"Auto-executed action {action.index} reported failure")
                except Exception as e:
                    logger.error(f"Failed to execute action: {describe_exception(e)}")
                if self._queue:
                    await asyncio.sleep(self.settings.inter_action_pause)
        finally:
            self._is_executing = False

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_executing": self._is_executing,
            "queue_length": len(self._queue),
            "settings": self.settings.model_dump(),
        }

    def clear_queue(self) -> None:
        self._queue.clear()
        logger.info("Execution queue cleared")
    #
    # =========================================================================
    # Async Method 2.2.14: _publish
    # =========================================================================
    #
    async def _publish(self, event_type: str, **fields: Any) -> None:
        if self.events is not None:
            await self.events.publish(event_type, **fields)
#
#
## End of Script
