import asyncio
import csv
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from conftest import RecordingEvents, ScriptedRunner, make_plan

from plan_orchestrator.config_manager import ExecutorSettings
from plan_orchestrator.error_handling import AdmissionDeniedError
from plan_orchestrator.executor import WorkflowExecutor
from plan_orchestrator.models import ActionRef, Workflow, WorkflowStatus


def _uses(*resources, parallel=False, **extra):
    return dict({"coordination": {"parallel": parallel, "resources": list(resources)}}, **extra)


# ---------------------------------------------------------------------------
# sequential
# ---------------------------------------------------------------------------
async def test_dependent_action_runs_after_shared_resource_is_released(executor, runner, lock_manager):
    plan = make_plan([_uses("r1"), _uses("r1", dependencies=["action_0"])])

    report = await executor.execute_plan(plan)

    assert report == "Action 0 completed successfully\nAction 1 completed successfully"
    assert runner.started == [0, 1]
    assert lock_manager.held == frozenset()
    assert executor.active_workflows == {}


async def test_sequential_order_does_not_depend_on_latency(executor, runner):
    runner.delays = {0: 0.03, 1: 0.0, 2: 0.01}
    plan = make_plan([{}, {}, {}])

    report = await executor.execute_plan(plan)

    assert runner.started == [0, 1, 2]
    assert runner.max_active == 1
    assert report.splitlines() == [
        "Action 0 completed successfully",
        "Action 1 completed successfully",
        "Action 2 completed successfully",
    ]


async def test_failed_dependency_blocks_dependents(executor, runner):
    runner.results = {0: False}
    plan = make_plan([{}, {"dependencies": ["action_0"]}, {}])

    report = await executor.execute_plan(plan)

    assert report.splitlines() == [
        "Action 0 failed: Execution unsuccessful",
        "Action 1 failed: Dependencies not met",
        "Action 2 completed successfully",
    ]
    assert runner.started == [0, 2]


async def test_runner_error_is_reported_and_later_actions_continue(executor, runner, lock_manager):
    runner.results = {0: RuntimeError("disk full")}
    plan = make_plan([_uses("r1"), _uses("r1")])

    report = await executor.execute_plan(plan)

    assert report == "Action 0 error: disk full\nAction 1 completed successfully"
    assert lock_manager.held == frozenset()


async def test_dependency_on_missing_action_is_never_satisfied(executor, runner):
    plan = make_plan([{"dependencies": ["action_5"]}])

    report = await executor.execute_plan(plan)

    assert report == "Action 0 failed: Dependencies not met"
    assert runner.started == []


async def test_empty_plan_completes_with_empty_report(executor):
    events = RecordingEvents()
    executor.events = events

    assert await executor.execute_plan(make_plan([])) == ""
    assert events.events[-1]["status"] == "completed"


# ---------------------------------------------------------------------------
# admission
# ---------------------------------------------------------------------------
async def test_denied_admission_raises_with_ledger_reason(executor, ledger, runner):
    ledger.trigger_shutdown()
    events = RecordingEvents()
    executor.events = events

    with pytest.raises(AdmissionDeniedError) as info:
        await executor.execute_plan(make_plan([{}]))

    assert str(info.value) == "Emergency shutdown active - all AI operations disabled"
    assert info.value.decision.allowed is False
    assert runner.started == []
    assert executor.active_workflows == {}
    assert executor.get_orchestration_metrics()["workflows_finished"] == 0
    assert events.types() == ["plan_rejected"]


async def test_admission_uses_given_cost_and_operation(executor, ledger):
    ledger.record(65_000, 0)

    with pytest.raises(AdmissionDeniedError, match="Light degradation: reduce context size for planning"):
        await executor.execute_plan(make_plan([{}]), estimated_cost=6000, operation_class="planning")

    assert await executor.execute_plan(make_plan([{}])) == "Action 0 completed successfully"


# ---------------------------------------------------------------------------
# parallel
# ---------------------------------------------------------------------------
async def test_parallel_runs_independent_actions_concurrently(executor, runner):
    runner.delays = {0: 0.05, 1: 0.0, 2: 0.02}
    plan = make_plan(
        [
            _uses(parallel=True),
            _uses(parallel=True),
            _uses(parallel=True),
            _uses(parallel=False),
            _uses(parallel=True, dependencies=["action_0"]),
        ],
        strategy="parallel",
    )

    report = await executor.execute_plan(plan)

    assert runner.max_active == 3
    assert sorted(runner.started) == [0, 1, 2]
    assert report.splitlines() == [
        "Action 1 completed successfully",
        "Action 2 completed successfully",
        "Action 0 completed successfully",
    ]


async def test_parallel_actions_sharing_a_resource_are_mutually_exclusive(executor, runner, lock_manager):
    runner.delays = {0: 0.02, 1: 0.02}
    plan = make_plan([_uses("db", parallel=True), _uses("db", parallel=True)], strategy="parallel")

    report = await executor.execute_plan(plan)

    assert runner.started == [0]
    assert report.splitlines() == [
        "Action 1 failed: Resources unavailable",
        "Action 0 completed successfully",
    ]
    assert lock_manager.held == frozenset()


async def test_parallel_failure_does_not_short_circuit_siblings(executor, runner):
    runner.results = {0: ValueError("bad input")}
    runner.delays = {1: 0.02}
    plan = make_plan([_uses(parallel=True), _uses(parallel=True)], strategy="parallel")

    report = await executor.execute_plan(plan)

    assert report.splitlines() == ["Action 0 error: bad input", "Action 1 completed successfully"]


# ---------------------------------------------------------------------------
# mixed
# ---------------------------------------------------------------------------
async def test_mixed_runs_groups_in_order(executor, runner):
    runner.delays = {1: 0.02}
    plan = make_plan(
        [
            _uses("ui"),
            _uses("panel", parallel=True, dependencies=["action_0"]),
            _uses("hook", parallel=True, dependencies=["action_0"]),
            {"dependencies": ["action_1", "action_2"]},
        ],
        strategy="mixed",
        groups=[["action_0"], ["action_1", "action_2"], ["action_3"]],
    )

    report = await executor.execute_plan(plan)

    assert runner.started[0] == 0
    assert set(runner.started[1:3]) == {1, 2}
    assert runner.started[3] == 3
    assert runner.max_active == 2
    assert report.splitlines() == [
        "Action 0 completed successfully",
        "Action 2 completed successfully",
        "Action 1 completed successfully",
        "Action 3 completed successfully",
    ]


async def test_mixed_runs_repeated_group_member_once(executor, runner):
    plan = make_plan([{}], strategy="mixed")
    repeated = (ActionRef(0),)
    plan = replace(plan, orchestration=replace(plan.orchestration, parallel_groups=(repeated, repeated)))

    report = await executor.execute_plan(plan)

    assert report == "Action 0 completed successfully"
    assert runner.started == [0]


async def test_mixed_without_groups_runs_sequentially(executor, runner):
    plan = make_plan([{}, {}], strategy="mixed")

    await executor.execute_plan(plan)

    assert runner.started == [0, 1]
    assert runner.max_active == 1


async def test_mixed_reports_unknown_group_reference(executor, runner):
    plan = make_plan([{}], strategy="mixed", groups=[["action_0", "action_7"]])

    report = await executor.execute_plan(plan)

    assert report.splitlines() == [
        "Action 7 error: Unknown action reference action_7",
        "Action 0 completed successfully",
    ]
    assert runner.started == [0]


# ---------------------------------------------------------------------------
# stop, cancellation and contention
# ---------------------------------------------------------------------------
async def test_stop_pauses_workflow_and_skips_remaining_actions(executor, runner, lock_manager):
    seen = {}

    def stop_now(action):
        seen["workflow"] = next(iter(executor.active_workflows.values()))
        executor.stop()

    runner.hooks = {0: stop_now}
    plan = make_plan([_uses("r1"), {}, {}])

    report = await executor.execute_plan(plan)

    assert report == "Action 0 completed successfully"
    assert runner.started == [0]
    assert seen["workflow"].status is WorkflowStatus.PAUSED
    assert lock_manager.held == frozenset()
    assert executor.active_workflows == {}


async def test_stopped_action_does_not_release_a_later_holders_lock(executor, runner, lock_manager):
    runner.delays = {0: 0.05}
    stopped = make_plan([_uses("r1")])
    later = make_plan([_uses("r1", type="analyze_dependencies")])
    later_runner = ScriptedRunner(delays={0: 0.2})
    later_executor = WorkflowExecutor(
        later_runner, executor.ledger, settings=executor.settings, lock_manager=lock_manager
    )

    async def stop_then_reserve():
        await asyncio.sleep(0.01)
        executor.stop()
        return await later_executor.execute_plan(later)

    async def check_still_held():
        await asyncio.sleep(0.1)
        return lock_manager.is_held("r1")

    first, second, held_midway = await asyncio.gather(
        executor.execute_plan(stopped), stop_then_reserve(), check_still_held()
    )

    assert held_midway is True
    assert first == "Action 0 completed successfully"
    assert second == "Action 0 completed successfully"
    assert lock_manager.held == frozenset()


async def test_cancellation_while_announcing_workflow_still_tears_down(executor, runner):
    class SlowEvents(RecordingEvents):
        async def publish(self, event_type, **fields):
            await asyncio.sleep(0.05)
            return await super().publish(event_type, **fields)

    executor.events = SlowEvents()
    task = asyncio.ensure_future(executor.execute_plan(make_plan([{}])))
    await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert runner.started == []
    assert executor.active_workflows == {}
    assert executor.get_orchestration_metrics()["workflows_finished"] == 1


async def test_cancellation_releases_held_resources(executor, runner, lock_manager):
    runner.delays = {0: 10}
    task = asyncio.ensure_future(executor.execute_plan(make_plan([_uses("r1")])))

    for _ in range(5):
        await asyncio.sleep(0)
    assert lock_manager.is_held("r1")

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert lock_manager.held == frozenset()
    assert executor.active_workflows == {}


async def test_concurrent_workflows_contend_for_resources(executor, runner):
    runner.delays = {0: 0.05}
    slow = make_plan([_uses("r1")])
    quick = make_plan([_uses("r1", type="analyze_dependencies")])

    async def second():
        await asyncio.sleep(0.01)
        return await executor.execute_plan(quick)

    first_report, second_report = await asyncio.gather(executor.execute_plan(slow), second())

    assert first_report == "Action 0 completed successfully"
    assert second_report == "Action 0 failed: Resources unavailable"


async def test_unexpected_dispatch_error_fails_workflow_and_propagates(executor, monkeypatch):
    events = RecordingEvents()
    executor.events = events

    async def broken(workflow):
        raise RuntimeError("strategy crashed")

    monkeypatch.setattr(executor, "_execute_sequential", broken)

    with pytest.raises(RuntimeError, match="strategy crashed"):
        await executor.execute_plan(make_plan([{}]))

    assert events.events[-1]["status"] == "failed"
    assert executor.active_workflows == {}
    assert executor.get_orchestration_metrics()["workflows_finished"] == 1


async def test_runner_exceptions_never_escape_execute_plan(executor, runner):
    runner.results = {0: KeyError("missing"), 1: RuntimeError("")}
    plan = make_plan([{}, {}])

    report = await executor.execute_plan(plan)

    assert report.splitlines() == ["Action 0 error: 'missing'", "Action 1 error: RuntimeError"]


# ---------------------------------------------------------------------------
# progress, metrics, telemetry and events
# ---------------------------------------------------------------------------
async def test_metrics_are_updated_once_per_workflow(executor, runner):
    runner.results = {1: False}

    await executor.execute_plan(make_plan([{}, {}]))
    await executor.execute_plan(make_plan([{}]))

    metrics = executor.get_orchestration_metrics()
    assert metrics["total_executed"] == 3
    assert metrics["successful"] == 2
    assert metrics["failed"] == 1
    assert metrics["workflows_finished"] == 2
    assert metrics["active_workflows"] == 0


async def test_active_workflow_view_during_run(executor, runner):
    snapshots = []
    runner.hooks = {1: lambda action: snapshots.extend(executor.get_active_workflows())}

    await executor.execute_plan(make_plan([{}, {}]))

    assert len(snapshots) == 1
    assert snapshots[0]["status"] == "running"
    assert snapshots[0]["progress"] == 0.5


def test_time_remaining_extrapolates_from_progress(ledger, runner):
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)
    executor = WorkflowExecutor(runner, ledger, now=lambda: start + timedelta(seconds=10))
    plan = make_plan([{}, {}])
    workflow = Workflow(plan=plan, start_time=start)

    assert executor.estimate_time_remaining(workflow) == 30 * 60

    workflow.completed.add(0)
    assert executor.estimate_time_remaining(workflow) == pytest.approx(10.0)

    workflow.completed.add(1)
    assert executor.estimate_time_remaining(workflow) == 0.0


async def test_telemetry_rows_written_when_enabled(ledger, runner, tmp_path):
    settings = ExecutorSettings(
        inter_action_pause=0, inter_group_pause=0, telemetry_enabled=True, telemetry_dir=str(tmp_path)
    )
    runner.results = {1: False}
    executor = WorkflowExecutor(runner, ledger, settings=settings)

    await executor.execute_plan(make_plan([{}, {"type": "debug_issue"}]))

    with open(tmp_path / "telemetry.csv", newline="") as f:
        rows = list(csv.DictReader(f))
    assert [(r["component"], r["operation"], r["outcome"]) for r in rows] == [
        ("executor", "ask_user", "ok"),
        ("executor", "debug_issue", "failed"),
    ]


async def test_workflow_events_are_published(executor, runner):
    events = RecordingEvents()
    executor.events = events
    runner.results = {1: False}

    await executor.execute_plan(make_plan([{}, {}], name="demo"))

    assert events.types() == ["workflow_started", "workflow_finished"]
    started, finished = events.events
    assert started["plan"] == "demo"
    assert started["actions"] == 2
    assert finished["completed"] == [0]
    assert finished["failed"] == [1]


async def test_trigger_and_clear_shutdown_passthrough(executor, ledger):
    executor.trigger_shutdown()
    assert ledger.is_shutdown
    executor.clear_shutdown()
    assert not ledger.is_shutdown
