import asyncio
from typing import Any, Dict, List, Optional

import pytest

from plan_orchestrator.budget_ledger import BudgetLedger
from plan_orchestrator.config_manager import BudgetConfig, ExecutorSettings
from plan_orchestrator.executor import WorkflowExecutor
from plan_orchestrator.plan_builder import build_plan
from plan_orchestrator.resource_locks import ResourceLockManager
from plan_orchestrator.runners import ActionRunner


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedRunner(ActionRunner):
    """Returns scripted outcomes per action index after an optional delay."""

    def __init__(self, results: Optional[Dict[int, Any]] = None, delays: Optional[Dict[int, float]] = None):
        self.results = results or {}
        self.delays = delays or {}
        self.started: List[int] = []
        self.finished: List[int] = []
        self.active = 0
        self.max_active = 0
        self.hooks: Dict[int, Any] = {}

    async def execute(self, action):
        self.started.append(action.index)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            hook = self.hooks.get(action.index)
            if hook is not None:
                hook(action)
            await asyncio.sleep(self.delays.get(action.index, 0))
            outcome = self.results.get(action.index, True)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.active -= 1
            self.finished.append(action.index)


class RecordingEvents:
    """Stands in for an EventStream; keeps published events in memory."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def publish(self, event_type: str, **fields: Any) -> int:
        self.events.append({"type": event_type, **fields})
        return 1

    def types(self) -> List[str]:
        return [e["type"] for e in self.events]


def make_plan(actions, strategy="sequential", groups=None, **extra):
    """Plan from terse action dicts; every action defaults to ask_user."""
    orchestration = {"execution_strategy": strategy}
    if groups is not None:
        orchestration["parallel_groups"] = groups
    data = {
        "name": extra.pop("name", "test plan"),
        "actions": [dict({"type": "ask_user", "question": "ok?"}, **a) for a in actions],
        "orchestration": orchestration,
    }
    data.update(extra)
    return build_plan(data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return BudgetLedger(BudgetConfig(), clock=clock)


@pytest.fixture
def runner():
    return ScriptedRunner()


@pytest.fixture
def settings():
    return ExecutorSettings(inter_action_pause=0, inter_group_pause=0)


@pytest.fixture
def lock_manager():
    return ResourceLockManager()


@pytest.fixture
def executor(runner, ledger, settings, lock_manager):
    return WorkflowExecutor(runner, ledger, settings=settings, lock_manager=lock_manager)
