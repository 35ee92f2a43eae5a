# ============================================================================
#  File: runners.py
#  Purpose: Action runner interface and the built-in runners
# ============================================================================
# SECTION 1: Imports
# ============================================================================
#
from abc import ABC, abstractmethod
from typing import Dict, Optional

from loguru import logger

from plan_orchestrator.event_stream import EventStream
from plan_orchestrator.models import Action, ActionKind, Level
#
# ============================================================================
# SECTION 2: ActionRunner
# ============================================================================
class ActionRunner(ABC):
    """
    Executes one action. Returning False or raising both count as a failed
    action; a raised error's message ends up in the workflow report.
    Timeouts, if any, are the runner's responsibility.
    """

    @abstractmethod
    async def execute(self, action: Action) -> bool:
        raise NotImplementedError
#
# ============================================================================
# SECTION 3: NotifyingRunner
# ============================================================================
FILE_KINDS = (ActionKind.IMPROVE_FILE, ActionKind.CREATE_FILE, ActionKind.DELETE_FILE)


class NotifyingRunner(ActionRunner):
    """
    Hands actions off to whoever listens on the event stream (the UI or
    other agents). Kinds with no downstream handler are reported as failed.
    """

    def __init__(self, events: Optional[EventStream] = None):
        self.events = events

    async def _send(self, receiver: str, content: str, action: Action, tags) -> None:
        if self.events is None:
            return
        await self.events.publish(
            "action_request",
            receiver=receiver,
            content=content,
            priority="high" if action.priority is Level.HIGH else "medium",
            action_type=action.kind.value,
            target=action.target,
            tags=list(tags),
        )

    async def execute(self, action: Action) -> bool:
        logger.info(f"Executing action: {action.kind.value} - {action.reason}")

        if action.kind is ActionKind.ASK_USER:
            await self._send("USER", f"Question: {action.payload.question}", action, ["user-question", "planning"])
            return True

        if action.kind in FILE_KINDS:
            await self._send(
                "ALL",
                f"Action ready: {action.kind.value} for {action.target} - {action.reason}",
                action,
                ["file-action", "planning"],
            )
            return True

        if action.kind is ActionKind.GENERATE_TESTS:
            await self._send(
                "ALL", f"Test generation recommended: {action.reason}", action, ["test-generation", "planning"]
            )
            return True

        logger.warning(f"No downstream handler for action type '{action.kind.value}'")
        return False
#
# ============================================================================
# SECTION 4: KindRoutingRunner
# ============================================================================
class KindRoutingRunner(ActionRunner):
    """Routes each action to the runner registered for its kind."""

    def __init__(
        self,
        handlers: Optional[Dict[ActionKind, ActionRunner]] = None,
        fallback: Optional[ActionRunner] = None,
    ):
        self.handlers: Dict[ActionKind, ActionRunner] = dict(handlers or {})
        self.fallback = fallback

    def register(self, kind: ActionKind, runner: ActionRunner) -> None:
        self.handlers[kind] = runner
        logger.debug(f"Registered {type(runner).__name__} for '{kind.value}' actions")

    async def execute(self, action: Action) -> bool:
        runner = self.handlers.get(action.kind, self.fallback)
        if runner is None:
            raise LookupError(f"No runner registered for action type '{action.kind.value}'")
        return await runner.execute(action)
#
#
## End of Script
