# ============================================================================
#  File: budget_monitor.py
#  Purpose: Periodic budget checks, alerts, automatic shutdown and recovery
# ============================================================================
# SECTION 1: Imports
# ============================================================================
#
import asyncio
import inspect
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from plan_orchestrator.budget_ledger import BudgetLedger, BudgetStatus, describe_degradation, format_time_until_reset
from plan_orchestrator.config import RECOVERY_CHECK_INTERVAL, SHUTDOWN_GRACE_PERIOD, USAGE_CHECK_INTERVAL
from plan_orchestrator.error_handling import describe_exception
from plan_orchestrator.event_stream import EventStream

Callback = Callable[[], Any]
#
# ============================================================================
# SECTION 2: BudgetMonitor
# ============================================================================
class BudgetMonitor:
    """
    Watches a BudgetLedger for status transitions.

    Entering ``critical`` raises an alert and, when emergency shutdown is
    enabled, schedules a shutdown after a grace period. Entering
    ``emergency`` runs the shutdown callbacks; returning to ``normal`` runs
    the recovery callbacks. Callbacks may be plain functions or coroutine
    functions. Their failures are logged and never propagate.
    """

    def __init__(
        self,
        ledger: BudgetLedger,
        events: Optional[EventStream] = None,
        usage_interval: float = USAGE_CHECK_INTERVAL,
        recovery_interval: float = RECOVERY_CHECK_INTERVAL,
        grace_period: float = SHUTDOWN_GRACE_PERIOD,
    ):
        self.ledger = ledger
        self.events = events
        self.usage_interval = usage_interval
        self.recovery_interval = recovery_interval
        self.grace_period = grace_period

        self._last_status = ledger.status()
        self._shutdown_callbacks: List[Callback] = []
        self._recovery_callbacks: List[Callback] = []
        self._tasks: List[asyncio.Task] = []
        self._pending_shutdown: Optional[asyncio.Task] = None

    # ========================================================================
    # Function 2.1: Callback registration
    # ========================================================================
    def on_emergency_shutdown(self, callback: Callback) -> None:
        self._shutdown_callbacks.append(callback)

    def off_emergency_shutdown(self, callback: Callback) -> None:
        if callback in self._shutdown_callbacks:
            self._shutdown_callbacks.remove(callback)

    def on_recovery(self, callback: Callback) -> None:
        self._recovery_callbacks.append(callback)

    def off_recovery(self, callback: Callback) -> None:
        if callback in self._recovery_callbacks:
            self._recovery_callbacks.remove(callback)

    async def _run_callbacks(self, callbacks: List[Callback], kind: str) -> None:
        for callback in list(callbacks):
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in {kind} callback {getattr(callback, '__name__', callback)}: {describe_exception(e)}")

    # ========================================================================
    # Async Function 2.2: check_usage
    # ========================================================================
    async def check_usage(self) -> BudgetStatus:
        """Compares the current status with the last one seen and reacts to changes."""
        analytics = self.ledger.analytics()
        status = analytics.status
        previous = self._last_status
        if status is previous:
            return status

        self._last_status = status
        percent = round(analytics.usage_fraction * 100)
        logger.info(f"Budget status changed: {previous.value} -> {status.value} ({percent}%)")

        if status is BudgetStatus.CRITICAL:
            await self._alert("critical", f"Token usage critical: {percent}% of daily limit")
            config = self.ledger.config
            if config.emergency_shutdown_enabled and analytics.usage_fraction >= config.critical_threshold:
                self._schedule_shutdown()
        elif status is BudgetStatus.WARNING:
            await self._alert("warning", f"Token usage warning: {percent}% of daily limit")
        elif status is BudgetStatus.EMERGENCY:
            await self._alert("emergency", "Emergency shutdown active - all AI operations disabled")
            await self._run_callbacks(self._shutdown_callbacks, "shutdown")
        elif status is BudgetStatus.NORMAL:
            await self._alert("info", "Token usage back to normal")
            await self._run_callbacks(self._recovery_callbacks, "recovery")
        return status

    def _schedule_shutdown(self) -> None:
        if self._pending_shutdown is not None and not self._pending_shutdown.done():
            return
        logger.warning(f"Emergency shutdown scheduled in {self.grace_period}s")
        self._pending_shutdown = asyncio.get_running_loop().create_task(self._delayed_shutdown())

    async def _delayed_shutdown(self) -> None:
        await asyncio.sleep(self.grace_period)
        analytics = self.ledger.analytics()
        if self.ledger.is_shutdown or analytics.usage_fraction < self.ledger.config.critical_threshold:
            logger.info("Scheduled emergency shutdown no longer needed")
            return
        await self.trigger_emergency_shutdown("Automatic shutdown: critical token usage")

    # ========================================================================
    # Async Function 2.3: check_for_recovery
    # ========================================================================
    async def check_for_recovery(self) -> bool:
        was_shutdown = self.ledger.is_shutdown
        recovered = self.ledger.auto_recovery()
        if not recovered:
            return False

        self._last_status = self.ledger.status()
        if was_shutdown and not self.ledger.is_shutdown:
            await self._alert("info", "Emergency shutdown cleared by automatic recovery")
            await self._run_callbacks(self._recovery_callbacks, "recovery")
        return True

    # ========================================================================
    # Async Function 2.4: Manual controls
    # ========================================================================
    async def trigger_emergency_shutdown(self, reason: str = "Manual trigger") -> None:
        self.ledger.trigger_shutdown()
        self._last_status = BudgetStatus.EMERGENCY
        logger.error(f"Emergency shutdown triggered: {reason}")
        await self._alert("emergency", f"Emergency shutdown: {reason}")
        await self._run_callbacks(self._shutdown_callbacks, "shutdown")

    async def clear_emergency_shutdown(self, reason: str = "Manual override") -> None:
        self.ledger.clear_shutdown()
        self._last_status = self.ledger.status()
        logger.info(f"Emergency shutdown cleared: {reason}")
        await self._alert("info", f"Emergency shutdown cleared: {reason}")
        await self._run_callbacks(self._recovery_callbacks, "recovery")

    # ========================================================================
    # Function 2.5: system_status / force_check
    # ========================================================================
    def system_status(self) -> Dict[str, Any]:
        analytics = self.ledger.analytics()
        level = self.ledger.degradation_level
        budget = asdict(analytics)
        budget["status"] = analytics.status.value
        return {
            "budget": budget,
            "degradation_level": level.value,
            "degradation_description": describe_degradation(level),
            "emergency_shutdown": self.ledger.is_shutdown,
            "is_monitoring": self.is_monitoring,
            "time_until_reset": format_time_until_reset(analytics.time_until_reset),
            "usage_display": self.ledger.format_usage_display(),
        }

    async def force_check(self) -> Dict[str, Any]:
        await self.check_usage()
        await self.check_for_recovery()
        return self.system_status()

    # ========================================================================
    # Function 2.6: start / stop
    # ========================================================================
    @property
    def is_monitoring(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._run_periodically(self.usage_interval, self.check_usage)),
            loop.create_task(self._run_periodically(self.recovery_interval, self.check_for_recovery)),
        ]
        logger.info(f"Budget monitoring started ({self.usage_interval}s usage, {self.recovery_interval}s recovery)")

    async def stop(self) -> None:
        tasks = list(self._tasks)
        if self._pending_shutdown is not None:
            tasks.append(self._pending_shutdown)
            self._pending_shutdown = None
        self._tasks = []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Budget monitoring stopped")

    async def _run_periodically(self, interval: float, check: Callable[[], Any]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await check()
            except Exception:
                logger.exception(f"Budget check {check.__name__} failed")

    # ========================================================================
    # Async Function 2.7: _alert
    # ========================================================================
    async def _alert(self, level: str, message: str) -> None:
        if level in ("critical", "emergency"):
            logger.error(message)
        elif level == "warning":
            logger.warning(message)
        else:
            logger.info(message)

        if self.events is not None:
            await self.events.publish(
                "budget_alert",
                level=level,
                message=message,
                usage=self.ledger.format_usage_display(),
            )
#
#
## End of Script
