# ============================================================================
#  File: budget_ledger.py
#  Purpose: Rolling token budget, degradation levels and admission control
# ============================================================================
# SECTION 1: Imports
# ============================================================================
#
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from plan_orchestrator.config_manager import BudgetConfig
#
# ============================================================================
# SECTION 2: Data Classes and Enums
# ============================================================================
# Class 2.1: DegradationLevel
# ============================================================================
class DegradationLevel(Enum):
    """Coarse throttle derived from consumption against the daily quota"""

    NONE = "none"
    LIGHT = "light"
    MODERATE = "moderate"
    SEVERE = "severe"


DEGRADATION_DESCRIPTIONS = {
    DegradationLevel.NONE: "All features enabled",
    DegradationLevel.LIGHT: "Context size reduced for efficiency",
    DegradationLevel.MODERATE: "Auto-operations disabled",
    DegradationLevel.SEVERE: "Only user-initiated operations allowed",
}

# Base allocations per operation and scale factors per level
BASE_ALLOCATIONS = {
    "user_chat": 8000,
    "planning": 5000,
    "critique": 3000,
    "summary": 2000,
    "execution": 4000,
}
DEFAULT_ALLOCATION = 2000
DEGRADATION_FACTORS = {
    DegradationLevel.NONE: 1.0,
    DegradationLevel.LIGHT: 0.7,
    DegradationLevel.MODERATE: 0.5,
    DegradationLevel.SEVERE: 0.3,
}
#
# ============================================================================
# Class 2.2: BudgetStatus
# ============================================================================
class BudgetStatus(Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"
#
# ============================================================================
# Class 2.3: AdmissionDecision
# ============================================================================
@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    degradation_level: DegradationLevel
    remaining_quota: int
    usage_fraction: float
    reason: Optional[str] = None
#
# ============================================================================
# Class 2.4: BudgetAnalytics
# ============================================================================
@dataclass(frozen=True)
class BudgetAnalytics:
    usage_today: int
    usage_fraction: float
    projected_daily_usage: float
    average_request_cost: float
    requests_this_period: int
    time_until_reset: float  # seconds
    status: BudgetStatus
#
# ============================================================================
# Class 2.5: UsageState
# ============================================================================
@dataclass
class UsageState:
    current_usage: int = 0
    output_usage: int = 0
    request_count: int = 0
    last_reset: float = 0.0
    reset_time: float = 0.0
    emergency_shutdown: bool = False
    degradation_level: DegradationLevel = DegradationLevel.NONE
    last_request_time: float = 0.0
#
# ============================================================================
# SECTION 3: BudgetLedger
# ============================================================================
class BudgetLedger:
    """
    Process-wide consumption ledger and admission gate.

    ``record`` is the only mutator of consumption; ``admit`` and ``analytics``
    never change state, so dry-run checks cannot consume budget. All state
    access goes through one lock so a read-modify-write of the counters is
    never split.
    """

    #
    # =========================================================================
    # Method 3.1: __init__
    # =========================================================================
    #
    def __init__(self, config: Optional[BudgetConfig] = None, clock: Callable[[], float] = time.time):
        self.config = config or BudgetConfig()
        self._clock = clock
        self._lock = threading.Lock()
        now = clock()
        self.usage = UsageState(last_reset=now, reset_time=now + self.config.reset_interval_seconds)

    # ------------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------------
    def _fraction(self, amount: float) -> float:
        return amount / self.config.daily_limit

    def _level_for(self, usage_fraction: float) -> DegradationLevel:
        if usage_fraction >= self.config.critical_threshold:
            return DegradationLevel.SEVERE
        if usage_fraction >= self.config.warning_threshold:
            return DegradationLevel.MODERATE
        if usage_fraction >= self.config.light_threshold:
            return DegradationLevel.LIGHT
        return DegradationLevel.NONE

    def _reset_locked(self, now: float) -> None:
        self.usage.current_usage = 0
        self.usage.output_usage = 0
        self.usage.request_count = 0
        self.usage.last_reset = now
        self.usage.reset_time = now + self.config.reset_interval_seconds
        self.usage.emergency_shutdown = False
        self.usage.degradation_level = DegradationLevel.NONE

    def _remaining_locked(self) -> int:
        return max(0, self.config.daily_limit - self.usage.current_usage)

    #
    # =========================================================================
    # Method 3.2: record
    # =========================================================================
    #
    def record(self, input_cost: int, output_cost: int) -> DegradationLevel:
        """
        Adds one request's consumption and recomputes the degradation level.

        If the rolling interval has elapsed, the ledger resets first and only
        this call's cost is counted.

        Returns:
            DegradationLevel: The level after recording
        """
        cost = input_cost + output_cost
        with self._lock:
            now = self._clock()
            if now >= self.usage.reset_time:
                self._reset_locked(now)
                logger.info("Budget interval elapsed; usage counters reset")

            self.usage.current_usage += cost
            self.usage.output_usage += output_cost
            self.usage.request_count += 1
            self.usage.last_request_time = now

            fraction = self._fraction(self.usage.current_usage)
            level = self._level_for(fraction)
            self.usage.degradation_level = level
            total = self.usage.current_usage

            if self.config.emergency_shutdown_enabled and fraction >= self.config.critical_threshold:
                if not self.usage.emergency_shutdown:
                    logger.error(
                        f"Token usage at {round(fraction * 100)}% of daily limit - emergency shutdown engaged"
                    )
                self.usage.emergency_shutdown = True

        logger.debug(f"Recorded {cost} tokens ({total}/{self.config.daily_limit}, {level.value})")
        return level

    #
    # =========================================================================
    # Method 3.3: admit
    # =========================================================================
    #
    def admit(self, estimated_cost: int, operation_class: str) -> AdmissionDecision:
        """
        Decides whether an operation may proceed. Has no side effects.

        Args:
            estimated_cost: Projected token cost of the operation
            operation_class: Operation class name, e.g. ``auto_critique``

        Returns:
            AdmissionDecision: allowed flag, reason when denied, and quota figures
        """
        with self._lock:
            config = self.config
            usage = self.usage

            if usage.emergency_shutdown:
                return AdmissionDecision(
                    allowed=False,
                    reason="Emergency shutdown active - all AI operations disabled",
                    degradation_level=DegradationLevel.SEVERE,
                    remaining_quota=0,
                    usage_fraction=1.0,
                )

            projected = usage.current_usage + estimated_cost
            fraction = self._fraction(projected)
            remaining = self._remaining_locked()
            level = usage.degradation_level

            def deny(reason: str) -> AdmissionDecision:
                return AdmissionDecision(
                    allowed=False,
                    reason=reason,
                    degradation_level=level,
                    remaining_quota=remaining,
                    usage_fraction=fraction,
                )

            if projected > config.daily_limit:
                return deny(f"Operation would exceed daily limit ({projected}/{config.daily_limit} tokens)")

            if config.degradation_enabled:
                if level is DegradationLevel.SEVERE and operation_class not in config.operator_initiated_operations:
                    return deny("Severe degradation: only user-initiated operations allowed")
                if level is DegradationLevel.MODERATE and operation_class in config.automatic_operations:
                    return deny(f"Moderate degradation: {operation_class} temporarily disabled")
                if (
                    level is DegradationLevel.LIGHT
                    and operation_class in config.context_heavy_operations
                    and estimated_cost > config.light_context_ceiling
                ):
                    return deny(f"Light degradation: reduce context size for {operation_class}")

            return AdmissionDecision(
                allowed=True,
                degradation_level=level,
                remaining_quota=remaining,
                usage_fraction=fraction,
            )

    #
    # =========================================================================
    # Method 3.4: Emergency controls
    # =========================================================================
    #
    def trigger_shutdown(self) -> None:
        with self._lock:
            self.usage.emergency_shutdown = True
            self.usage.degradation_level = DegradationLevel.SEVERE
        logger.warning("Emergency shutdown triggered")

    def clear_shutdown(self) -> None:
        """Manual override: clears the flag, then runs the usage-based recovery check."""
        with self._lock:
            self.usage.emergency_shutdown = False
            self.usage.degradation_level = self._level_for(self._fraction(self.usage.current_usage))
        logger.info("Emergency shutdown cleared")
        self.auto_recovery()

    @property
    def is_shutdown(self) -> bool:
        with self._lock:
            return self.usage.emergency_shutdown

    @property
    def degradation_level(self) -> DegradationLevel:
        with self._lock:
            return self.usage.degradation_level

    #
    # =========================================================================
    # Method 3.5: Recovery and reset
    # =========================================================================
    #
    def reset(self) -> None:
        with self._lock:
            self._reset_locked(self._clock())
        logger.info("Daily token budget reset")

    def auto_recovery(self) -> bool:
        """
        Clears a shutdown once usage is back under the warning threshold and
        resets the ledger when the rolling interval has elapsed.

        Returns:
            bool: True if anything was recovered or reset
        """
        recovered = False
        with self._lock:
            now = self._clock()
            fraction = self._fraction(self.usage.current_usage)
            if self.usage.emergency_shutdown and fraction < self.config.warning_threshold:
                self.usage.emergency_shutdown = False
                self.usage.degradation_level = self._level_for(fraction)
                recovered = True
                logger.info(f"Auto-recovery: usage dropped to {round(fraction * 100)}%")
            if now >= self.usage.reset_time:
                self._reset_locked(now)
                recovered = True
                logger.info("Auto-recovery: budget interval elapsed, usage reset")
        return recovered

    def update_config(self, **changes) -> BudgetConfig:
        with self._lock:
            merged = self.config.model_dump()
            merged.update(changes)
            self.config = BudgetConfig(**merged)
            return self.config

    #
    # =========================================================================
    # Method 3.6: Analytics
    # =========================================================================
    #
    def analytics(self) -> BudgetAnalytics:
        with self._lock:
            now = self._clock()
            usage = self.usage
            fraction = self._fraction(usage.current_usage)
            hours_elapsed = (now - usage.last_reset) / 3600
            projected = (usage.current_usage / hours_elapsed) * 24 if hours_elapsed > 0 else 0.0
            average = usage.current_usage / usage.request_count if usage.request_count else 0.0

            if usage.emergency_shutdown:
                status = BudgetStatus.EMERGENCY
            elif fraction >= self.config.critical_threshold:
                status = BudgetStatus.CRITICAL
            elif fraction >= self.config.warning_threshold:
                status = BudgetStatus.WARNING
            else:
                status = BudgetStatus.NORMAL

            return BudgetAnalytics(
                usage_today=usage.current_usage,
                usage_fraction=fraction,
                projected_daily_usage=projected,
                average_request_cost=average,
                requests_this_period=usage.request_count,
                time_until_reset=max(0.0, usage.reset_time - now),
                status=status,
            )

    def status(self) -> BudgetStatus:
        return self.analytics().status

    def remaining_quota(self) -> int:
        with self._lock:
            return self._remaining_locked()

    def time_until_reset(self) -> float:
        with self._lock:
            return max(0.0, self.usage.reset_time - self._clock())

    def format_usage_display(self) -> str:
        analytics = self.analytics()
        remaining = self.remaining_quota()
        return (
            f"{analytics.usage_today:,}/{self.config.daily_limit:,} tokens "
            f"({round(analytics.usage_fraction * 100)}%) - {remaining:,} remaining"
        )

    #
    # =========================================================================
    # Method 3.7: Feature gates
    # =========================================================================
    #
    def is_critic_allowed(self) -> bool:
        return self.admit(2000, "auto_critique").allowed

    def is_planning_allowed(self) -> bool:
        return self.admit(3000, "planning").allowed

    def is_memory_summary_allowed(self) -> bool:
        return self.admit(1500, "auto_summary").allowed

    def is_auto_execution_allowed(self) -> bool:
        return self.admit(2500, "auto_execution").allowed
#
# ============================================================================
# SECTION 4: Utilities
# ============================================================================
def describe_degradation(level: DegradationLevel) -> str:
    return DEGRADATION_DESCRIPTIONS[level]


def optimal_allocation(operation: str, available: int, level: DegradationLevel) -> int:
    """Token allocation for an operation, scaled down by degradation level."""
    base = BASE_ALLOCATIONS.get(operation, DEFAULT_ALLOCATION)
    return min(int(base * DEGRADATION_FACTORS[level]), available)


def format_time_until_reset(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
#
#
## End of Script
