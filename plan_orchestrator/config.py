# ============================================================================
# FILENAME: config.py
# PURPOSE: Static defaults for the plan orchestrator
# ============================================================================
# SECTION 1: Executor Timing
# ============================================================================
# Pause between actions in the sequential strategy, in seconds
#
INTER_ACTION_PAUSE = 0.5

# Pause between parallel groups in the mixed strategy, in seconds
INTER_GROUP_PAUSE = 1.0

# Default estimate submitted to the budget ledger for one plan run
DEFAULT_PLAN_COST_ESTIMATE = 2500
DEFAULT_PLAN_OPERATION = "auto_execution"

# File actions outside these prefixes are never auto-executed from the queue
AUTO_EXECUTE_SAFE_PATHS = ("/src/components/", "/src/utils/", "/src/hooks/")
#
# ============================================================================
# SECTION 2: Budget Monitor Timing
# ============================================================================
#
USAGE_CHECK_INTERVAL = 30
RECOVERY_CHECK_INTERVAL = 5 * 60

# Grace period before an automatic shutdown at the critical threshold
SHUTDOWN_GRACE_PERIOD = 10
#
# ============================================================================
# SECTION 3: Logging Configuration
# ============================================================================
#
LOG_DIR = "logs"

LOG_CONFIG = {
    "handlers": {
        "console": {
            "level": "INFO",
        },
        "file": {
            "level": "DEBUG",
            "filename": "orchestrator.log",
            "rotation": "10 MB",
            "retention": "30 days",
        }
    },
    "formatters": {
        "default": {
            "format": "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
        }
    }
}

#
#
## END config.py
