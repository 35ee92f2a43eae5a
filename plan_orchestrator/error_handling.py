# ============================================================================
#  File:    error_handling.py
#  Purpose: Orchestration error codes, standardized messages and exceptions
# ============================================================================
# SECTION 1: Imports and Globals
# ============================================================================

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from plan_orchestrator.budget_ledger import AdmissionDecision

# ============================================================================
# SECTION 2: Error Codes and Messages
# ============================================================================
ERROR_CODES = {
    'E002': 'Config validation failed',
    'E101': 'Dependencies not met',
    'E102': 'Resources unavailable',
    'E103': 'Action execution error',
    'E104': 'Admission denied by token budget',
    'E105': 'Circular dependencies detected',
    'E106': 'Invalid dependency reference',
    'E999': 'Unknown error'
}

# ============================================================================
# SECTION 3: Exceptions
# ============================================================================
# Class 3.1: OrchestrationError
# ============================================================================
class OrchestrationError(RuntimeError):
    """Base error for failures that stop a whole plan submission."""

    code = 'E999'

# ============================================================================
# Class 3.2: AdmissionDeniedError
# ============================================================================
class AdmissionDeniedError(OrchestrationError):
    """
    Raised when the budget ledger refuses a plan submission. The message is
    the ledger's reason string, unmodified.
    """

    code = 'E104'

    def __init__(self, decision: 'AdmissionDecision'):
        self.decision = decision
        super().__init__(decision.reason or ERROR_CODES[self.code])

# ============================================================================
# Class 3.3: PlanValidationError
# ============================================================================
class PlanValidationError(ValueError):
    """Raised when plan data cannot be turned into a consistent Plan."""

    code = 'E002'

# ============================================================================
# SECTION 4: Error Handling Utilities
# ============================================================================
# Function 4.1: get_error_message
# ============================================================================
def get_error_message(code: str, detail: Optional[object] = None) -> str:
    """Formats a standardized error message from an error code."""
    message = ERROR_CODES.get(code, ERROR_CODES['E999'])
    if detail:
        return f"[{code}] {message}: {str(detail)}"
    return f"[{code}] {message}"

# ============================================================================
# Function 4.2: describe_exception
# ============================================================================
def describe_exception(error: BaseException) -> str:
    """Returns the proximate message of an exception, or its type name."""
    message = str(error)
    return message if message else type(error).__name__
#
#
## End Script
