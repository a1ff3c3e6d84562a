# agent_runtime/error_category.py
from enum import Enum


class ErrorCategory(str, Enum):
    """
    Closed taxonomy of failures seen while the agent executes tools.
    Each category carries whether it may be retried and the log level it is reported at.
    """

    TERMINATION_BY_USER = ("termination_by_user", False, "INFO")
    TRANSIENT_TOOL_ERROR = ("transient_tool_error", True, "WARN")
    NON_RETRYABLE_ERROR = ("non_retryable_error", False, "ERROR")
    TIMEOUT = ("timeout", False, "WARN")
    UNKNOWN = ("unknown", False, "ERROR")
    # Domain categories
    VERIFICATION_FAILED = ("verification_failed", False, "ERROR")
    BUDGET_EXCEEDED = ("budget_exceeded", False, "ERROR")

    def __new__(cls, value: str, retryable: bool, severity: str):
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.retryable = retryable
        obj.severity = severity
        return obj
