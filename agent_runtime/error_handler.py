# agent_runtime/error_handler.py
from typing import FrozenSet, Iterable, Optional
from .error_category import ErrorCategory
from .errors import ToolExecutionError
from .logger import log, log_exception
from .retry import RetryPolicy, RetryState

DEFAULT_TERMINAL_CATEGORIES: FrozenSet[ErrorCategory] = frozenset({
    ErrorCategory.NON_RETRYABLE_ERROR,
    ErrorCategory.TIMEOUT,
    ErrorCategory.VERIFICATION_FAILED,
    ErrorCategory.BUDGET_EXCEEDED,
})


class ErrorClassifyingHandler:
    """
    Decides whether a tool failure is handed back to the agent as a plain
    observation or escalated as a typed failure.

    Categories in the terminal set always abort, even when the category itself
    is marked retryable. Everything else is counted against the retry policy;
    once the policy is exhausted the failure escalates as TIMEOUT, whether the
    clock or the retry counter ran out.
    """

    def __init__(self, terminal_categories: Optional[Iterable[ErrorCategory]] = None):
        if terminal_categories is None:
            terminal_categories = DEFAULT_TERMINAL_CATEGORIES
        self.terminal_categories = frozenset(terminal_categories)

    def with_terminal(self, *categories: ErrorCategory) -> "ErrorClassifyingHandler":
        return ErrorClassifyingHandler(self.terminal_categories | set(categories))

    def is_terminal(self, category: ErrorCategory) -> bool:
        return category in self.terminal_categories

    def handle(self, error: BaseException, state: RetryState, policy: RetryPolicy,
               fail_on_timeout: bool = True) -> str:
        if not isinstance(error, ToolExecutionError):
            log_exception("tool_unexpected_error", "Unexpected error during tool execution", error)
            raise ToolExecutionError(f"Unexpected error: {error}", ErrorCategory.UNKNOWN) from error

        if self.is_terminal(error.category):
            log(error.category.severity, "tool_terminal_error", "Terminal tool error, aborting",
                category=error.category.value, error=error.message)
            raise error

        return self._handle_retryable(error, state, policy, fail_on_timeout)

    def _handle_retryable(self, error: ToolExecutionError, state: RetryState, policy: RetryPolicy,
                          fail_on_timeout: bool) -> str:
        state.start_if_not_started()
        attempts = state.increment_attempts()
        elapsed = state.elapsed_millis()
        is_timeout = policy.is_time_bounded and elapsed > policy.timeout_millis
        is_max_retries_reached = attempts > policy.max_retries

        if is_timeout and fail_on_timeout:
            log("WARN", "tool_retry_timeout", "Retry policy exceeded because of timeout",
                attempts=attempts, elapsed_ms=elapsed, error=error.message)
            raise ToolExecutionError(
                f"Retry policy exceeded because of timeout. Original error: {error.message}",
                ErrorCategory.TIMEOUT) from error
        if is_max_retries_reached and fail_on_timeout:
            log("WARN", "tool_retry_exhausted", "Retry policy exceeded because of max retries",
                attempts=attempts, elapsed_ms=elapsed, error=error.message)
            raise ToolExecutionError(
                f"Retry policy exceeded because of max retries. Original error: {error.message}",
                ErrorCategory.TIMEOUT) from error

        log(error.category.severity, "tool_error_passed_to_agent",
            f"Passing the following tool execution error to the agent: '{error.message}'",
            attempts=attempts, category=error.category.value)
        return error.message
