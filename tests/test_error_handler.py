import time
import pytest
from agent_runtime.error_category import ErrorCategory
from agent_runtime.error_handler import DEFAULT_TERMINAL_CATEGORIES, ErrorClassifyingHandler
from agent_runtime.errors import BudgetExceededError, ToolExecutionError
from agent_runtime.retry import RetryPolicy, RetryState

POLICY = RetryPolicy(max_retries=2, base_delay_millis=0, timeout_millis=0)

def transient(msg="element not found"):
    return ToolExecutionError(msg, ErrorCategory.TRANSIENT_TOOL_ERROR)

def test_category_flags():
    assert ErrorCategory.TRANSIENT_TOOL_ERROR.retryable
    assert not ErrorCategory.TIMEOUT.retryable
    assert ErrorCategory.TERMINATION_BY_USER.severity == "INFO"
    assert ErrorCategory.NON_RETRYABLE_ERROR.severity == "ERROR"
    assert ErrorCategory("timeout") is ErrorCategory.TIMEOUT

def test_default_terminal_set():
    assert ErrorCategory.NON_RETRYABLE_ERROR in DEFAULT_TERMINAL_CATEGORIES
    assert ErrorCategory.TIMEOUT in DEFAULT_TERMINAL_CATEGORIES
    assert ErrorCategory.VERIFICATION_FAILED in DEFAULT_TERMINAL_CATEGORIES
    assert ErrorCategory.TRANSIENT_TOOL_ERROR not in DEFAULT_TERMINAL_CATEGORIES

def test_terminal_error_propagates_without_touching_state():
    handler = ErrorClassifyingHandler().with_terminal(ErrorCategory.TERMINATION_BY_USER)
    state = RetryState()
    error = ToolExecutionError("user stopped the run", ErrorCategory.TERMINATION_BY_USER)
    with pytest.raises(ToolExecutionError) as exc:
        handler.handle(error, state, POLICY, True)
    assert exc.value is error
    assert state.attempts == 0
    assert not state.started

def test_terminal_set_overrides_retryable_flag():
    handler = ErrorClassifyingHandler([ErrorCategory.TRANSIENT_TOOL_ERROR])
    with pytest.raises(ToolExecutionError):
        handler.handle(transient(), RetryState(), POLICY)

def test_transient_error_returned_as_message_until_retries_exhausted():
    handler = ErrorClassifyingHandler()
    state = RetryState()
    assert handler.handle(transient(), state, POLICY) == "element not found"
    assert handler.handle(transient(), state, POLICY) == "element not found"
    with pytest.raises(ToolExecutionError) as exc:
        handler.handle(transient(), state, POLICY)
    assert exc.value.category == ErrorCategory.TIMEOUT
    assert "max retries" in exc.value.message
    assert state.attempts == 3

def test_elapsed_time_escalates_as_timeout():
    handler = ErrorClassifyingHandler()
    state = RetryState()
    policy = RetryPolicy(max_retries=100, base_delay_millis=0, timeout_millis=20)
    handler.handle(transient(), state, policy)
    time.sleep(0.05)
    with pytest.raises(ToolExecutionError) as exc:
        handler.handle(transient(), state, policy)
    assert exc.value.category == ErrorCategory.TIMEOUT
    assert "timeout" in exc.value.message

def test_no_escalation_when_fail_on_timeout_disabled():
    handler = ErrorClassifyingHandler()
    state = RetryState()
    for _ in range(5):
        assert handler.handle(transient(), state, POLICY, fail_on_timeout=False) == "element not found"
    assert state.attempts == 5

def test_budget_exceeded_is_terminal():
    with pytest.raises(BudgetExceededError):
        ErrorClassifyingHandler().handle(BudgetExceededError("Token budget exceeded"), RetryState(), POLICY)

def test_unexpected_error_is_wrapped():
    cause = RuntimeError("boom")
    with pytest.raises(ToolExecutionError) as exc:
        ErrorClassifyingHandler().handle(cause, RetryState(), POLICY)
    assert exc.value.category == ErrorCategory.UNKNOWN
    assert exc.value.__cause__ is cause
