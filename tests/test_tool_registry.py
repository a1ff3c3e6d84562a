import pytest
from agent_runtime.budget_manager import BudgetManager
from agent_runtime.error_category import ErrorCategory
from agent_runtime.errors import BudgetExceededError, ToolExecutionError
from agent_runtime.retry import RetryPolicy
from agent_runtime.verification_manager import VerificationManager
from agent_tools.element_tools import ElementTools
from agent_tools.registry import ToolDescriptor, ToolRegistry
from agent_tools.verification_tools import VerificationTools
from perception.element_locator import ElementLocationResult
from perception.geometry import Rect
from perception.ui_element import UiElement

POLICY = RetryPolicy(max_retries=2, base_delay_millis=0, timeout_millis=0)

class FakeLocator:
    def __init__(self, result):
        self.result = result

    def locate(self, description):
        return self.result

class EchoTools:
    def __init__(self):
        self.fail_with = None

    def echo(self, text):
        if self.fail_with:
            raise self.fail_with
        return text

    def tool_descriptors(self):
        return [ToolDescriptor(name="echo", description="Echoes the text back", handler=self.echo)]

def test_register_and_describe():
    registry = ToolRegistry(policy=POLICY)
    registry.register(EchoTools())
    assert registry.names == ["echo"]
    assert registry.describe() == [{
        "name": "echo",
        "description": "Echoes the text back",
        "parameters": {"type": "object", "properties": {}},
    }]
    assert registry.invoke("echo", text="hi") == "hi"

def test_duplicate_names_rejected():
    registry = ToolRegistry(policy=POLICY).register(EchoTools())
    with pytest.raises(ValueError, match="already registered"):
        registry.register(EchoTools())

def test_unknown_tool():
    with pytest.raises(KeyError):
        ToolRegistry(policy=POLICY).invoke("missing")

def test_transient_failures_become_observations_until_exhausted():
    tools = EchoTools()
    tools.fail_with = ToolExecutionError("element not visible yet", ErrorCategory.TRANSIENT_TOOL_ERROR)
    registry = ToolRegistry(policy=POLICY).register(tools)
    assert registry.invoke("echo", text="x") == "element not visible yet"
    assert registry.invoke("echo", text="x") == "element not visible yet"
    with pytest.raises(ToolExecutionError) as exc:
        registry.invoke("echo", text="x")
    assert exc.value.category == ErrorCategory.TIMEOUT
    registry.reset()
    assert registry.retry_state.attempts == 0

def test_terminal_failure_propagates():
    tools = EchoTools()
    tools.fail_with = ToolExecutionError("bad arguments", ErrorCategory.NON_RETRYABLE_ERROR)
    registry = ToolRegistry(policy=POLICY).register(tools)
    with pytest.raises(ToolExecutionError) as exc:
        registry.invoke("echo", text="x")
    assert exc.value.category == ErrorCategory.NON_RETRYABLE_ERROR

def test_tool_call_budget_enforced():
    budget = BudgetManager(tool_calls_budget=2)
    registry = ToolRegistry(policy=POLICY, budget=budget).register(EchoTools())
    registry.invoke("echo", text="1")
    registry.invoke("echo", text="2")
    with pytest.raises(BudgetExceededError):
        registry.invoke("echo", text="3")

def test_locate_element_tool():
    element = UiElement(name="Save", description="save button")
    tools = ElementTools(FakeLocator(ElementLocationResult(True, "found", element, Rect(10, 20, 30, 40), 0.97)))
    assert tools.locate_element("save button") == {
        "element": "Save",
        "bounding_box": {"x": 10, "y": 20, "width": 30, "height": 40},
        "center": {"x": 25, "y": 40},
        "score": 0.97,
    }

def test_locate_element_tool_failures():
    tools = ElementTools(FakeLocator(ElementLocationResult(False, "No UI element in the index matches 'x'")))
    with pytest.raises(ToolExecutionError) as exc:
        tools.locate_element("x")
    assert exc.value.category == ErrorCategory.TRANSIENT_TOOL_ERROR
    with pytest.raises(ToolExecutionError) as exc:
        tools.locate_element("  ")
    assert exc.value.category == ErrorCategory.TRANSIENT_TOOL_ERROR

def test_verification_tool_reports_outcome():
    with VerificationManager(lambda: None, RetryPolicy(0, 0, 0)) as manager:
        tools = VerificationTools(manager)
        with pytest.raises(ToolExecutionError) as exc:
            tools.await_verification_result()
        assert exc.value.category == ErrorCategory.NON_RETRYABLE_ERROR

        manager.submit(lambda shot: (True, "title is 'Orders'"))
        assert tools.await_verification_result() == {"success": True, "message": "title is 'Orders'", "attempts": 1}

        manager.submit(lambda shot: (False, "title is 'Home'"))
        with pytest.raises(ToolExecutionError) as exc:
            tools.await_verification_result()
        assert exc.value.category == ErrorCategory.VERIFICATION_FAILED
        assert "title is 'Home'" in exc.value.message

def test_success_resets_consecutive_failure_count():
    tools = EchoTools()
    registry = ToolRegistry(policy=POLICY).register(tools)
    for _ in range(3):
        tools.fail_with = ToolExecutionError("element not visible yet", ErrorCategory.TRANSIENT_TOOL_ERROR)
        assert registry.invoke("echo", text="x") == "element not visible yet"
        assert registry.invoke("echo", text="x") == "element not visible yet"
        tools.fail_with = None
        assert registry.invoke("echo", text="ok") == "ok"
        assert registry.retry_state.attempts == 0
