# agent_tools/registry.py
from typing import Any, Callable, Dict, List, Optional, Protocol
from pydantic import BaseModel, ConfigDict, Field
from agent_runtime import config
from agent_runtime.budget_manager import BudgetManager
from agent_runtime.error_handler import ErrorClassifyingHandler
from agent_runtime.logger import log
from agent_runtime.retry import RetryPolicy, RetryState


class ToolDescriptor(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: Callable[..., Any]

    def schema_for_model(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


class ToolProvider(Protocol):
    def tool_descriptors(self) -> List[ToolDescriptor]:
        ...


class ToolRegistry:
    """
    Explicit registry of the tools exposed to the agent.

    Providers list their own descriptors; nothing is discovered at runtime.
    Tool failures are classified: terminal ones propagate, the rest come back
    as plain text the agent can react to until the retry policy runs out.

    The retry state covers one run of consecutive failures: a successful
    invoke resets it. Callers should also call `reset()` at each operation
    boundary so failures of a previous step never count against the next.
    """

    def __init__(self, handler: Optional[ErrorClassifyingHandler] = None, policy: Optional[RetryPolicy] = None,
                 budget: Optional[BudgetManager] = None, fail_on_timeout: bool = True):
        self.handler = handler or ErrorClassifyingHandler()
        self.policy = policy or config.action_retry_policy()
        self.budget = budget
        self.fail_on_timeout = fail_on_timeout
        self.retry_state = RetryState()
        self._tools: Dict[str, ToolDescriptor] = {}

    def register(self, provider: ToolProvider) -> "ToolRegistry":
        for descriptor in provider.tool_descriptors():
            if descriptor.name in self._tools:
                raise ValueError(f"Tool '{descriptor.name}' is already registered")
            self._tools[descriptor.name] = descriptor
        return self

    @property
    def names(self) -> List[str]:
        return sorted(self._tools)

    def describe(self) -> List[Dict[str, Any]]:
        return [self._tools[name].schema_for_model() for name in self.names]

    def reset(self):
        self.retry_state.reset()

    def invoke(self, name: str, **arguments: Any) -> Any:
        descriptor = self._tools.get(name)
        if descriptor is None:
            raise KeyError(f"Unknown tool '{name}'")
        if self.budget is not None:
            self.budget.consume_tool_calls(1)
            self.budget.check_tool_call_budget()

        log("INFO", "tool_invoke", f"Invoking tool '{name}'", arguments=arguments)
        try:
            result = descriptor.handler(**arguments)
        except Exception as e:
            # non ToolExecutionError faults are re-raised by the handler as UNKNOWN
            return self.handler.handle(e, self.retry_state, self.policy, self.fail_on_timeout)
        self.retry_state.reset()
        return result
