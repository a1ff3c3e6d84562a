# agent_runtime/errors.py
from .error_category import ErrorCategory

class AgentError(Exception):
    pass

class ConfigError(AgentError):
    pass

class ToolExecutionError(AgentError):
    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        super().__init__(message)
        self.message = message
        self.category = category

    def __str__(self) -> str:
        return self.message

class BudgetExceededError(ToolExecutionError):
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.BUDGET_EXCEEDED)

class VerificationManagerError(AgentError):
    pass

class VerificationInProgressError(VerificationManagerError):
    pass

class ElementIndexError(AgentError):
    pass

class ElementIndexConnectionError(ElementIndexError):
    pass
