# agent_tools/verification_tools.py
from typing import Any, Dict, List, Optional
from agent_runtime.error_category import ErrorCategory
from agent_runtime.errors import ToolExecutionError, VerificationManagerError
from agent_runtime.verification_manager import VerificationManager
from .registry import ToolDescriptor


class VerificationTools:
    def __init__(self, manager: VerificationManager):
        self.manager = manager

    def await_verification_result(self, timeout_millis: Optional[int] = None) -> Dict[str, Any]:
        try:
            snapshot = self.manager.wait_for_completion(timeout_millis)
        except VerificationManagerError as e:
            raise ToolExecutionError(str(e), ErrorCategory.NON_RETRYABLE_ERROR)
        if not snapshot.success:
            raise ToolExecutionError(f"Verification failed: {snapshot.message}", ErrorCategory.VERIFICATION_FAILED)
        return {"success": True, "message": snapshot.message, "attempts": snapshot.attempt}

    def tool_descriptors(self) -> List[ToolDescriptor]:
        return [
            ToolDescriptor(
                name="await_verification_result",
                description="Waits for the running verification to finish and reports whether the expected "
                            "UI state was observed.",
                parameters={
                    "type": "object",
                    "properties": {"timeout_millis": {"type": "integer", "description": "Maximum wait in ms"}},
                },
                handler=self.await_verification_result,
            ),
        ]
