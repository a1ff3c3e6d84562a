# agent_tools/element_tools.py
from typing import Any, Dict, List
from agent_runtime.error_category import ErrorCategory
from agent_runtime.errors import ElementIndexError, ToolExecutionError
from perception.element_locator import ElementLocator
from .registry import ToolDescriptor


class ElementTools:
    def __init__(self, locator: ElementLocator):
        self.locator = locator

    def locate_element(self, description: str) -> Dict[str, Any]:
        """Returns the logical bounding box of the described element."""
        if not description or not description.strip():
            raise ToolExecutionError("Element description must not be empty", ErrorCategory.TRANSIENT_TOOL_ERROR)
        try:
            result = self.locator.locate(description)
        except ElementIndexError as e:
            raise ToolExecutionError(f"Element index is not reachable: {e}", ErrorCategory.TRANSIENT_TOOL_ERROR)
        if not result.success:
            raise ToolExecutionError(result.message, ErrorCategory.TRANSIENT_TOOL_ERROR)
        return {
            "element": result.element.name,
            "bounding_box": result.bounding_box.to_dict(),
            "center": result.bounding_box.center().to_dict(),
            "score": round(result.score, 4),
        }

    def tool_descriptors(self) -> List[ToolDescriptor]:
        return [
            ToolDescriptor(
                name="locate_element",
                description="Locates a UI element on the current screen by its description and returns "
                            "its bounding box in logical screen coordinates.",
                parameters={
                    "type": "object",
                    "properties": {"description": {"type": "string", "description": "What the element looks like"}},
                    "required": ["description"],
                },
                handler=self.locate_element,
            ),
        ]
