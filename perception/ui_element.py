# perception/ui_element.py
from typing import Any, Dict, Optional
from uuid import UUID, uuid4
from pydantic import BaseModel, Field

class UiElement(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    name: str
    description: str  # embedding input
    location_details: str = ""
    page_summary: str = ""
    template_path: Optional[str] = None

    def overall_description(self) -> str:
        return f"{self.description} {self.location_details}".strip()

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "UiElement":
        return cls.model_validate(payload)

class RetrievedElement(BaseModel):
    element: UiElement
    score: float
    page_relevance_score: float = 0.0
