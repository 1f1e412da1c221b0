"""Intent detection result models."""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class IntentResult(BaseModel):
    """Classification of a single user utterance."""

    intent: str = Field(..., description="Intent label, e.g. ORDER_LOOKUP or CHAT")
    confidence: float
    entities: Dict[str, str] = Field(default_factory=dict)
    requires_agent: bool = False
    agent_type: Optional[str] = None
    should_cancel_agent: bool = False
    original_text: Optional[str] = None


class EntityExpectation(BaseModel):
    """Entity the assistant most recently asked the caller for."""

    entity: str
    context: str
