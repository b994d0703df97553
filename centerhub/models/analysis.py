"""Results of the two analysis passes run before synthesis."""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from centerhub.models.tool import ToolInvocation


class IntentClass(str, Enum):
    CASUAL = "casual"
    INFORMATIONAL = "informational"
    PROCEDURAL = "procedural"
    DATA_REQUEST = "data_request"
    CLARIFICATION = "clarification"


class Mood(str, Enum):
    NEUTRAL = "neutral"
    POSITIVE = "positive"
    FRUSTRATED = "frustrated"
    CONFUSED = "confused"
    URGENT = "urgent"


class ResponseStyle(str, Enum):
    CONVERSATIONAL = "conversational"
    CONCISE = "concise"
    DETAILED = "detailed"
    STEP_BY_STEP = "step_by_step"


class ToolAnalysisResult(BaseModel):
    """Outcome of the tool-use decision pass."""
    requires_tools: bool = False
    selected_calls: List[ToolInvocation] = Field(default_factory=list)
    rationale: str = ""

    @classmethod
    def neutral(cls, rationale: str = "") -> "ToolAnalysisResult":
        return cls(requires_tools=False, selected_calls=[], rationale=rationale)


class IntentAnalysisResult(BaseModel):
    """Outcome of the intent/tone pass."""
    intent: IntentClass = IntentClass.INFORMATIONAL
    mood: Mood = Mood.NEUTRAL
    response_style: ResponseStyle = ResponseStyle.CONVERSATIONAL
    references: List[str] = Field(default_factory=list, description="Resolved contextual references")
    rationale: str = ""

    @classmethod
    def neutral(cls, rationale: str = "") -> "IntentAnalysisResult":
        return cls(rationale=rationale)
