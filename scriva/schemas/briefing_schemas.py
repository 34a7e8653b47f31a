"""Ephemeral briefing types produced by the context compiler. Never persisted."""
from typing import List, Literal

from pydantic import Field

from scriva.schemas.base import ScrivaModel

Priority = Literal["critical", "high", "medium", "low"]

# Fill order used by the compiler
PRIORITY_ORDER: List[str] = ["critical", "high", "medium", "low"]


class BriefingSection(ScrivaModel):
    label: str
    content: str
    tokens: int
    priority: Priority
    source: str = Field(default="", description="Origin path or identifier")


class ContextBriefing(ScrivaModel):
    budget: int
    sections: List[BriefingSection] = Field(default_factory=list)
    total_tokens: int = 0
