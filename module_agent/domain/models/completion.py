from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from enum import Enum

from module_agent.domain.models.conversation import ToolCall


class StopReason(str, Enum):
    """Provider stop reasons the orchestrator reacts to"""
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


class Completion(BaseModel):
    """Provider response: ordered content blocks plus the stop reason"""
    content: List[Dict[str, Any]] = Field(default_factory=list)
    stop_reason: Optional[str] = None

    def text_segments(self) -> List[str]:
        return [
            block.get("text", "")
            for block in self.content
            if block.get("type") == "text"
        ]

    def tool_calls(self) -> List[ToolCall]:
        return [
            ToolCall(id=block["id"], name=block["name"], input=block.get("input") or {})
            for block in self.content
            if block.get("type") == "tool_use"
        ]

    @property
    def truncated(self) -> bool:
        return self.stop_reason == StopReason.MAX_TOKENS.value

    @property
    def requests_tool_use(self) -> bool:
        return self.stop_reason == StopReason.TOOL_USE.value
