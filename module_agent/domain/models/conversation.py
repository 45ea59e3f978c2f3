from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum


class MessageRole(str, Enum):
    """Author of a persisted conversation message"""
    USER = "user"
    ASSISTANT = "assistant"


class ApprovalStatus(str, Enum):
    """Lifecycle of a message carrying pending actions"""
    PENDING = "pending"
    RESOLVED = "resolved"


class RoundState(str, Enum):
    """Orchestrator state machine for a single chat invocation"""
    GATHERING = "gathering"
    AWAITING_PROVIDER = "awaiting_provider"
    NEEDS_TOOL_EXECUTION = "needs_tool_execution"
    AWAITING_APPROVAL = "awaiting_approval"
    DONE = "done"
    PAUSED_FOR_APPROVAL = "paused_for_approval"
    FAILED = "failed"


class ContextType(str, Enum):
    """Screen the user was on when sending a message"""
    DASHBOARD = "dashboard"
    MODULES_LIST = "modules_list"
    MODULE = "module"


class ConversationContext(BaseModel):
    """Optional screen descriptor attached to a chat turn"""
    model_config = ConfigDict(populate_by_name=True)

    type: ContextType
    module_id: Optional[str] = Field(None, alias="moduleId")
    screen_id: Optional[str] = Field(None, alias="screenId")

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ToolCall(BaseModel):
    """A tool invocation requested by the provider"""
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Uniform result envelope for a dispatched tool call"""
    id: str = Field(description="Echo of the originating tool_use id")
    content: str = Field(description="JSON encoded tool output or {error: ...}")

    def to_provider_block(self) -> Dict[str, Any]:
        return {
            "type": "tool_result",
            "tool_use_id": self.id,
            "content": self.content,
        }


class PendingAction(BaseModel):
    """A write tool call deferred until a human approves or rejects it"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tool_use_id: str = Field(alias="toolUseId")
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ActionDecision(BaseModel):
    """Human resolution of one pending action"""
    model_config = ConfigDict(populate_by_name=True)

    tool_use_id: str = Field(alias="toolUseId")
    approved: bool


class StoredMessage(BaseModel):
    """A message document read back from the conversation's messages collection"""
    id: str
    role: MessageRole
    content: str = ""
    pending_actions: List[PendingAction] = Field(default_factory=list)
    approval_status: Optional[ApprovalStatus] = None
    provider_state: Optional[str] = None
    timestamp: Optional[datetime] = None
    # kept as the client returned it; preconditions compare at nanosecond precision
    update_time: Optional[Any] = None

    @classmethod
    def from_document(
        cls, message_id: str, data: Dict[str, Any], update_time: Any = None
    ) -> "StoredMessage":
        return cls(
            id=message_id,
            role=data.get("role", MessageRole.USER.value),
            content=data.get("content") or "",
            pending_actions=data.get("pendingActions") or [],
            approval_status=data.get("approvalStatus"),
            provider_state=data.get("providerState"),
            timestamp=data.get("timestamp"),
            update_time=update_time,
        )

    @property
    def is_pending_approval(self) -> bool:
        return self.approval_status == ApprovalStatus.PENDING

    def to_provider_message(self) -> Optional[Dict[str, Any]]:
        """Replayable provider message, or None for placeholders"""
        if self.pending_actions:
            return None
        if self.role == MessageRole.USER:
            return {"role": "user", "content": self.content}
        if self.content:
            return {"role": "assistant", "content": self.content}
        return None


class ChatResult(BaseModel):
    """Outcome of a chat or resume invocation"""
    message: str
    conversation_id: str
    pending_actions: Optional[List[PendingAction]] = None

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "message": self.message,
            "conversationId": self.conversation_id,
        }
        if self.pending_actions:
            response["pendingActions"] = [a.to_document() for a in self.pending_actions]
        return response
