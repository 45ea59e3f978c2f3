from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from module_agent.domain.models.conversation import ActionDecision, ConversationContext


class ChatRequest(BaseModel):
    """Body of POST /api/v1/chat; presence is checked by the orchestrator"""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(None, alias="conversationId")
    message: Optional[str] = None
    context: Optional[ConversationContext] = None


class ApprovalRequest(BaseModel):
    """Body of POST /api/v1/chat/approvals"""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(None, alias="conversationId")
    message_id: Optional[str] = Field(None, alias="messageId")
    decisions: List[ActionDecision] = Field(default_factory=list)
