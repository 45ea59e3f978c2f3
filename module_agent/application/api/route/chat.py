from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Request

from module_agent.application.api.schema.chat import ApprovalRequest, ChatRequest
from module_agent.domain.orchestration.core.approval_handler import ApprovalHandler
from module_agent.domain.orchestration.core.main_agent import ConversationOrchestrator

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.orchestrator


def get_approval_handler(request: Request) -> ApprovalHandler:
    return request.app.state.approval_handler


async def get_current_user_id(
    request: Request,
    authorization: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """uid of the bearer token; None when no token was sent"""

    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    claims = await request.app.state.token_validator.verify(authorization[7:].strip())
    return claims["uid"]


@router.post("")
async def chat_endpoint(
    body: ChatRequest,
    user_id: Annotated[Optional[str], Depends(get_current_user_id)],
    orchestrator: Annotated[ConversationOrchestrator, Depends(get_orchestrator)],
) -> Dict[str, Any]:
    result = await orchestrator.chat(user_id, body.conversation_id, body.message, body.context)
    return result.to_response()


@router.post("/approvals")
async def approvals_endpoint(
    body: ApprovalRequest,
    user_id: Annotated[Optional[str], Depends(get_current_user_id)],
    handler: Annotated[ApprovalHandler, Depends(get_approval_handler)],
) -> Dict[str, Any]:
    result = await handler.resolve(user_id, body.conversation_id, body.decisions, body.message_id)
    return result.to_response()
