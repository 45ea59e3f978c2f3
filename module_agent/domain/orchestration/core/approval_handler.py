import json
from typing import List, Optional

import structlog

from module_agent.domain.errors import (
    ChatError, InternalChatError, InvalidArgumentError, UnauthenticatedError
)
from module_agent.domain.models.conversation import (
    ActionDecision, ChatResult, StoredMessage, ToolCall, ToolResult
)
from module_agent.domain.orchestration.core.main_agent import ConversationOrchestrator

logger = structlog.get_logger(__name__)

REJECTED_RESULT = json.dumps({"rejected": True, "message": "The user declined this action."})


class ApprovalHandler:
    """Resolves a paused turn's pending actions and resumes the conversation"""

    def __init__(self, orchestrator: ConversationOrchestrator):
        self.orchestrator = orchestrator
        self.store = orchestrator.store
        self.dispatcher = orchestrator.dispatcher

    async def resolve(
        self,
        user_id: Optional[str],
        conversation_id: Optional[str],
        decisions: List[ActionDecision],
        message_id: Optional[str] = None,
    ) -> ChatResult:
        if not conversation_id:
            raise InvalidArgumentError("conversationId is required.")
        if not user_id:
            raise UnauthenticatedError("Must be signed in.")

        with structlog.contextvars.bound_contextvars(conversation_id=conversation_id, user_id=user_id):
            try:
                pending = await self._find_pending(user_id, conversation_id, message_id)
                self._check_decisions(pending, decisions)

                # actions run only after this request holds the claim
                if not await self.store.claim_pending(user_id, conversation_id, pending, decisions):
                    raise InvalidArgumentError("These actions were already resolved.")

                approved = {d.tool_use_id for d in decisions if d.approved}
                results: List[ToolResult] = []
                for action in pending.pending_actions:
                    if action.tool_use_id in approved:
                        results.append(await self.dispatcher.execute(
                            user_id, ToolCall(id=action.tool_use_id, name=action.name, input=action.input)
                        ))
                    else:
                        results.append(ToolResult(id=action.tool_use_id, content=REJECTED_RESULT))
            except ChatError:
                raise
            except Exception as e:
                logger.error("Approval resolution failed", error=str(e), exc_info=True)
                raise InternalChatError("Chat failed.") from e

            logger.info(
                "Resolved pending actions",
                message_id=pending.id,
                approved=len(approved),
                rejected=len(pending.pending_actions) - len(approved),
            )

        return await self.orchestrator.resume(user_id, conversation_id, pending, results)

    async def _find_pending(
        self,
        user_id: str,
        conversation_id: str,
        message_id: Optional[str],
    ) -> StoredMessage:
        if message_id:
            message = await self.store.get_message(user_id, conversation_id, message_id)
        else:
            message = await self.store.find_pending_message(
                user_id, conversation_id, self.orchestrator.config.max_history_messages
            )

        if message is None or not message.is_pending_approval:
            raise InvalidArgumentError("No pending actions to resolve.")
        if not message.provider_state:
            raise InvalidArgumentError("This pending action can no longer be resumed.")
        return message

    @staticmethod
    def _check_decisions(pending: StoredMessage, decisions: List[ActionDecision]) -> None:
        expected = {action.tool_use_id for action in pending.pending_actions}
        given = [decision.tool_use_id for decision in decisions]
        if len(given) != len(set(given)) or set(given) != expected:
            raise InvalidArgumentError("Provide exactly one decision for every pending action.")
