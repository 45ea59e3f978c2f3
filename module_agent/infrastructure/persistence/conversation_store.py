from typing import Any, Dict, List, Optional

import structlog
from google.api_core.exceptions import FailedPrecondition, NotFound
from google.cloud import firestore

from module_agent.domain.models.conversation import (
    ActionDecision, ApprovalStatus, ConversationContext, MessageRole,
    PendingAction, StoredMessage
)
from module_agent.infrastructure.persistence.firestore_client import conversation_ref

logger = structlog.get_logger(__name__)


class ConversationStore:
    """Persists conversations and their messages under users/{uid}/conversations"""

    def __init__(self, db):
        self.db = db

    def _messages(self, user_id: str, conversation_id: str):
        return conversation_ref(self.db, user_id, conversation_id).collection("messages")

    async def ensure_conversation(
        self,
        user_id: str,
        conversation_id: str,
        context: Optional[ConversationContext] = None,
    ) -> None:
        """Create the conversation on first touch; refresh its screen context otherwise"""

        ref = conversation_ref(self.db, user_id, conversation_id)
        snapshot = await ref.get()

        if not snapshot.exists:
            document: Dict[str, Any] = {
                "startedAt": firestore.SERVER_TIMESTAMP,
                "lastMessageAt": firestore.SERVER_TIMESTAMP,
                "messageCount": 0,
            }
            if context:
                document["context"] = context.to_document()
            await ref.set(document)
            logger.info("Created conversation", conversation_id=conversation_id)
        elif context:
            await ref.update({"context": context.to_document()})

    async def get_context(self, user_id: str, conversation_id: str) -> Optional[ConversationContext]:
        """Screen context stored on the conversation, if any"""

        snapshot = await conversation_ref(self.db, user_id, conversation_id).get()
        context = (snapshot.to_dict() or {}).get("context") if snapshot.exists else None
        return ConversationContext.model_validate(context) if context else None

    async def add_message(
        self,
        user_id: str,
        conversation_id: str,
        role: MessageRole,
        content: str,
        **extra: Any,
    ) -> str:
        """Append a message stamped with the server timestamp; returns its id"""

        payload: Dict[str, Any] = {
            "role": role.value,
            "content": content,
            "timestamp": firestore.SERVER_TIMESTAMP,
        }
        payload.update(extra)
        _, ref = await self._messages(user_id, conversation_id).add(payload)
        return ref.id

    async def add_pending_message(
        self,
        user_id: str,
        conversation_id: str,
        actions: List[PendingAction],
        provider_state: str,
    ) -> str:
        return await self.add_message(
            user_id,
            conversation_id,
            MessageRole.ASSISTANT,
            "",
            pendingActions=[action.to_document() for action in actions],
            approvalStatus=ApprovalStatus.PENDING.value,
            providerState=provider_state,
        )

    async def load_history(self, user_id: str, conversation_id: str, limit: int) -> List[StoredMessage]:
        """Most recent ``limit`` messages in ascending timestamp order"""

        query = self._messages(user_id, conversation_id).order_by("timestamp").limit_to_last(limit)
        snapshots = await query.get()
        return [StoredMessage.from_document(s.id, s.to_dict() or {}, s.update_time) for s in snapshots]

    async def get_message(self, user_id: str, conversation_id: str, message_id: str) -> Optional[StoredMessage]:
        snapshot = await self._messages(user_id, conversation_id).document(message_id).get()
        if not snapshot.exists:
            return None
        return StoredMessage.from_document(snapshot.id, snapshot.to_dict() or {}, snapshot.update_time)

    async def find_pending_message(self, user_id: str, conversation_id: str, limit: int) -> Optional[StoredMessage]:
        """Latest message still awaiting approval within the history window"""

        history = await self.load_history(user_id, conversation_id, limit)
        for message in reversed(history):
            if message.is_pending_approval:
                return message
        return None

    async def claim_pending(
        self,
        user_id: str,
        conversation_id: str,
        message: StoredMessage,
        decisions: List[ActionDecision],
    ) -> bool:
        """
        Mark a pending message resolved, provided nobody wrote it since it was read

        Returns False when another request claimed it first, so its actions
        must not run again.
        """

        ref = self._messages(user_id, conversation_id).document(message.id)
        try:
            await ref.update(
                {
                    "approvalStatus": ApprovalStatus.RESOLVED.value,
                    "resolutions": [decision.model_dump(by_alias=True) for decision in decisions],
                    "resolvedAt": firestore.SERVER_TIMESTAMP,
                },
                option=self.db.write_option(last_update_time=message.update_time),
            )
        except (FailedPrecondition, NotFound):
            logger.info("Pending message already claimed", message_id=message.id)
            return False
        return True

    async def record_turn(self, user_id: str, conversation_id: str, message_slots: int) -> None:
        """Advance last-activity and message count in a single update"""

        await conversation_ref(self.db, user_id, conversation_id).update({
            "lastMessageAt": firestore.SERVER_TIMESTAMP,
            "messageCount": firestore.Increment(message_slots),
        })
