import json
from typing import TypedDict, List, Dict, Any, Optional, Literal

import structlog
from langgraph.graph import StateGraph, END

from module_agent.domain.context.system_prompt import build_system_prompt
from module_agent.domain.errors import (
    ChatError, InternalChatError, InvalidArgumentError, ProviderError,
    ServiceUnavailableError, UnauthenticatedError
)
from module_agent.domain.models.completion import Completion
from module_agent.domain.models.conversation import (
    ChatResult, ConversationContext, MessageRole, PendingAction, RoundState,
    StoredMessage, ToolResult
)
from module_agent.domain.orchestration.core.orchestrator_config import OrchestratorConfig
from module_agent.domain.tool.action_formatter import describe_action
from module_agent.domain.tool.tool_executor import ToolDispatcher
from module_agent.domain.tool.tool_registry import ToolRegistry
from module_agent.infrastructure.llm.base_provider import BaseLLMProvider
from module_agent.infrastructure.observability.logging import agent_logger
from module_agent.infrastructure.persistence.conversation_store import ConversationStore
from module_agent.infrastructure.persistence.module_store import list_modules

logger = structlog.get_logger(__name__)

PROVIDER_FAILURE_MESSAGE = "Sorry, I'm having trouble right now. Please try again."
EMPTY_RESPONSE_MESSAGE = "I wasn't able to generate a response. Please try again."
TRUNCATION_NOTICE = "\n\nI tried to do too much at once. Could you break that into smaller requests?"
MISSING_RESULT = json.dumps({"error": "No result was recorded for this tool call."})


class WorkflowState(TypedDict):
    """State for one chat or resume invocation"""
    user_id: str
    conversation_id: str
    system_prompt: str
    messages: List[Dict[str, Any]]
    final_text: str
    round: int
    status: RoundState
    completion: Optional[Completion]
    message_slots: int
    result: Optional[ChatResult]


def replay_history(history: List[StoredMessage]) -> List[Dict[str, Any]]:
    """Provider messages for the history window, starting with a user turn"""

    messages = [m for m in (message.to_provider_message() for message in history) if m]
    while messages and messages[0]["role"] != MessageRole.USER.value:
        messages.pop(0)
    return messages


class ConversationOrchestrator:
    """Multi-round LLM tool loop with an approval gate for write tools"""

    def __init__(
        self,
        db,
        provider: BaseLLMProvider,
        config: Optional[OrchestratorConfig] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        store: Optional[ConversationStore] = None,
        registry: Optional[ToolRegistry] = None,
    ):
        self.db = db
        self.provider = provider
        self.config = config or OrchestratorConfig()
        self.registry = registry or ToolRegistry()
        self.dispatcher = dispatcher or ToolDispatcher(db, self.registry)
        self.store = store or ConversationStore(db)
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the round loop graph"""

        workflow = StateGraph(WorkflowState)

        workflow.add_node("call_provider", self.call_provider_node)
        workflow.add_node("execute_tools", self.execute_tools_node)
        workflow.add_node("pause_for_approval", self.pause_for_approval_node)
        workflow.add_node("finalize", self.finalize_node)

        workflow.set_entry_point("call_provider")

        workflow.add_conditional_edges(
            "call_provider",
            self.route_after_provider,
            {
                "done": "finalize",
                "auto_execute": "execute_tools",
                "needs_approval": "pause_for_approval",
            }
        )

        workflow.add_conditional_edges(
            "execute_tools",
            self.route_after_tools,
            {
                "next_round": "call_provider",
                "budget_exhausted": "finalize",
            }
        )

        workflow.add_edge("pause_for_approval", END)
        workflow.add_edge("finalize", END)

        return workflow.compile()

    async def chat(
        self,
        user_id: Optional[str],
        conversation_id: Optional[str],
        message: Optional[str],
        context: Optional[ConversationContext] = None,
    ) -> ChatResult:
        """Handle one user turn; returns the final text or the pending actions"""

        if not conversation_id or not message:
            raise InvalidArgumentError("conversationId and message are required.")
        if not user_id:
            raise UnauthenticatedError("Must be signed in.")
        if not self.provider.is_configured:
            raise InternalChatError("LLM provider is not configured.")

        with structlog.contextvars.bound_contextvars(conversation_id=conversation_id, user_id=user_id):
            try:
                await self.store.ensure_conversation(user_id, conversation_id, context)
                await self.store.add_message(user_id, conversation_id, MessageRole.USER, message)

                history = await self.store.load_history(
                    user_id, conversation_id, self.config.max_history_messages
                )
                system_prompt = await self._system_prompt(user_id, context)

                return await self._run(
                    user_id, conversation_id, system_prompt, replay_history(history), message_slots=2
                )
            except ChatError:
                raise
            except Exception as e:
                logger.error("Chat failed", error=str(e), exc_info=True)
                raise InternalChatError("Chat failed.") from e

    async def resume(
        self,
        user_id: str,
        conversation_id: str,
        pending_message: StoredMessage,
        resolved_results: List[ToolResult],
    ) -> ChatResult:
        """Re-enter the round loop after a paused turn's actions were resolved"""

        if not self.provider.is_configured:
            raise InternalChatError("LLM provider is not configured.")

        with structlog.contextvars.bound_contextvars(conversation_id=conversation_id, user_id=user_id):
            try:
                provider_state = json.loads(pending_message.provider_state or "")
                messages = self._resumed_messages(provider_state, resolved_results)
                context = await self.store.get_context(user_id, conversation_id)
                system_prompt = await self._system_prompt(user_id, context)

                return await self._run(user_id, conversation_id, system_prompt, messages, message_slots=1)
            except ChatError:
                raise
            except Exception as e:
                logger.error("Resume failed", error=str(e), exc_info=True)
                raise InternalChatError("Chat failed.") from e

    def _resumed_messages(
        self,
        provider_state: Dict[str, Any],
        resolved_results: List[ToolResult],
    ) -> List[Dict[str, Any]]:
        """Rebuild the suspended provider conversation with one result per tool_use block"""

        assistant_content = provider_state["assistantContent"]
        contents = {result["id"]: result["content"] for result in provider_state.get("autoResults", [])}
        contents.update({result.id: result.content for result in resolved_results})

        tool_results = [
            ToolResult(id=block["id"], content=contents.get(block["id"], MISSING_RESULT)).to_provider_block()
            for block in assistant_content
            if block.get("type") == "tool_use"
        ]

        return list(provider_state.get("messages", [])) + [
            {"role": MessageRole.ASSISTANT.value, "content": assistant_content},
            {"role": MessageRole.USER.value, "content": tool_results},
        ]

    async def _system_prompt(self, user_id: str, context: Optional[ConversationContext]) -> str:
        modules = await list_modules(self.db, user_id)
        return build_system_prompt(modules, context)

    async def _run(
        self,
        user_id: str,
        conversation_id: str,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        message_slots: int,
    ) -> ChatResult:
        initial_state: WorkflowState = {
            "user_id": user_id,
            "conversation_id": conversation_id,
            "system_prompt": system_prompt,
            "messages": messages,
            "final_text": "",
            "round": 0,
            "status": RoundState.GATHERING,
            "completion": None,
            "message_slots": message_slots,
            "result": None,
        }

        # call_provider + execute_tools per round, then finalize
        recursion_limit = self.config.max_tool_rounds * 2 + 5
        final_state = await self.workflow.ainvoke(initial_state, config={"recursion_limit": recursion_limit})
        return final_state["result"]

    def _transition(self, state: WorkflowState, to_state: RoundState, condition: Optional[str] = None) -> RoundState:
        agent_logger.log_workflow_transition(
            conversation_id=state["conversation_id"],
            from_node=state["status"].value,
            to_node=to_state.value,
            condition=condition,
            state_summary={"round": state["round"], "message_count": len(state["messages"])},
        )
        return to_state

    async def call_provider_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Send the accumulated conversation to the provider"""

        round_number = state["round"] + 1
        self._transition(state, RoundState.AWAITING_PROVIDER)

        try:
            completion = await self.provider.create_completion(
                model=self.config.model,
                max_tokens=self.config.max_output_tokens,
                system_prompt=state["system_prompt"],
                tools=self.registry.get_catalogue(),
                messages=state["messages"],
            )
        except ProviderError as e:
            logger.error("Provider call failed", error=str(e), round=round_number)
            self._transition(state, RoundState.FAILED, condition="provider_error")
            await self.store.add_message(
                state["user_id"], state["conversation_id"], MessageRole.ASSISTANT, PROVIDER_FAILURE_MESSAGE
            )
            raise ServiceUnavailableError("AI service is unavailable. Please try again.") from e

        agent_logger.log_round(
            state["conversation_id"], round_number, len(state["messages"]), stop_reason=completion.stop_reason
        )

        final_text = state["final_text"]
        segments = completion.text_segments()
        if segments:
            final_text = "\n".join(segments)

        if completion.truncated:
            logger.warning("Response truncated at max_tokens", round=round_number)
            final_text += TRUNCATION_NOTICE
            status = RoundState.DONE
        elif completion.requests_tool_use and completion.tool_calls():
            status = RoundState.NEEDS_TOOL_EXECUTION
        else:
            status = RoundState.DONE

        return {
            "round": round_number,
            "completion": completion,
            "final_text": final_text,
            "status": status,
        }

    def route_after_provider(self, state: WorkflowState) -> Literal["done", "auto_execute", "needs_approval"]:
        """Split the requested calls into auto-executable and approval-gated"""

        if state["status"] == RoundState.DONE:
            return "done"

        if any(self.registry.requires_approval(call.name) for call in state["completion"].tool_calls()):
            self._transition(state, RoundState.AWAITING_APPROVAL, condition="write_tool_requested")
            return "needs_approval"
        return "auto_execute"

    async def execute_tools_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Run every call and fold the results back in call order"""

        completion = state["completion"]
        results = await self.dispatcher.execute_all(state["user_id"], completion.tool_calls())

        messages = state["messages"] + [
            {"role": MessageRole.ASSISTANT.value, "content": completion.content},
            {"role": MessageRole.USER.value, "content": [result.to_provider_block() for result in results]},
        ]
        return {"messages": messages, "status": self._transition(state, RoundState.GATHERING)}

    def route_after_tools(self, state: WorkflowState) -> Literal["next_round", "budget_exhausted"]:
        if state["round"] >= self.config.max_tool_rounds:
            logger.warning("Tool round budget exhausted", rounds=state["round"])
            return "budget_exhausted"
        return "next_round"

    async def pause_for_approval_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Run the read calls, persist the gated calls as pending actions and stop"""

        user_id = state["user_id"]
        conversation_id = state["conversation_id"]
        completion = state["completion"]
        calls = completion.tool_calls()

        auto_calls = [call for call in calls if not self.registry.requires_approval(call.name)]
        gated_calls = [call for call in calls if self.registry.requires_approval(call.name)]

        auto_results = await self.dispatcher.execute_all(user_id, auto_calls)

        pending_actions = [
            PendingAction(
                tool_use_id=call.id,
                name=call.name,
                input=call.input,
                description=describe_action(call.name, call.input),
            )
            for call in gated_calls
        ]
        logger.info("Pausing for approval", tools=[call.name for call in gated_calls])

        final_text = state["final_text"]
        if final_text:
            await self.store.add_message(user_id, conversation_id, MessageRole.ASSISTANT, final_text)

        # Firestore rejects nested arrays, so the suspended conversation is stored as JSON
        provider_state = json.dumps({
            "messages": state["messages"],
            "assistantContent": completion.content,
            "autoResults": [result.model_dump() for result in auto_results],
        }, default=str)
        await self.store.add_pending_message(user_id, conversation_id, pending_actions, provider_state)
        await self.store.record_turn(user_id, conversation_id, 2)

        return {
            "status": self._transition(state, RoundState.PAUSED_FOR_APPROVAL),
            "result": ChatResult(
                message=final_text,
                conversation_id=conversation_id,
                pending_actions=pending_actions,
            ),
        }

    async def finalize_node(self, state: WorkflowState) -> Dict[str, Any]:
        """Persist the final assistant message and advance conversation metadata"""

        final_text = state["final_text"] or EMPTY_RESPONSE_MESSAGE

        await self.store.add_message(
            state["user_id"], state["conversation_id"], MessageRole.ASSISTANT, final_text
        )
        await self.store.record_turn(state["user_id"], state["conversation_id"], state["message_slots"])

        return {
            "final_text": final_text,
            "status": self._transition(state, RoundState.DONE),
            "result": ChatResult(message=final_text, conversation_id=state["conversation_id"]),
        }
