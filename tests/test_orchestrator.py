import asyncio
import json

import pytest

from module_agent.domain.errors import (
    InternalChatError, InvalidArgumentError, ProviderError,
    ServiceUnavailableError, UnauthenticatedError
)
from module_agent.domain.models.conversation import ConversationContext
from module_agent.domain.orchestration.core import main_agent
from module_agent.domain.orchestration.core.main_agent import (
    EMPTY_RESPONSE_MESSAGE, PROVIDER_FAILURE_MESSAGE, TRUNCATION_NOTICE,
    ConversationOrchestrator
)
from module_agent.domain.orchestration.core.orchestrator_config import OrchestratorConfig
from tests.conftest import USER_ID
from tests.fakes.provider import ScriptedProvider, completion, text_block, tool_use_block

CONVERSATION = f"users/{USER_ID}/conversations/conv-1"
MESSAGES = f"{CONVERSATION}/messages"
ENTRIES = f"users/{USER_ID}/modules/expenses/entries"

SUMMARY_CALL = tool_use_block("t1", "get_module_summary", {"moduleId": "expenses"})
CREATE_CALL = tool_use_block("t2", "create_entry", {
    "moduleId": "expenses",
    "schemaKey": "default",
    "data": {"title": "Coffee", "amount": 3},
})


def _orchestrator(db, script, **config):
    provider = ScriptedProvider(script)
    return ConversationOrchestrator(db, provider, config=OrchestratorConfig(**config)), provider


def _chat(orchestrator, message, context=None):
    return asyncio.run(orchestrator.chat(USER_ID, "conv-1", message, context))


def _stored_messages(db):
    return list(db.list(MESSAGES).values())


def test_plain_reply_is_persisted(expenses_db):
    orchestrator, provider = _orchestrator(expenses_db, [completion(text_block("Hi there"))])

    result = _chat(orchestrator, "hello")

    assert result.message == "Hi there"
    assert result.pending_actions is None
    assert [(m["role"], m["content"]) for m in _stored_messages(expenses_db)] == [
        ("user", "hello"),
        ("assistant", "Hi there"),
    ]
    conversation = expenses_db.read(CONVERSATION)
    assert conversation["messageCount"] == 2
    assert conversation["lastMessageAt"] > conversation["startedAt"]

    request = provider.requests[0]
    assert request["messages"] == [{"role": "user", "content": "hello"}]
    assert 'Module "Expenses" (id: expenses)' in request["system_prompt"]
    assert {tool["name"] for tool in request["tools"]} >= {"create_entry", "query_entries"}


def test_read_tools_loop_until_final_text(expenses_db):
    query_call = tool_use_block("t3", "query_entries", {"moduleId": "expenses", "limit": 1})
    orchestrator, provider = _orchestrator(expenses_db, [
        completion(text_block("Let me check."), SUMMARY_CALL, query_call),
        completion(text_block("You spent 46.5 in total.")),
    ])

    result = _chat(orchestrator, "how much did I spend?")

    assert result.message == "You spent 46.5 in total."
    assert len(provider.requests) == 2

    replayed = provider.requests[1]["messages"]
    assert replayed[1] == {"role": "assistant", "content": [text_block("Let me check."), SUMMARY_CALL, query_call]}
    tool_results = replayed[2]["content"]
    assert replayed[2]["role"] == "user"
    assert [block["tool_use_id"] for block in tool_results] == ["t1", "t3"]
    assert json.loads(tool_results[0]["content"])["totalEntries"] == 4
    assert json.loads(tool_results[1]["content"])["count"] == 1

    # only the final text is stored
    assert [m["content"] for m in _stored_messages(expenses_db)] == ["how much did I spend?", "You spent 46.5 in total."]


def test_write_tool_pauses_for_approval(expenses_db):
    before = expenses_db.list(ENTRIES)
    orchestrator, provider = _orchestrator(expenses_db, [
        completion(text_block("I'll log that."), SUMMARY_CALL, CREATE_CALL),
    ])

    result = _chat(orchestrator, "log a coffee for 3")

    assert result.message == "I'll log that."
    assert len(result.pending_actions) == 1
    action = result.pending_actions[0]
    assert action.tool_use_id == "t2"
    assert action.name == "create_entry"
    assert action.description == 'Create entry in "default": title: Coffee, amount: 3'
    assert result.to_response()["pendingActions"][0]["toolUseId"] == "t2"

    assert expenses_db.list(ENTRIES) == before
    assert len(provider.requests) == 1

    stored = _stored_messages(expenses_db)
    assert [m["content"] for m in stored] == ["log a coffee for 3", "I'll log that.", ""]
    pending = stored[-1]
    assert pending["approvalStatus"] == "pending"
    assert pending["pendingActions"][0]["toolUseId"] == "t2"

    state = json.loads(pending["providerState"])
    assert state["messages"] == [{"role": "user", "content": "log a coffee for 3"}]
    assert [block["type"] for block in state["assistantContent"]] == ["text", "tool_use", "tool_use"]
    assert [r["id"] for r in state["autoResults"]] == ["t1"]

    assert expenses_db.read(CONVERSATION)["messageCount"] == 2


def test_pause_without_text_stores_only_pending_message(expenses_db):
    orchestrator, _ = _orchestrator(expenses_db, [completion(CREATE_CALL)])

    result = _chat(orchestrator, "log a coffee for 3")

    assert result.message == ""
    assert len(_stored_messages(expenses_db)) == 2


def test_truncated_response_appends_notice_and_skips_tools(expenses_db):
    before = expenses_db.list(ENTRIES)
    orchestrator, provider = _orchestrator(expenses_db, [
        completion(text_block("Logging all of them"), CREATE_CALL, stop_reason="max_tokens"),
    ])

    result = _chat(orchestrator, "log everything")

    assert result.message == "Logging all of them" + TRUNCATION_NOTICE
    assert result.pending_actions is None
    assert expenses_db.list(ENTRIES) == before
    assert len(provider.requests) == 1


def test_empty_response_uses_fallback(expenses_db):
    orchestrator, _ = _orchestrator(expenses_db, [completion()])

    result = _chat(orchestrator, "hello")

    assert result.message == EMPTY_RESPONSE_MESSAGE
    assert _stored_messages(expenses_db)[-1]["content"] == EMPTY_RESPONSE_MESSAGE


def test_provider_failure_persists_apology(expenses_db):
    orchestrator, _ = _orchestrator(expenses_db, [ProviderError("overloaded")])

    with pytest.raises(ServiceUnavailableError) as excinfo:
        _chat(orchestrator, "hello")

    assert excinfo.value.code == "unavailable"
    assert _stored_messages(expenses_db)[-1] == {
        "role": "assistant",
        "content": PROVIDER_FAILURE_MESSAGE,
        "timestamp": expenses_db.now,
    }


def test_round_budget_stops_the_loop(expenses_db):
    orchestrator, provider = _orchestrator(expenses_db, [
        completion(text_block("Round 1"), SUMMARY_CALL),
        completion(text_block("Round 2"), SUMMARY_CALL),
        completion(text_block("never requested")),
    ], max_tool_rounds=2)

    result = _chat(orchestrator, "summarise forever")

    assert len(provider.requests) == 2
    assert result.message == "Round 2"
    assert expenses_db.read(CONVERSATION)["messageCount"] == 2


def test_history_window_starts_with_user_turn(expenses_db):
    orchestrator, provider = _orchestrator(expenses_db, [
        completion(text_block("uno")),
        completion(text_block("dos")),
    ], max_history_messages=2)

    _chat(orchestrator, "one")
    _chat(orchestrator, "two")

    # the window holds "uno" and "two"; the leading assistant turn is dropped
    assert provider.requests[1]["messages"] == [{"role": "user", "content": "two"}]


def test_pending_placeholders_are_not_replayed(expenses_db):
    orchestrator, provider = _orchestrator(expenses_db, [
        completion(text_block("I'll log that."), CREATE_CALL),
        completion(text_block("Okay, nothing logged.")),
    ])

    _chat(orchestrator, "log a coffee for 3")
    _chat(orchestrator, "never mind")

    assert provider.requests[1]["messages"] == [
        {"role": "user", "content": "log a coffee for 3"},
        {"role": "assistant", "content": "I'll log that."},
        {"role": "user", "content": "never mind"},
    ]


def test_context_is_stored_and_rendered(expenses_db):
    orchestrator, provider = _orchestrator(expenses_db, [completion(text_block("Sure"))])
    context = ConversationContext(type="module", moduleId="expenses")

    _chat(orchestrator, "add one", context)

    assert expenses_db.read(CONVERSATION)["context"] == {"type": "module", "moduleId": "expenses"}
    assert 'CURRENT SCREEN: The user is on a module screen for module "Expenses"' in provider.requests[0]["system_prompt"]


def test_input_validation_precedes_authentication(expenses_db):
    orchestrator, provider = _orchestrator(expenses_db, [])

    with pytest.raises(InvalidArgumentError):
        asyncio.run(orchestrator.chat(None, "conv-1", ""))
    with pytest.raises(UnauthenticatedError):
        asyncio.run(orchestrator.chat(None, "conv-1", "hello"))

    assert provider.requests == []
    assert expenses_db.read(CONVERSATION) is None


def test_unconfigured_provider_is_internal_error(expenses_db):
    provider = ScriptedProvider(configured=False)
    orchestrator = ConversationOrchestrator(expenses_db, provider)

    with pytest.raises(InternalChatError):
        _chat(orchestrator, "hello")

    assert expenses_db.read(CONVERSATION) is None


def test_each_round_is_logged_with_its_stop_reason(expenses_db, monkeypatch):
    rounds = []
    monkeypatch.setattr(
        main_agent.agent_logger,
        "log_round",
        lambda conversation_id, round_number, message_count, stop_reason=None: rounds.append(
            (conversation_id, round_number, message_count, stop_reason)
        ),
    )
    orchestrator, _ = _orchestrator(expenses_db, [
        completion(SUMMARY_CALL),
        completion(text_block("Done")),
    ])

    _chat(orchestrator, "summarise")

    assert rounds == [
        ("conv-1", 1, 1, "tool_use"),
        ("conv-1", 2, 3, "end_turn"),
    ]
