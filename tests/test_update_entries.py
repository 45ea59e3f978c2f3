import asyncio

from module_agent.domain.tool.handlers import update_entries, update_entry
from module_agent.domain.tool.tool_context import ToolContext
from tests.conftest import USER_ID

ENTRIES = f"users/{USER_ID}/modules/expenses/entries"


def _ctx(db):
    return ToolContext(db=db, user_id=USER_ID)


def test_update_entry_merges_partially(expenses_db):
    output = asyncio.run(update_entry(_ctx(expenses_db), {
        "moduleId": "expenses",
        "entryId": "exp-2",
        "data": {"amount": 35},
    }))

    assert output["id"] == "exp-2"
    assert output["schemaKey"] == "default"
    assert output["data"] == {"title": "Train", "amount": 35, "category": "travel"}
    assert output["updatedAt"] == expenses_db.read(f"{ENTRIES}/exp-2")["updatedAt"].isoformat()


def test_update_entry_rejects_unknown_fields(expenses_db):
    output = asyncio.run(update_entry(_ctx(expenses_db), {
        "moduleId": "expenses",
        "entryId": "exp-2",
        "data": {"amount": 1, "colour": "red", "mood": "ok"},
    }))

    assert output == {"error": 'Unknown fields for schema "default": colour, mood'}
    assert expenses_db.read(f"{ENTRIES}/exp-2")["data"]["amount"] == 30


def test_update_entry_missing_entry(expenses_db):
    output = asyncio.run(update_entry(_ctx(expenses_db), {
        "moduleId": "expenses", "entryId": "exp-404", "data": {"amount": 1},
    }))

    assert output == {"error": 'Entry "exp-404" not found.'}


def test_update_entry_runs_effects_with_merged_data(expenses_db):
    # the stored entry carries the amount; the update only links the account
    asyncio.run(update_entry(_ctx(expenses_db), {
        "moduleId": "expenses",
        "entryId": "exp-3",
        "data": {"account": "acct-1"},
    }))

    assert expenses_db.read(f"{ENTRIES}/acct-1")["data"]["balance"] == 88


def test_update_entries_batch(expenses_db):
    output = asyncio.run(update_entries(_ctx(expenses_db), {
        "moduleId": "expenses",
        "entries": [
            {"entryId": "exp-1", "data": {"category": "travel"}},
            {"entryId": "exp-2", "data": {"title": "Tram"}},
        ],
    }))

    assert output["updated"] == 2
    assert output["ids"] == ["exp-1", "exp-2"]
    assert expenses_db.read(f"{ENTRIES}/exp-1")["data"]["category"] == "travel"
    assert expenses_db.read(f"{ENTRIES}/exp-2")["data"]["title"] == "Tram"


def test_update_entries_validates_every_row_before_writing(expenses_db):
    output = asyncio.run(update_entries(_ctx(expenses_db), {
        "moduleId": "expenses",
        "entries": [
            {"entryId": "exp-1", "data": {"category": "travel"}},
            {"entryId": "exp-404", "data": {"title": "Ghost"}},
        ],
    }))

    assert output == {"error": 'Entry "exp-404" not found.'}
    assert expenses_db.read(f"{ENTRIES}/exp-1")["data"]["category"] == "food"


def test_update_entries_unknown_field_names_entry(expenses_db):
    output = asyncio.run(update_entries(_ctx(expenses_db), {
        "moduleId": "expenses",
        "entries": [{"entryId": "exp-1", "data": {"colour": "red"}}],
    }))

    assert output == {"error": 'Entry "exp-1": unknown fields for schema "default": colour'}


def test_update_entries_compose_effects(expenses_db):
    asyncio.run(update_entries(_ctx(expenses_db), {
        "moduleId": "expenses",
        "entries": [
            {"entryId": "exp-2", "data": {"account": "acct-1"}},
            {"entryId": "exp-3", "data": {"account": "acct-1"}},
        ],
    }))

    assert expenses_db.read(f"{ENTRIES}/acct-1")["data"]["balance"] == 58
