import asyncio

from module_agent.domain.tool.handlers import query_entries
from module_agent.domain.tool.tool_context import ToolContext, ToolLimits
from tests.conftest import USER_ID


def _query(db, limits=None, **tool_input):
    ctx = ToolContext(db=db, user_id=USER_ID, limits=limits or ToolLimits())
    return asyncio.run(query_entries(ctx, {"moduleId": "expenses", **tool_input}))


def _ids(output):
    return [entry["id"] for entry in output["entries"]]


def test_defaults_to_newest_first(expenses_db):
    output = _query(expenses_db)

    assert output["count"] == 4
    assert _ids(output) == ["exp-3", "exp-2", "exp-1", "acct-1"]
    assert output["entries"][0]["createdAt"] == "2025-06-01T00:03:00+00:00"


def test_schema_key_filter(expenses_db):
    output = _query(expenses_db, schemaKey="accounts")

    assert _ids(output) == ["acct-1"]
    assert output["entries"][0]["schemaKey"] == "accounts"


def test_data_filters_are_applied_in_memory(expenses_db):
    output = _query(expenses_db, schemaKey="default", filters=[
        {"field": "category", "op": "==", "value": "food"},
        {"field": "amount", "op": ">", "value": 5},
    ])

    assert _ids(output) == ["exp-3"]


def test_incomparable_values_never_match(expenses_db):
    output = _query(expenses_db, filters=[{"field": "amount", "op": "<", "value": 100}])

    # the account entry has no amount, so it is excluded rather than failing
    assert _ids(output) == ["exp-3", "exp-2", "exp-1"]


def test_order_by_data_field_ascending(expenses_db):
    output = _query(expenses_db, schemaKey="default", orderBy="amount", direction="asc")

    assert _ids(output) == ["exp-1", "exp-3", "exp-2"]


def test_limit_is_clamped(expenses_db):
    limits = ToolLimits(default_query_limit=2, max_query_limit=3)

    assert len(_query(expenses_db, limits=limits)["entries"]) == 2
    assert len(_query(expenses_db, limits=limits, limit=10)["entries"]) == 3
    assert len(_query(expenses_db, limits=limits, limit=0)["entries"]) == 1


def test_repeated_query_is_stable(expenses_db):
    first = _query(expenses_db, schemaKey="default", orderBy="category")
    second = _query(expenses_db, schemaKey="default", orderBy="category")

    assert first == second


def test_unknown_module(expenses_db):
    ctx = ToolContext(db=expenses_db, user_id=USER_ID)

    output = asyncio.run(query_entries(ctx, {"moduleId": "fitness"}))

    assert output == {"error": 'Module "fitness" not found.'}


def test_filters_page_past_the_first_window(expenses_db):
    queries_before = expenses_db.query_count

    # the only match is the oldest entry, outside the first page of three
    output = _query(expenses_db, limit=1, filters=[{"field": "name", "op": "==", "value": "Checking"}])

    assert _ids(output) == ["acct-1"]
    assert expenses_db.query_count == queries_before + 2


def test_paging_stops_when_the_collection_runs_out(expenses_db):
    queries_before = expenses_db.query_count

    output = _query(expenses_db, limit=1, filters=[{"field": "title", "op": "==", "value": "Dinner"}])

    assert output == {"count": 0, "entries": []}
    assert expenses_db.query_count == queries_before + 2
