import operator
from typing import Any, Callable, Dict, List

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from module_agent.domain.tool.handlers.common import load_module, module_not_found
from module_agent.domain.tool.tool_context import ToolContext
from module_agent.infrastructure.persistence.firestore_client import (
    entries_ref, serialize_timestamps, to_iso
)

FILTER_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def matches(data: Dict[str, Any], flt: Dict[str, Any]) -> bool:
    """Evaluate one data-field filter; incomparable values never match ordering ops"""

    compare = FILTER_OPERATORS.get(flt.get("op"))
    if compare is None:
        return True
    try:
        return bool(compare(data.get(flt.get("field")), flt.get("value")))
    except TypeError:
        return False


def clamp_limit(requested: Any, ctx: ToolContext) -> int:
    limit = ctx.limits.default_query_limit if requested is None else int(requested)
    return max(1, min(limit, ctx.limits.max_query_limit))


async def query_entries(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    """
    Read entries of a module.

    Only the schema key is pushed down to Firestore; data-field filters are
    evaluated in memory so no composite indexes are needed per field. Pages
    of 3x the limit are read until enough entries match or the collection
    is exhausted.
    """

    module_id = tool_input["moduleId"]
    schema_key = tool_input.get("schemaKey")
    filters: List[Dict[str, Any]] = tool_input.get("filters") or []
    order_by = tool_input.get("orderBy")
    limit = clamp_limit(tool_input.get("limit"), ctx)

    module = await load_module(ctx, module_id)
    if module is None:
        return module_not_found(module_id)

    query = entries_ref(ctx.db, ctx.user_id, module_id)
    if schema_key:
        query = query.where(filter=FieldFilter("schemaKey", "==", schema_key))

    direction = (
        firestore.Query.ASCENDING
        if tool_input.get("direction") == "asc"
        else firestore.Query.DESCENDING
    )
    order_field = f"data.{order_by}" if order_by and order_by != "createdAt" else "createdAt"
    query = query.order_by(order_field, direction=direction)

    page_size = limit * 3 if filters else limit
    entries: List[Dict[str, Any]] = []
    cursor = None

    while len(entries) < limit:
        page = query.limit(page_size)
        if cursor is not None:
            page = page.start_after(cursor)
        snapshots = await page.get()

        for snapshot in snapshots:
            raw = snapshot.to_dict() or {}
            data = raw.get("data") or {}
            if not all(matches(data, flt) for flt in filters):
                continue
            entries.append({
                "id": snapshot.id,
                "schemaKey": raw.get("schemaKey") or "default",
                "data": serialize_timestamps(data),
                "createdAt": to_iso(raw.get("createdAt")),
            })
            if len(entries) == limit:
                break

        if len(snapshots) < page_size:
            break
        cursor = snapshots[-1]

    return {"count": len(entries), "entries": entries}
