from typing import Any, Dict, List

import structlog
from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore

from module_agent.domain.effects.effect_engine import propagate_effects
from module_agent.domain.tool.handlers.common import (
    load_module, module_not_found, resolve_schema, timestamp_or_now, with_warning
)
from module_agent.domain.tool.tool_context import ToolContext
from module_agent.infrastructure.persistence.firestore_client import entries_ref

logger = structlog.get_logger(__name__)


async def create_entries(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    """Insert up to ``max_batch_entries`` entries of one schema in a single batch"""

    module_id = tool_input["moduleId"]
    schema_key = tool_input["schemaKey"]
    entries = tool_input.get("entries")

    if not isinstance(entries, list) or not entries:
        return {"error": "entries must be a non-empty array."}
    if len(entries) > ctx.limits.max_batch_entries:
        return {"error": f"Maximum {ctx.limits.max_batch_entries} entries per batch."}

    module = await load_module(ctx, module_id)
    if module is None:
        return module_not_found(module_id)

    schema, error = resolve_schema(module, schema_key)
    if error:
        return error

    rows: List[Dict[str, Any]] = [entry.get("data") or {} for entry in entries]
    for index, data in enumerate(rows, start=1):
        missing = schema.missing_required(data)
        if missing:
            return {"error": f"Entry {index}: missing required fields: {', '.join(missing)}"}

    collection = entries_ref(ctx.db, ctx.user_id, module_id)
    created_ids: List[str] = []
    try:
        batch = ctx.db.batch()
        for data in rows:
            doc_ref = collection.document()
            batch.set(doc_ref, {
                "data": data,
                "schemaKey": schema_key,
                "schemaVersion": schema.version,
                "createdAt": firestore.SERVER_TIMESTAMP,
                "updatedAt": firestore.SERVER_TIMESTAMP,
            })
            created_ids.append(doc_ref.id)
        await batch.commit()
    except GoogleAPICallError as e:
        return {"error": f"Failed to write entries: {e}"}

    logger.info("Batch created entries", module_id=module_id, schema_key=schema_key, count=len(created_ids))

    warning = await propagate_effects(ctx.db, ctx.user_id, module_id, schema.effects, rows)

    first = await collection.document(created_ids[0]).get()
    result = {
        "created": len(created_ids),
        "ids": created_ids,
        "schemaKey": schema_key,
        "createdAt": timestamp_or_now((first.to_dict() or {}).get("createdAt")),
    }
    return with_warning(result, warning)
