from typing import Any, Dict, List

import structlog
from google.api_core.exceptions import GoogleAPICallError

from module_agent.domain.effects.effect_engine import propagate_effects
from module_agent.domain.tool.handlers.common import (
    entry_not_found, load_module, module_not_found, timestamp_or_now
)
from module_agent.domain.tool.handlers.update_entry import merge_fields
from module_agent.domain.tool.tool_context import ToolContext
from module_agent.infrastructure.persistence.firestore_client import entries_ref

logger = structlog.get_logger(__name__)


async def update_entries(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    """Validate every row first, then apply all partial merges in one batch"""

    module_id = tool_input["moduleId"]
    entries = tool_input.get("entries")

    if not isinstance(entries, list) or not entries:
        return {"error": "entries must be a non-empty array."}
    if len(entries) > ctx.limits.max_batch_entries:
        return {"error": f"Maximum {ctx.limits.max_batch_entries} entries per batch."}

    module = await load_module(ctx, module_id)
    if module is None:
        return module_not_found(module_id)

    collection = entries_ref(ctx.db, ctx.user_id, module_id)
    # schema key -> merged post-update data of each row, for effects
    triggers: Dict[str, List[Dict[str, Any]]] = {}

    for entry in entries:
        entry_id = entry["entryId"]
        data = entry.get("data") or {}
        snapshot = await collection.document(entry_id).get()
        if not snapshot.exists:
            return entry_not_found(entry_id)

        existing = snapshot.to_dict() or {}
        schema_key = existing.get("schemaKey") or "default"
        schema = module.get_schema(schema_key)
        if schema is None:
            continue

        unknown = schema.unknown_fields(data)
        if unknown:
            return {
                "error": f'Entry "{entry_id}": unknown fields for schema "{schema_key}": {", ".join(unknown)}'
            }
        triggers.setdefault(schema_key, []).append({**(existing.get("data") or {}), **data})

    try:
        batch = ctx.db.batch()
        for entry in entries:
            batch.update(collection.document(entry["entryId"]), merge_fields(entry.get("data") or {}))
        await batch.commit()
    except GoogleAPICallError as e:
        return {"error": f"Failed to update entries: {e}"}

    logger.info("Batch updated entries", module_id=module_id, count=len(entries))

    warnings = []
    for schema_key, rows in triggers.items():
        warning = await propagate_effects(
            ctx.db, ctx.user_id, module_id, module.get_schema(schema_key).effects, rows
        )
        if warning:
            warnings.append(warning)

    first = await collection.document(entries[0]["entryId"]).get()
    result: Dict[str, Any] = {
        "updated": len(entries),
        "ids": [entry["entryId"] for entry in entries],
        "updatedAt": timestamp_or_now((first.to_dict() or {}).get("updatedAt")),
    }
    if warnings:
        result["warnings"] = warnings
    return result
