from typing import Any, Dict

import structlog
from google.api_core.exceptions import GoogleAPICallError
from google.cloud import firestore

from module_agent.domain.effects.effect_engine import propagate_effects
from module_agent.domain.tool.handlers.common import (
    entry_not_found, load_module, module_not_found, timestamp_or_now, with_warning
)
from module_agent.domain.tool.tool_context import ToolContext
from module_agent.infrastructure.persistence.firestore_client import entries_ref, serialize_timestamps

logger = structlog.get_logger(__name__)


def merge_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Dot-path update payload so only the given data fields change"""

    fields: Dict[str, Any] = {"updatedAt": firestore.SERVER_TIMESTAMP}
    for key, value in data.items():
        fields[f"data.{key}"] = value
    return fields


async def update_entry(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    """Partially merge ``data`` into an existing entry"""

    module_id = tool_input["moduleId"]
    entry_id = tool_input["entryId"]
    data = tool_input.get("data") or {}

    module = await load_module(ctx, module_id)
    if module is None:
        return module_not_found(module_id)

    entry_ref = entries_ref(ctx.db, ctx.user_id, module_id).document(entry_id)
    snapshot = await entry_ref.get()
    if not snapshot.exists:
        return entry_not_found(entry_id)

    existing = snapshot.to_dict() or {}
    schema_key = existing.get("schemaKey") or "default"
    schema = module.get_schema(schema_key)

    if schema is not None:
        unknown = schema.unknown_fields(data)
        if unknown:
            return {"error": f'Unknown fields for schema "{schema_key}": {", ".join(unknown)}'}

    try:
        await entry_ref.update(merge_fields(data))
    except GoogleAPICallError as e:
        return {"error": f"Failed to update entry: {e}"}

    logger.info("Updated entry", module_id=module_id, entry_id=entry_id, fields=list(data.keys()))

    warning = None
    if schema is not None:
        merged = {**(existing.get("data") or {}), **data}
        warning = await propagate_effects(ctx.db, ctx.user_id, module_id, schema.effects, [merged])

    updated = (await entry_ref.get()).to_dict() or {}
    result = {
        "id": entry_id,
        "schemaKey": schema_key,
        "data": serialize_timestamps(updated.get("data") or {}),
        "updatedAt": timestamp_or_now(updated.get("updatedAt")),
    }
    return with_warning(result, warning)
