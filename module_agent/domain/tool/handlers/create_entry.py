from typing import Any, Dict

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


async def create_entry(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    """Insert one entry after schema validation, then run the schema's effects"""

    module_id = tool_input["moduleId"]
    schema_key = tool_input["schemaKey"]
    data = tool_input.get("data") or {}

    module = await load_module(ctx, module_id)
    if module is None:
        return module_not_found(module_id)

    schema, error = resolve_schema(module, schema_key)
    if error:
        return error

    missing = schema.missing_required(data)
    if missing:
        return {"error": f"Missing required fields: {', '.join(missing)}"}

    entry_ref = entries_ref(ctx.db, ctx.user_id, module_id).document()
    try:
        await entry_ref.set({
            "data": data,
            "schemaKey": schema_key,
            "schemaVersion": schema.version,
            "createdAt": firestore.SERVER_TIMESTAMP,
            "updatedAt": firestore.SERVER_TIMESTAMP,
        })
    except GoogleAPICallError as e:
        return {"error": f"Failed to write entry: {e}"}

    logger.info("Created entry", module_id=module_id, schema_key=schema_key, entry_id=entry_ref.id)

    warning = await propagate_effects(ctx.db, ctx.user_id, module_id, schema.effects, [data])

    created = await entry_ref.get()
    result = {
        "id": entry_ref.id,
        "schemaKey": schema_key,
        "data": data,
        "createdAt": timestamp_or_now((created.to_dict() or {}).get("createdAt")),
    }
    return with_warning(result, warning)
