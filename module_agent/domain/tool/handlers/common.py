from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from module_agent.domain.models.module import ModuleDefinition, SchemaDefinition
from module_agent.domain.tool.tool_context import ToolContext
from module_agent.infrastructure.persistence.firestore_client import module_ref, to_iso


def module_not_found(module_id: str) -> Dict[str, Any]:
    return {"error": f'Module "{module_id}" not found.'}


def entry_not_found(entry_id: str) -> Dict[str, Any]:
    return {"error": f'Entry "{entry_id}" not found.'}


async def load_module(ctx: ToolContext, module_id: str) -> Optional[ModuleDefinition]:
    """Read a module definition from the user's subtree; None when missing"""

    snapshot = await module_ref(ctx.db, ctx.user_id, module_id).get()
    if not snapshot.exists:
        return None
    return ModuleDefinition.from_document(snapshot.id, snapshot.to_dict() or {})


def resolve_schema(module: ModuleDefinition, schema_key: str) -> Tuple[Optional[SchemaDefinition], Optional[Dict[str, Any]]]:
    """Look up a schema, returning an error envelope listing the available keys when absent"""

    schema = module.get_schema(schema_key)
    if schema is None:
        available = ", ".join(module.schema_keys)
        return None, {"error": f'Schema "{schema_key}" not found. Available: {available}'}
    return schema, None


def timestamp_or_now(value: Any) -> str:
    return to_iso(value) or datetime.now(timezone.utc).isoformat()


def with_warning(result: Dict[str, Any], warning: Optional[str]) -> Dict[str, Any]:
    if warning:
        result["warnings"] = [warning]
    return result
