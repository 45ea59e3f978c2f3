from typing import Any, Dict, List

from google.cloud.firestore_v1.base_query import FieldFilter

from module_agent.domain.tool.handlers.common import load_module, module_not_found
from module_agent.domain.tool.tool_context import ToolContext
from module_agent.infrastructure.persistence.firestore_client import (
    entries_ref, serialize_timestamps, to_iso
)


def numeric_aggregates(fields, rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    aggregates: Dict[str, Dict[str, Any]] = {}
    for field_key, field in fields.items():
        if not field.is_numeric:
            continue
        values = [
            value for value in (row["data"].get(field_key) for row in rows)
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        ]
        if not values:
            continue
        total = sum(values)
        aggregates[field_key] = {
            "sum": total,
            "avg": round(total / len(values), 2),
            "min": min(values),
            "max": max(values),
        }
    return aggregates


async def get_module_summary(ctx: ToolContext, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    """Per-schema counts, most recent entries and numeric aggregates"""

    module_id = tool_input["moduleId"]
    schema_key = tool_input.get("schemaKey")

    module = await load_module(ctx, module_id)
    if module is None:
        return module_not_found(module_id)

    query = entries_ref(ctx.db, ctx.user_id, module_id)
    if schema_key:
        query = query.where(filter=FieldFilter("schemaKey", "==", schema_key))
    snapshots = await query.get()

    by_schema: Dict[str, List[Dict[str, Any]]] = {}
    for snapshot in snapshots:
        raw = snapshot.to_dict() or {}
        by_schema.setdefault(raw.get("schemaKey") or "default", []).append({
            "id": snapshot.id,
            "data": raw.get("data") or {},
            "createdAt": to_iso(raw.get("createdAt")),
        })

    summaries: Dict[str, Any] = {}
    for key, rows in by_schema.items():
        schema = module.get_schema(key)
        rows.sort(key=lambda row: row["createdAt"] or "", reverse=True)

        summary: Dict[str, Any] = {
            "label": (schema.label if schema else None) or key,
            "entryCount": len(rows),
            "recentEntries": [
                {"id": row["id"], "data": serialize_timestamps(row["data"]), "createdAt": row["createdAt"]}
                for row in rows[:ctx.limits.summary_recent_entries]
            ],
        }
        aggregates = numeric_aggregates(schema.fields, rows) if schema else {}
        if aggregates:
            summary["numericAggregates"] = aggregates
        summaries[key] = summary

    return {
        "moduleName": module.name,
        "totalEntries": len(snapshots),
        "schemas": summaries,
    }
