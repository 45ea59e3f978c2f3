from typing import Dict, List, Any, Optional
from enum import Enum


class ToolKind(str, Enum):
    """Closed set of tools the provider may call"""
    CREATE_ENTRY = "create_entry"
    CREATE_ENTRIES = "create_entries"
    QUERY_ENTRIES = "query_entries"
    UPDATE_ENTRY = "update_entry"
    UPDATE_ENTRIES = "update_entries"
    GET_MODULE_SUMMARY = "get_module_summary"


class ToolCategory(str, Enum):
    """Read tools run immediately; write tools wait for human approval"""
    READ = "read"
    WRITE = "write"


_ENTRY_DATA = {
    "type": "object",
    "description": (
        "The entry data as key-value pairs matching the schema field keys. "
        "Use the exact field keys from the schema."
    ),
}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": ToolKind.CREATE_ENTRY.value,
        "category": ToolCategory.WRITE,
        "description": (
            "Create a new data entry in a module. Use this when the user wants "
            "to add, log, or record something (an expense, a workout, a habit "
            "check-in, etc.)."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "moduleId": {"type": "string", "description": "The ID of the module to create the entry in."},
                "schemaKey": {
                    "type": "string",
                    "description": (
                        "The schema key within the module (e.g. 'default', 'transactions'). "
                        "Use 'default' if the module has only one schema."
                    ),
                },
                "data": _ENTRY_DATA,
            },
            "required": ["moduleId", "schemaKey", "data"],
        },
    },
    {
        "name": ToolKind.CREATE_ENTRIES.value,
        "category": ToolCategory.WRITE,
        "description": (
            "Create multiple entries in a module at once. Use this instead of "
            "create_entry when the user wants to add several items in one go. "
            "All entries use the same schema. Maximum 50 entries per call."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "moduleId": {"type": "string", "description": "The ID of the module to create the entries in."},
                "schemaKey": {
                    "type": "string",
                    "description": "The schema key within the module. All entries in the batch use this schema.",
                },
                "entries": {
                    "type": "array",
                    "description": "Array of entries to create.",
                    "items": {
                        "type": "object",
                        "properties": {"data": _ENTRY_DATA},
                        "required": ["data"],
                    },
                },
            },
            "required": ["moduleId", "schemaKey", "entries"],
        },
    },
    {
        "name": ToolKind.QUERY_ENTRIES.value,
        "category": ToolCategory.READ,
        "description": (
            "Query and read entries from a module. Use this to look up, search, "
            "list, or check existing data. Returns entries matching the filters."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "moduleId": {"type": "string", "description": "The ID of the module to query."},
                "schemaKey": {
                    "type": "string",
                    "description": "Optional schema key to filter by. Omit to query all schemas.",
                },
                "filters": {
                    "type": "array",
                    "description": "Optional filters to narrow results.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "field": {"type": "string", "description": "The data field key."},
                            "op": {
                                "type": "string",
                                "enum": ["==", "!=", ">", "<", ">=", "<="],
                                "description": "Comparison operator.",
                            },
                            "value": {"description": "The value to compare against."},
                        },
                        "required": ["field", "op", "value"],
                    },
                },
                "orderBy": {"type": "string", "description": "Field key to order results by. Defaults to createdAt."},
                "direction": {
                    "type": "string",
                    "enum": ["asc", "desc"],
                    "description": "Sort direction. Defaults to desc (newest or largest first).",
                },
                "limit": {"type": "integer", "description": "Max entries to return (default 20, max 50)."},
            },
            "required": ["moduleId"],
        },
    },
    {
        "name": ToolKind.UPDATE_ENTRY.value,
        "category": ToolCategory.WRITE,
        "description": (
            "Update an existing entry in a module. Performs a partial merge: "
            "only the provided fields are changed."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "moduleId": {"type": "string", "description": "The ID of the module containing the entry."},
                "entryId": {"type": "string", "description": "The ID of the entry to update."},
                "data": {
                    "type": "object",
                    "description": "The fields to update as key-value pairs. Others are left untouched.",
                },
            },
            "required": ["moduleId", "entryId", "data"],
        },
    },
    {
        "name": ToolKind.UPDATE_ENTRIES.value,
        "category": ToolCategory.WRITE,
        "description": (
            "Update multiple existing entries in a module at once. Each entry can "
            "have different fields updated. Maximum 50 per call."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "moduleId": {"type": "string", "description": "The ID of the module containing the entries."},
                "entries": {
                    "type": "array",
                    "description": "Array of entries to update.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "entryId": {"type": "string", "description": "The ID of the entry to update."},
                            "data": {"type": "object", "description": "The fields to update as key-value pairs."},
                        },
                        "required": ["entryId", "data"],
                    },
                },
            },
            "required": ["moduleId", "entries"],
        },
    },
    {
        "name": ToolKind.GET_MODULE_SUMMARY.value,
        "category": ToolCategory.READ,
        "description": (
            "Get an overview of a module's data without fetching every entry. "
            "Returns entry counts, recent entries, and numeric field aggregates."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "moduleId": {"type": "string", "description": "The ID of the module to summarize."},
                "schemaKey": {"type": "string", "description": "Optional schema key to narrow the summary to one schema."},
            },
            "required": ["moduleId"],
        },
    },
]


class ToolRegistry:
    """Registry of the tool catalogue and its approval classification"""

    def __init__(self, definitions: Optional[List[Dict[str, Any]]] = None):
        self.tools: Dict[str, Dict[str, Any]] = {}
        self.tool_categories: Dict[ToolCategory, List[str]] = {}
        for definition in definitions or TOOL_DEFINITIONS:
            self.register_tool(definition)

    def register_tool(self, tool_config: Dict[str, Any]):
        """Register a tool definition"""

        tool_name = tool_config["name"]
        category = ToolCategory(tool_config.get("category", ToolCategory.READ))

        self.tools[tool_name] = tool_config
        self.tool_categories.setdefault(category, []).append(tool_name)

    def get_tool_info(self, tool_name: str) -> Optional[Dict[str, Any]]:
        """Get the definition of a specific tool"""

        return self.tools.get(tool_name)

    def requires_approval(self, tool_name: str) -> bool:
        """Creation and modification tools require approval; everything else runs immediately"""

        return tool_name in self.tool_categories.get(ToolCategory.WRITE, [])

    def get_catalogue(self) -> List[Dict[str, Any]]:
        """Tool definitions in the shape the provider expects"""

        return [
            {
                "name": tool["name"],
                "description": tool["description"],
                "input_schema": tool["input_schema"],
            }
            for tool in self.tools.values()
        ]
