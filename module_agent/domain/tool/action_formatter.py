import json
from typing import Any, Dict

from module_agent.domain.tool.tool_registry import ToolKind


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), default=str)


def _render_fields(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    return ", ".join(f"{key}: {_render_value(value)}" for key, value in data.items())


def _single_line(text: str) -> str:
    return " ".join(text.splitlines())


def _count(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0


def describe_action(tool_name: str, tool_input: Dict[str, Any]) -> str:
    """One-line human readable description of a deferred tool call for the approval card"""

    if tool_name == ToolKind.CREATE_ENTRY.value:
        text = f'Create entry in "{tool_input.get("schemaKey")}": {_render_fields(tool_input.get("data"))}'
    elif tool_name == ToolKind.CREATE_ENTRIES.value:
        text = f'Create {_count(tool_input.get("entries"))} entries in "{tool_input.get("schemaKey")}"'
    elif tool_name == ToolKind.UPDATE_ENTRY.value:
        text = f'Update entry {tool_input.get("entryId")}: {_render_fields(tool_input.get("data"))}'
    elif tool_name == ToolKind.UPDATE_ENTRIES.value:
        entries = tool_input.get("entries") if isinstance(tool_input.get("entries"), list) else []
        ids = ", ".join(str(entry.get("entryId")) for entry in entries if isinstance(entry, dict))
        text = f"Update {len(entries)} entries: {ids}"
    else:
        text = f"{tool_name}({_render_value(tool_input)})"
    return _single_line(text)
