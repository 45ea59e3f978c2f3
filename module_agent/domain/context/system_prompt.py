import json
from datetime import date
from typing import List, Optional

from module_agent.domain.models.conversation import ContextType, ConversationContext
from module_agent.domain.models.module import FieldDefinition, ModuleDefinition, SchemaDefinition

PERSONA = (
    "You are AJ, a personal assistant that helps users manage their data. "
    "You operate within an app where users have created modules (like "
    "expense trackers, fitness logs, habit trackers, etc.). Each module "
    "has its own data schema.\n\n"
    "Your job is to help users create, read, and update entries in their "
    "modules through natural conversation. Always be concise and helpful."
)

RULES = (
    "RULES:\n"
    "- ONLY operate on modules the user already has. If the user asks to "
    "add data that doesn't fit any existing module, tell them they need "
    "to create that module first. Never invent module IDs or schema keys.\n"
    "- Use the tools provided to perform data operations. Never make up data.\n"
    "- Always match field keys exactly as defined in the schema.\n"
    "- For enum fields, only use values from the options list.\n"
    "- For reference fields, use get_module_summary or query_entries first "
    "to find the correct entry ID.\n"
    "- For write operations (creating or updating entries), always call "
    "the tool directly. The app shows the user an approval card before "
    "anything is saved. Do NOT ask for confirmation in text first.\n"
    "- For deletions, confirm with the user in text before proceeding.\n"
    "- When the user mentions an amount without specifying a module, "
    "use context to infer which module they mean.\n"
    "- When creating multiple entries at once (e.g. a week of meals, "
    "several expenses, a batch of workouts), ALWAYS use create_entries "
    "instead of calling create_entry multiple times. Same for updates: "
    "use update_entries to update several entries in one call.\n"
    "- Keep responses short. After creating/updating data, briefly "
    "confirm what was done."
)

NO_MODULES = (
    "USER'S MODULES:\nThe user has no modules yet. They need to create "
    "modules through the module builder before you can help with data."
)

SCREEN_NAMES = {
    ContextType.DASHBOARD: "the dashboard",
    ContextType.MODULES_LIST: "the modules list",
    ContextType.MODULE: "a module screen",
}


def format_field(key: str, field: FieldDefinition) -> str:
    line = f'    - {key} ({field.type}): "{field.label or key}"'
    if field.required:
        line += " [required]"
    if field.options:
        line += f" options=[{', '.join(str(option) for option in field.options)}]"
    if field.constraints:
        line += f" constraints={json.dumps(field.constraints, separators=(',', ':'), default=str)}"
    return line


def format_schema(key: str, schema: SchemaDefinition) -> str:
    lines = [f'  Schema "{key}" ({schema.label or key}):']
    if not schema.fields:
        lines.append("    (no fields defined)")
    else:
        lines.extend(format_field(field_key, field) for field_key, field in schema.fields.items())
    return "\n".join(lines)


def format_module(module: ModuleDefinition) -> str:
    lines = [f'Module "{module.name}" (id: {module.id})']
    if module.description:
        lines.append(f"  Description: {module.description}")
    lines.extend(format_schema(key, schema) for key, schema in module.schemas.items())
    if module.settings:
        lines.append(f"  Settings: {json.dumps(module.settings, separators=(',', ':'), default=str)}")
    return "\n".join(lines)


def format_context(context: ConversationContext, modules: List[ModuleDefinition]) -> str:
    line = f"CURRENT SCREEN: The user is on {SCREEN_NAMES[context.type]}"
    if context.module_id:
        module = next((m for m in modules if m.id == context.module_id), None)
        if module is not None:
            line += f' for module "{module.name}" (id: {module.id})'
        else:
            line += f" for module id {context.module_id}"
    if context.screen_id:
        line += f", screen {context.screen_id}"
    line += "."
    if context.module_id:
        line += " Prefer this module when the request is ambiguous."
    return line


def build_system_prompt(
    modules: List[ModuleDefinition],
    context: Optional[ConversationContext] = None,
    today: Optional[date] = None,
) -> str:
    """Render the user's modules and current screen into the system prompt"""

    today = today or date.today()
    sections = [f"{PERSONA}\n\nToday's date is {today.isoformat()}.", RULES]

    if not modules:
        sections.append(NO_MODULES)
    else:
        sections.append("USER'S MODULES:\n" + "\n\n".join(format_module(module) for module in modules))

    if context is not None:
        sections.append(format_context(context, modules))

    return "\n\n".join(sections)
