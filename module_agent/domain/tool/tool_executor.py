import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from module_agent.domain.models.conversation import ToolCall, ToolResult
from module_agent.domain.tool.handlers import (
    create_entries, create_entry, get_module_summary, query_entries,
    update_entries, update_entry
)
from module_agent.domain.tool.tool_context import ToolContext, ToolLimits
from module_agent.domain.tool.tool_registry import ToolKind, ToolRegistry
from module_agent.domain.tool.tool_validator import ToolParameterValidator
from module_agent.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

ToolHandler = Callable[[ToolContext, Dict[str, Any]], Awaitable[Dict[str, Any]]]

TOOL_HANDLERS: Dict[ToolKind, ToolHandler] = {
    ToolKind.CREATE_ENTRY: create_entry,
    ToolKind.CREATE_ENTRIES: create_entries,
    ToolKind.QUERY_ENTRIES: query_entries,
    ToolKind.UPDATE_ENTRY: update_entry,
    ToolKind.UPDATE_ENTRIES: update_entries,
    ToolKind.GET_MODULE_SUMMARY: get_module_summary,
}


class ToolDispatcher:
    """Routes tool calls to their handlers; failures come back as {"error": ...} results"""

    def __init__(
        self,
        db,
        registry: Optional[ToolRegistry] = None,
        limits: Optional[ToolLimits] = None,
        handlers: Optional[Dict[ToolKind, ToolHandler]] = None,
    ):
        self.db = db
        self.registry = registry or ToolRegistry()
        self.limits = limits or ToolLimits()
        self.handlers = handlers or TOOL_HANDLERS
        self.validator = ToolParameterValidator()

    async def execute(self, user_id: str, tool_call: ToolCall) -> ToolResult:
        """Execute a single tool call. Never raises."""

        start = time.perf_counter()
        logger.info("Executing tool", tool=tool_call.name, user_id=user_id)

        output = await self._run(user_id, tool_call)
        error = output.get("error") if isinstance(output, dict) else None

        conversation_id = structlog.contextvars.get_contextvars().get("conversation_id")
        agent_logger.log_tool_execution(
            tool_name=tool_call.name,
            conversation_id=conversation_id,
            input_data=tool_call.input,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            success=error is None,
            error=error,
        )

        return ToolResult(id=tool_call.id, content=json.dumps(output, default=str))

    async def execute_all(self, user_id: str, tool_calls: List[ToolCall]) -> List[ToolResult]:
        """Run calls concurrently; results keep the order of ``tool_calls``"""

        if not tool_calls:
            return []
        return list(await asyncio.gather(*(self.execute(user_id, call) for call in tool_calls)))

    async def _run(self, user_id: str, tool_call: ToolCall) -> Dict[str, Any]:
        try:
            kind = ToolKind(tool_call.name)
        except ValueError:
            return {"error": f"Unknown tool: {tool_call.name}"}

        handler = self.handlers.get(kind)
        definition = self.registry.get_tool_info(kind.value)
        if handler is None or definition is None:
            return {"error": f"Unknown tool: {tool_call.name}"}

        validation = self.validator.validate_tool_call(definition, tool_call.input)
        if not validation.is_valid:
            return {"error": f"Invalid input for {tool_call.name}: {'; '.join(validation.errors)}"}

        context = ToolContext(db=self.db, user_id=user_id, limits=self.limits)
        try:
            return await handler(context, tool_call.input)
        except Exception as e:
            logger.error("Tool failed", tool=tool_call.name, error=str(e), exc_info=True)
            return {"error": f"Tool execution failed: {e}"}
