from module_agent.domain.tool.handlers.create_entry import create_entry
from module_agent.domain.tool.handlers.create_entries import create_entries
from module_agent.domain.tool.handlers.get_module_summary import get_module_summary
from module_agent.domain.tool.handlers.query_entries import query_entries
from module_agent.domain.tool.handlers.update_entry import update_entry
from module_agent.domain.tool.handlers.update_entries import update_entries

__all__ = [
    "create_entry",
    "create_entries",
    "get_module_summary",
    "query_entries",
    "update_entry",
    "update_entries",
]
