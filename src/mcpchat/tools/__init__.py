"""Tool handlers, their typed arguments, and the catalog that serves them."""

from .arguments import ToolCall, UnknownTool, parse_tool_call
from .cache import DataCache
from .catalog import PROMPTS, RESOURCES, TOOLS, ToolCatalog
from .handlers import ToolContext

__all__ = [
    "DataCache",
    "PROMPTS",
    "RESOURCES",
    "TOOLS",
    "ToolCall",
    "ToolCatalog",
    "ToolContext",
    "UnknownTool",
    "parse_tool_call",
]
