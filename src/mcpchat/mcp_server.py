"""The tool catalog as an MCP server (SDK lowlevel `Server`).

One server is built per process. HTTP sessions and the stdio entry point each
run it over their own transport streams.
"""

import logging
from typing import Any, Dict, Iterable, List

from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.shared.exceptions import McpError
from pydantic import AnyUrl

from .errors import PromptNotFoundError, ResourceNotFoundError
from .tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)


def _invalid_params(exc: Exception) -> McpError:
    return McpError(types.ErrorData(code=types.INVALID_PARAMS, message=str(exc)))


def build_mcp_server(catalog: ToolCatalog, name: str, version: str) -> Server:
    """Register the catalog's tools, resources and prompts on a lowlevel server.

    Tool failures (unknown tool, bad arguments, handler errors) come back as
    `isError` results; unknown resources and prompts are JSON-RPC errors.
    """
    server: Server = Server(name, version=version)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [types.Tool(**tool) for tool in catalog.list_tools()]

    # Arguments are validated by the catalog's pydantic models.
    @server.call_tool(validate_input=False)
    async def call_tool(tool: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        result = await catalog.call_tool(tool, arguments)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=result.text)],
            structuredContent=result.structured,
            isError=result.is_error,
        )

    @server.list_resources()
    async def list_resources() -> List[types.Resource]:
        return [types.Resource(**resource) for resource in catalog.list_resources()]

    @server.read_resource()
    async def read_resource(uri: AnyUrl) -> Iterable[ReadResourceContents]:
        try:
            contents = await catalog.read_resource(str(uri))
        except ResourceNotFoundError as e:
            logger.warning("MCP read of unknown resource %s", uri)
            raise _invalid_params(e) from e
        return [ReadResourceContents(content=contents["text"], mime_type=contents["mimeType"])]

    @server.list_prompts()
    async def list_prompts() -> List[types.Prompt]:
        return [
            types.Prompt(
                name=p["name"],
                title=p["title"],
                description=p["description"],
                arguments=[types.PromptArgument(**a) for a in p["arguments"]],
            )
            for p in catalog.list_prompts()
        ]

    @server.get_prompt()
    async def get_prompt(prompt: str, arguments: Dict[str, str] | None) -> types.GetPromptResult:
        try:
            rendered = catalog.get_prompt(prompt, arguments)
        except PromptNotFoundError as e:
            raise _invalid_params(e) from e
        return types.GetPromptResult(
            description=rendered["description"],
            messages=[
                types.PromptMessage(
                    role=m["role"],
                    content=types.TextContent(type="text", text=m["content"]["text"]),
                )
                for m in rendered["messages"]
            ],
        )

    return server
