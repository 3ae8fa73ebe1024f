"""The demo tools as a stdio MCP server, for desktop MCP clients.

Run with `mcpchat-stdio` (or `python -m mcpchat.stdio_server`).
"""

import anyio
from mcp.server.stdio import stdio_server

from .mcp_server import build_mcp_server
from .settings import get_settings
from .tools import DataCache, ToolCatalog, ToolContext


def build_catalog() -> ToolCatalog:
    settings = get_settings()
    context = ToolContext(
        cache=DataCache(
            {
                "crypto": settings.crypto_cache_ttl_seconds,
                "news": settings.news_cache_ttl_seconds,
            }
        ),
        server_name=settings.server_name,
        server_version=settings.server_version,
    )
    return ToolCatalog(context, timeout_seconds=settings.tool_timeout_seconds)


async def serve() -> None:
    settings = get_settings()
    server = build_mcp_server(build_catalog(), settings.server_name, settings.server_version)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    anyio.run(serve)


if __name__ == "__main__":
    main()
