import json

import pytest
from mcp.shared.exceptions import McpError
from mcp.shared.memory import create_connected_server_and_client_session
from pydantic import AnyUrl

from mcpchat.mcp_server import build_mcp_server
from mcpchat.settings import get_settings
from mcpchat.stdio_server import build_catalog
from mcpchat.tools import ToolCatalog


@pytest.mark.asyncio
async def test_server_lists_catalog(catalog: ToolCatalog) -> None:
    server = build_mcp_server(catalog, "test-server", "0.1")

    async with create_connected_server_and_client_session(server) as session:
        tools = [t.name for t in (await session.list_tools()).tools]
        assert tools == ["calculator", "weather", "text-processor", "crypto-prices", "news-headlines"]

        resources = [str(r.uri) for r in (await session.list_resources()).resources]
        assert resources == ["system://info", "system://enhanced-info"]

        prompts = (await session.list_prompts()).prompts
        assert [p.name for p in prompts] == ["chat-assistant"]
        assert [a.name for a in prompts[0].arguments] == ["topic", "tone"]


@pytest.mark.asyncio
async def test_server_calls_tools(catalog: ToolCatalog) -> None:
    server = build_mcp_server(catalog, "test-server", "0.1")

    async with create_connected_server_and_client_session(server) as session:
        result = await session.call_tool("calculator", {"operation": "add", "a": 15, "b": 27})
        assert result.isError is False
        assert result.content[0].text == "15 add 27 = 42"

        result = await session.call_tool("calculator", {"operation": "divide", "a": 1, "b": 0})
        assert result.isError is True
        assert result.content[0].text == "Error: Division by zero"


@pytest.mark.asyncio
async def test_bad_tool_calls_are_error_results(catalog: ToolCatalog) -> None:
    """Unknown tools and invalid arguments come back as isError results, not protocol errors."""
    server = build_mcp_server(catalog, "test-server", "0.1")

    async with create_connected_server_and_client_session(server) as session:
        result = await session.call_tool("teleport", {})
        assert result.isError is True
        assert "teleport" in result.content[0].text

        result = await session.call_tool("calculator", {"a": 1})
        assert result.isError is True
        assert "calculator" in result.content[0].text


@pytest.mark.asyncio
async def test_server_resources_and_prompts(catalog: ToolCatalog) -> None:
    server = build_mcp_server(catalog, "test-server", "0.1")

    async with create_connected_server_and_client_session(server) as session:
        result = await session.read_resource(AnyUrl("system://info"))
        contents = result.contents[0]
        assert contents.mimeType == "application/json"
        assert "platform" in json.loads(contents.text)

        prompt = await session.get_prompt("chat-assistant", {"topic": "cats"})
        assert "cats" in prompt.messages[0].content.text

        with pytest.raises(McpError):
            await session.read_resource(AnyUrl("system://nope"))
        with pytest.raises(McpError):
            await session.get_prompt("nope")


def test_stdio_catalog_uses_settings() -> None:
    catalog = build_catalog()
    assert [t.name for t in catalog.tools][0] == "calculator"
    assert catalog.context.server_name == get_settings().server_name
