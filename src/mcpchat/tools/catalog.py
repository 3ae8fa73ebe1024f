import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Type

from pydantic import BaseModel

from ..errors import PromptNotFoundError, ResourceNotFoundError, UnknownToolError
from ..models import ToolResult
from .arguments import (
    CalculatorArgs,
    CryptoPricesArgs,
    NewsHeadlinesArgs,
    TextProcessorArgs,
    UnknownTool,
    WeatherArgs,
    parse_tool_call,
)
from .handlers import (
    ToolContext,
    calculator,
    crypto_prices,
    enhanced_system_info,
    news_headlines,
    system_info,
    text_processor,
    weather,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    title: str
    description: str
    model: Type[BaseModel]
    handler: Callable[[Any, ToolContext], Awaitable[ToolResult]]

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.model.model_json_schema(),
        }


@dataclass(frozen=True)
class ResourceSpec:
    uri: str
    name: str
    description: str
    reader: Callable[[ToolContext], str]
    mime_type: str = "application/json"

    def describe(self) -> Dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True)
class PromptSpec:
    name: str
    title: str
    description: str
    arguments: List[Dict[str, Any]] = field(default_factory=list)

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "arguments": list(self.arguments),
        }


TOOLS: List[ToolSpec] = [
    ToolSpec(
        name="calculator",
        title="Calculator",
        description="Perform basic arithmetic operations",
        model=CalculatorArgs,
        handler=calculator,
    ),
    ToolSpec(
        name="weather",
        title="Weather",
        description="Get weather information for a city (simulated)",
        model=WeatherArgs,
        handler=weather,
    ),
    ToolSpec(
        name="text-processor",
        title="Text Processor",
        description="Process text with various operations",
        model=TextProcessorArgs,
        handler=text_processor,
    ),
    ToolSpec(
        name="crypto-prices",
        title="Cryptocurrency Prices",
        description="Get current cryptocurrency prices with market data (simulated)",
        model=CryptoPricesArgs,
        handler=crypto_prices,
    ),
    ToolSpec(
        name="news-headlines",
        title="Latest News Headlines",
        description="Get current news headlines with live updates (simulated)",
        model=NewsHeadlinesArgs,
        handler=news_headlines,
    ),
]

RESOURCES: List[ResourceSpec] = [
    ResourceSpec(
        uri="system://info",
        name="System Information",
        description="Get basic system information",
        reader=system_info,
    ),
    ResourceSpec(
        uri="system://enhanced-info",
        name="Enhanced System Information",
        description="Server status with push connections and cache state",
        reader=enhanced_system_info,
    ),
]

PROMPTS: List[PromptSpec] = [
    PromptSpec(
        name="chat-assistant",
        title="Chat Assistant",
        description="A helpful chat assistant prompt",
        arguments=[
            {"name": "topic", "description": "The topic to discuss", "required": False},
            {"name": "tone", "description": "The tone to use", "required": False},
        ],
    ),
]


def chat_assistant_prompt(topic: str | None = None, tone: str | None = None) -> str:
    tone = tone or "friendly"
    if topic:
        return f"You are a {tone} chat assistant. The user wants to discuss: {topic}"
    return f"You are a {tone} chat assistant. Help the user with their questions."


class ToolCatalog:
    """Static list of tools, resources and prompts, plus the code to run them."""

    def __init__(self, context: ToolContext, timeout_seconds: float = 5.0) -> None:
        self.context = context
        self._timeout = timeout_seconds
        self._tools: Dict[str, ToolSpec] = {t.name: t for t in TOOLS}
        self._resources: Dict[str, ResourceSpec] = {r.uri: r for r in RESOURCES}
        self._prompts: Dict[str, PromptSpec] = {p.name: p for p in PROMPTS}

    @property
    def tools(self) -> List[ToolSpec]:
        return list(self._tools.values())

    @property
    def resources(self) -> List[ResourceSpec]:
        return list(self._resources.values())

    def list_tools(self) -> List[Dict[str, Any]]:
        return [t.describe() for t in self._tools.values()]

    def list_resources(self) -> List[Dict[str, Any]]:
        return [r.describe() for r in self._resources.values()]

    def list_prompts(self) -> List[Dict[str, Any]]:
        return [p.describe() for p in self._prompts.values()]

    async def call_tool(self, name: str, arguments: Dict[str, Any] | None = None) -> ToolResult:
        """Parse arguments for `name` and run its handler under the tool timeout.

        Raises:
            UnknownToolError: no tool is registered under `name`.
            InvalidToolArgumentsError: the arguments fail validation.
        """
        call = parse_tool_call(name, arguments)
        if isinstance(call, UnknownTool):
            raise UnknownToolError(call.name)

        spec = self._tools[call.tool]
        logger.info("Executing tool: %s", spec.name)
        try:
            return await asyncio.wait_for(
                spec.handler(call, self.context), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %ss", spec.name, self._timeout)
            return ToolResult(
                text=f"Error: Tool {spec.name} timed out after {self._timeout}s",
                is_error=True,
            )

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        """Return `{uri, mimeType, text}` for a resource. Raises ResourceNotFoundError."""
        spec = self._resources.get(uri)
        if spec is None:
            raise ResourceNotFoundError(uri)
        logger.info("Reading resource: %s", uri)
        return {"uri": spec.uri, "mimeType": spec.mime_type, "text": spec.reader(self.context)}

    def get_prompt(self, name: str, arguments: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """Render a prompt template. Raises PromptNotFoundError."""
        spec = self._prompts.get(name)
        if spec is None:
            raise PromptNotFoundError(name)
        arguments = arguments or {}
        text = chat_assistant_prompt(arguments.get("topic"), arguments.get("tone"))
        return {
            "description": spec.description,
            "messages": [{"role": "user", "content": {"type": "text", "text": text}}],
        }
