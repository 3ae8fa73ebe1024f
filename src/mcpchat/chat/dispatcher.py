"""Keyword/regex intent dispatcher for chat messages.

This is a purely syntactic filter, not language understanding: a message is
routed by the first rule whose keywords or pattern appear in it. False
positives ("tell me about the solar system" -> system info) and false
negatives are expected behaviour.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Tuple

from ..errors import McpChatError
from ..tools.catalog import ToolCatalog

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    CALCULATOR = "calculator"
    WEATHER = "weather"
    TEXT_TRANSFORM = "text-transform"
    SYSTEM_INFO = "system-info"
    HELP = "help"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ChatReply:
    intent: Intent
    text: str
    is_error: bool = False


Predicate = Callable[[str], bool]

ARITHMETIC_RE = re.compile(r"\d+\s*[+\-*/]\s*\d+")
CALCULATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([+\-*/])\s*(\d+(?:\.\d+)?)")
CITY_RE = re.compile(r"weather\s+(?:in\s+|for\s+)?([a-zA-Z\s]+?)(?:\s|$|[.!?])", re.IGNORECASE)

OPERATORS = {"+": "add", "-": "subtract", "*": "multiply", "/": "divide"}

# keyword -> text-processor operation, checked in this order
TEXT_OPERATIONS: List[Tuple[str, str]] = [
    ("uppercase", "uppercase"),
    ("lowercase", "lowercase"),
    ("reverse", "reverse"),
    ("word count", "word-count"),
    ("character count", "char-count"),
]

CALCULATOR_HELP = (
    'Please provide a calculation in the format "number operation number" '
    '(e.g., "5 + 3")'
)

EXAMPLES = [
    "Calculate 15 + 27",
    "Weather in London",
    "Uppercase hello world",
    "System info",
]


def _contains(*keywords: str) -> Predicate:
    return lambda lowered: any(k in lowered for k in keywords)


def _is_calculation(lowered: str) -> bool:
    return _contains("calculate", "math")(lowered) or bool(ARITHMETIC_RE.search(lowered))


# Evaluated top to bottom; the first match wins.
RULES: List[Tuple[Intent, Predicate]] = [
    (Intent.CALCULATOR, _is_calculation),
    (Intent.WEATHER, _contains("weather")),
    (Intent.TEXT_TRANSFORM, _contains(*(k for k, _ in TEXT_OPERATIONS))),
    (Intent.SYSTEM_INFO, _contains("system", "server info")),
    (Intent.HELP, _contains("what can you do", "help", "capabilities")),
]


def classify(text: str) -> Intent:
    """Return the intent of the first rule that matches `text`."""
    lowered = text.lower()
    for intent, predicate in RULES:
        if predicate(lowered):
            return intent
    return Intent.FALLBACK


def extract_city(text: str, default: str) -> str:
    match = CITY_RE.search(text)
    if match:
        city = match.group(1).strip()
        if city:
            return city
    return default


class IntentDispatcher:
    """Routes chat text to a tool, resource or canned reply."""

    def __init__(self, catalog: ToolCatalog, default_city: str = "New York") -> None:
        self._catalog = catalog
        self._default_city = default_city
        self._handlers: dict[Intent, Callable[[str], Awaitable[ChatReply]]] = {
            Intent.CALCULATOR: self._calculator,
            Intent.WEATHER: self._weather,
            Intent.TEXT_TRANSFORM: self._text_transform,
            Intent.SYSTEM_INFO: self._system_info,
            Intent.HELP: self._help,
            Intent.FALLBACK: self._fallback,
        }

    async def dispatch(self, text: str) -> ChatReply:
        intent = classify(text)
        logger.info("Dispatching message as %s", intent.value)
        try:
            return await self._handlers[intent](text)
        except McpChatError as e:
            logger.warning("Dispatch of %s failed: %s", intent.value, e)
            return ChatReply(intent, f"{intent.value} error: {e}", is_error=True)

    async def _call(self, intent: Intent, name: str, arguments: dict) -> ChatReply:
        result = await self._catalog.call_tool(name, arguments)
        return ChatReply(intent, result.text, is_error=result.is_error)

    async def _calculator(self, text: str) -> ChatReply:
        match = CALCULATION_RE.search(text)
        if not match:
            return ChatReply(Intent.CALCULATOR, CALCULATOR_HELP)
        a, symbol, b = match.groups()
        return await self._call(
            Intent.CALCULATOR,
            "calculator",
            {"operation": OPERATORS[symbol], "a": float(a), "b": float(b)},
        )

    async def _weather(self, text: str) -> ChatReply:
        city = extract_city(text, self._default_city)
        return await self._call(Intent.WEATHER, "weather", {"city": city, "unit": "celsius"})

    async def _text_transform(self, text: str) -> ChatReply:
        lowered = text.lower()
        for keyword, operation in TEXT_OPERATIONS:
            if keyword in lowered:
                operand = re.sub(re.escape(keyword), "", text, flags=re.IGNORECASE).strip()
                if not operand:
                    return ChatReply(
                        Intent.TEXT_TRANSFORM, "Please provide text to process", is_error=True
                    )
                return await self._call(
                    Intent.TEXT_TRANSFORM,
                    "text-processor",
                    {"text": operand, "operation": operation},
                )
        return ChatReply(
            Intent.TEXT_TRANSFORM,
            "Please specify the text processing operation: uppercase, lowercase, "
            "reverse, word count, or character count",
        )

    async def _system_info(self, text: str) -> ChatReply:
        contents = await self._catalog.read_resource("system://info")
        return ChatReply(Intent.SYSTEM_INFO, contents["text"])

    async def _help(self, text: str) -> ChatReply:
        return ChatReply(Intent.HELP, self.capabilities_help())

    async def _fallback(self, text: str) -> ChatReply:
        return ChatReply(
            Intent.FALLBACK,
            f'I received your message: "{text}". I can help with calculations, '
            "weather info, text processing, and more. Try asking "
            '"what can you do?" to see my capabilities!',
        )

    def capabilities_help(self) -> str:
        lines = ["Here's what I can do:", "", "**Tools:**"]
        lines += [f"• {t.title}: {t.description}" for t in self._catalog.tools]
        lines += ["", "**Resources:**"]
        lines += [f"• {r.name}: {r.description}" for r in self._catalog.resources]
        lines += ["", "**Examples:**"]
        lines += [f"• {json.dumps(e)}" for e in EXAMPLES]
        return "\n".join(lines)
