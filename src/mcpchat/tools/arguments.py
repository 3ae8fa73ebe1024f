"""Typed argument records, one per tool.

A raw `{name, arguments}` pair is parsed into exactly one of these variants;
names that do not belong to any tool become `UnknownTool`.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Literal, Type, Union

from pydantic import BaseModel, Field, ValidationError

from ..errors import InvalidToolArgumentsError


class CalculatorArgs(BaseModel):
    tool: ClassVar[str] = "calculator"

    operation: Literal["add", "subtract", "multiply", "divide"]
    a: float
    b: float


class WeatherArgs(BaseModel):
    tool: ClassVar[str] = "weather"

    city: str = Field(min_length=1)
    unit: Literal["celsius", "fahrenheit"] = "celsius"


class TextProcessorArgs(BaseModel):
    tool: ClassVar[str] = "text-processor"

    text: str
    operation: Literal["uppercase", "lowercase", "reverse", "word-count", "char-count"]


class CryptoPricesArgs(BaseModel):
    tool: ClassVar[str] = "crypto-prices"

    symbols: List[str] = Field(default_factory=lambda: ["BTC", "ETH", "ADA"])
    currency: Literal["USD", "EUR", "GBP"] = "USD"


class NewsHeadlinesArgs(BaseModel):
    tool: ClassVar[str] = "news-headlines"

    category: Literal["technology", "business", "science", "general"] = "technology"
    count: int = Field(default=5, ge=1, le=10)


@dataclass
class UnknownTool:
    """Fallback variant for tool names nobody registered."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


ToolArgs = Union[
    CalculatorArgs,
    WeatherArgs,
    TextProcessorArgs,
    CryptoPricesArgs,
    NewsHeadlinesArgs,
]
ToolCall = Union[ToolArgs, UnknownTool]

ARGUMENT_MODELS: Dict[str, Type[BaseModel]] = {
    model.tool: model
    for model in (
        CalculatorArgs,
        WeatherArgs,
        TextProcessorArgs,
        CryptoPricesArgs,
        NewsHeadlinesArgs,
    )
}


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse_tool_call(name: str, arguments: Dict[str, Any] | None) -> ToolCall:
    """Turn a loosely typed `{name, arguments}` pair into its tool variant.

    Raises:
        InvalidToolArgumentsError: the tool exists but the arguments do not
            validate against its model.
    """
    model = ARGUMENT_MODELS.get(name)
    if model is None:
        return UnknownTool(name=name, arguments=dict(arguments or {}))
    try:
        return model.model_validate(arguments or {})
    except ValidationError as e:
        raise InvalidToolArgumentsError(name, _format_validation_error(e)) from e
