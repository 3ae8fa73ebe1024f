import json
import logging
import os
import platform
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List

from ..models import ToolResult, utcnow
from .arguments import (
    CalculatorArgs,
    CryptoPricesArgs,
    NewsHeadlinesArgs,
    TextProcessorArgs,
    WeatherArgs,
)
from .cache import DataCache

logger = logging.getLogger(__name__)

Publisher = Callable[[str, Dict[str, Any]], Awaitable[int]]

WEATHER_CONDITIONS = ("sunny", "cloudy", "rainy", "partly cloudy")

CRYPTO_BASE_PRICES = {"BTC": 45000.0, "ETH": 3000.0, "ADA": 1.2}
CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}

NEWS_HEADLINES = [
    ("AI Breakthrough in Medical Diagnosis", "technology", "https://example.com/ai-medical"),
    ("Tech Giants Report Strong Q4 Earnings", "business", "https://example.com/earnings"),
    ("New Quantum Computing Milestone Achieved", "science", "https://example.com/quantum"),
    ("Sustainable Energy Solutions Gain Momentum", "general", "https://example.com/energy"),
    ("Machine Learning Revolutionizes Data Analysis", "technology", "https://example.com/ml-data"),
    ("Global Markets Show Resilience Despite Challenges", "business", "https://example.com/markets"),
    ("Climate Research Reveals New Insights", "science", "https://example.com/climate"),
    ("Digital Transformation Accelerates Across Industries", "general", "https://example.com/digital"),
]


@dataclass
class ToolContext:
    """Shared state handed to every handler."""

    cache: DataCache
    publish: Publisher | None = None
    rng: random.Random = field(default_factory=random.Random)
    server_name: str = "mcpchat-demo-server"
    server_version: str = "2.0.0"
    started_at: float = field(default_factory=time.monotonic)
    push_clients: Callable[[], int] = lambda: 0

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    async def notify(self, event: str, data: Dict[str, Any]) -> None:
        if self.publish is None:
            return
        delivered = await self.publish(event, data)
        logger.debug("Published %s to %d push clients", event, delivered)


def format_number(value: float) -> str:
    """Render integral floats without a trailing `.0`."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return str(value)


def _clock() -> str:
    return utcnow().astimezone().strftime("%H:%M:%S")


async def calculator(args: CalculatorArgs, ctx: ToolContext) -> ToolResult:
    a, b = args.a, args.b
    if args.operation == "add":
        result = a + b
    elif args.operation == "subtract":
        result = a - b
    elif args.operation == "multiply":
        result = a * b
    else:
        if b == 0:
            return ToolResult(text="Error: Division by zero", is_error=True)
        result = a / b

    text = f"{format_number(a)} {args.operation} {format_number(b)} = {format_number(result)}"
    return ToolResult(
        text=text,
        structured={"operation": args.operation, "a": a, "b": b, "result": result},
    )


async def weather(args: WeatherArgs, ctx: ToolContext) -> ToolResult:
    # Simulated: no lookup, just a uniform draw.
    celsius = ctx.rng.randint(5, 34)
    condition = ctx.rng.choice(WEATHER_CONDITIONS)
    if args.unit == "fahrenheit":
        temperature, symbol = celsius * 9 / 5 + 32, "°F"
    else:
        temperature, symbol = float(celsius), "°C"

    return ToolResult(
        text=(
            f"Weather in {args.city}: {temperature:.1f}{symbol}, {condition}\n"
            f"Updated: {_clock()}"
        ),
        structured={
            "city": args.city,
            "temperature": temperature,
            "unit": args.unit,
            "condition": condition,
        },
    )


async def text_processor(args: TextProcessorArgs, ctx: ToolContext) -> ToolResult:
    text = args.text
    if args.operation == "uppercase":
        result = text.upper()
    elif args.operation == "lowercase":
        result = text.lower()
    elif args.operation == "reverse":
        result = text[::-1]
    elif args.operation == "word-count":
        result = f"Word count: {len(text.split())}"
    else:
        result = f"Character count: {len(text)}"
    return ToolResult(text=result)


def _simulate_coin(symbol: str, rng: random.Random) -> Dict[str, Any]:
    base = CRYPTO_BASE_PRICES.get(symbol, 100.0)
    return {
        "symbol": symbol,
        "price": base * (1 + (rng.random() - 0.5) * 0.1),
        "change": (rng.random() - 0.5) * 10,
        "volume": rng.randint(100_000, 1_099_999),
    }


async def crypto_prices(args: CryptoPricesArgs, ctx: ToolContext) -> ToolResult:
    symbols = [s.upper() for s in args.symbols] or list(CRYPTO_BASE_PRICES)
    cached: Dict[str, Dict[str, Any]] = ctx.cache.get("crypto") or {}
    fresh = all(s in cached for s in symbols)

    if not fresh:
        generated = {s: _simulate_coin(s, ctx.rng) for s in symbols}
        cached = {**cached, **generated}
        ctx.cache.put("crypto", cached)

    coins = [cached[s] for s in symbols]
    if not fresh:
        await ctx.notify(
            "crypto-update",
            {"prices": coins, "currency": args.currency, "timestamp": utcnow().isoformat()},
        )

    sign = CURRENCY_SYMBOLS[args.currency]
    lines = [
        f"{c['symbol']}: {sign}{c['price']:.2f} ({'+' if c['change'] >= 0 else ''}{c['change']:.2f}%)\n"
        f"   Volume: {c['volume']:,}"
        for c in coins
    ]
    label = "Updated" if not fresh else "Last updated"
    text = f"Cryptocurrency Prices ({args.currency}):\n" + "\n".join(lines) + f"\n\n{label}: {_clock()}"
    return ToolResult(text=text, structured={"currency": args.currency, "prices": coins})


def _simulate_news(rng: random.Random) -> List[Dict[str, Any]]:
    now = utcnow()
    return [
        {
            "id": str(uuid.uuid4()),
            "title": title,
            "category": category,
            "url": url,
            "publishedAt": (now - timedelta(seconds=rng.random() * 86400)).isoformat(),
        }
        for title, category, url in NEWS_HEADLINES
    ]


async def news_headlines(args: NewsHeadlinesArgs, ctx: ToolContext) -> ToolResult:
    articles = ctx.cache.get("news")
    fresh = articles is not None
    if not fresh:
        articles = _simulate_news(ctx.rng)
        ctx.cache.put("news", articles)

    selected = [a for a in articles if a["category"] == args.category][: args.count]
    if not fresh:
        await ctx.notify(
            "news-update",
            {"articles": selected, "category": args.category, "timestamp": utcnow().isoformat()},
        )

    body = "\n\n".join(
        f"{i}. {a['title']}\n   Published: {a['publishedAt']}\n   Link: {a['url']}"
        for i, a in enumerate(selected, 1)
    )
    label = "Updated" if not fresh else "Last updated"
    text = f"Latest {args.category.capitalize()} News:\n\n{body}\n\n{label}: {_clock()}"
    return ToolResult(text=text, structured={"category": args.category, "articles": selected})


def system_info(ctx: ToolContext) -> str:
    """JSON snapshot for the `system://info` resource."""
    return json.dumps(
        {
            "platform": platform.platform(),
            "pythonVersion": platform.python_version(),
            "pid": os.getpid(),
            "uptime": round(ctx.uptime, 3),
            "cwd": os.getcwd(),
        },
        indent=2,
    )


def enhanced_system_info(ctx: ToolContext) -> str:
    """JSON snapshot for the `system://enhanced-info` resource."""
    return json.dumps(
        {
            "server": ctx.server_name,
            "version": ctx.server_version,
            "timestamp": utcnow().isoformat(),
            "uptime": round(ctx.uptime, 3),
            "features": [
                "Simulated weather data",
                "Simulated cryptocurrency prices",
                "Simulated news headlines",
                "Server-Sent Events (SSE)",
                "TTL data cache",
            ],
            "activeConnections": ctx.push_clients(),
            "cacheStatus": ctx.cache.status(),
        },
        indent=2,
    )
