import json

import pytest

from mcpchat.chat import Intent, IntentDispatcher, classify
from mcpchat.chat.dispatcher import CALCULATOR_HELP, extract_city
from mcpchat.tools import ToolCatalog
from mcpchat.tools.handlers import WEATHER_CONDITIONS


@pytest.fixture
def dispatcher(catalog: ToolCatalog) -> IntentDispatcher:
    return IntentDispatcher(catalog, default_city="New York")


@pytest.mark.parametrize(
    "text, intent",
    [
        ("Calculate 15 + 27", Intent.CALCULATOR),
        ("3*4", Intent.CALCULATOR),
        ("do some math", Intent.CALCULATOR),
        ("calculate the weather in Paris", Intent.CALCULATOR),
        ("Weather in London", Intent.WEATHER),
        ("weather system report", Intent.WEATHER),
        ("Uppercase hello world", Intent.TEXT_TRANSFORM),
        ("help me reverse this", Intent.TEXT_TRANSFORM),
        ("tell me about the solar system", Intent.SYSTEM_INFO),
        ("server info please", Intent.SYSTEM_INFO),
        ("What can you do?", Intent.HELP),
        ("list your capabilities", Intent.HELP),
        ("good morning", Intent.FALLBACK),
    ],
)
def test_classify_first_match_wins(text: str, intent: Intent) -> None:
    assert classify(text) is intent


def test_extract_city() -> None:
    assert extract_city("weather in Paris", "New York") == "Paris"
    assert extract_city("Weather for Tokyo!", "New York") == "Tokyo"
    assert extract_city("what's the weather?", "New York") == "New York"


@pytest.mark.asyncio
async def test_calculation_end_to_end(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("Calculate 15 + 27")
    assert reply.intent is Intent.CALCULATOR
    assert "42" in reply.text
    assert not reply.is_error


@pytest.mark.asyncio
async def test_calculation_without_expression_returns_hint(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("calculate something")
    assert reply.text == CALCULATOR_HELP


@pytest.mark.asyncio
async def test_division_by_zero_reply_is_error(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("10 / 0")
    assert reply.is_error
    assert "Division by zero" in reply.text


@pytest.mark.asyncio
async def test_weather_mentions_city_and_condition(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("weather in Paris")
    assert reply.intent is Intent.WEATHER
    assert "Paris" in reply.text
    assert any(c in reply.text for c in WEATHER_CONDITIONS)


@pytest.mark.asyncio
async def test_weather_defaults_city(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("how is the weather?")
    assert "New York" in reply.text


@pytest.mark.asyncio
async def test_uppercase_strips_keyword(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("uppercase hello world")
    assert reply.text == "HELLO WORLD"


@pytest.mark.asyncio
async def test_word_count(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("word count the quick brown fox")
    assert reply.text == "Word count: 4"


@pytest.mark.asyncio
async def test_empty_operand_is_error(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("Uppercase")
    assert reply.is_error
    assert reply.text == "Please provide text to process"


@pytest.mark.asyncio
async def test_system_info_reads_resource(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("system info")
    assert reply.intent is Intent.SYSTEM_INFO
    assert "pythonVersion" in json.loads(reply.text)


@pytest.mark.asyncio
async def test_help_lists_tools(dispatcher: IntentDispatcher, catalog: ToolCatalog) -> None:
    reply = await dispatcher.dispatch("what can you do?")
    assert reply.intent is Intent.HELP
    for tool in catalog.tools:
        assert tool.title in reply.text
    assert "System Information" in reply.text


@pytest.mark.asyncio
async def test_fallback_echoes_input(dispatcher: IntentDispatcher) -> None:
    reply = await dispatcher.dispatch("good morning")
    assert reply.intent is Intent.FALLBACK
    assert '"good morning"' in reply.text
    assert "what can you do?" in reply.text
