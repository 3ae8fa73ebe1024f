import random
import sys
from pathlib import Path

import pytest

_root = Path(__file__).resolve().parents[1]
_src = _root / "src"
if _src.exists() and str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from mcpchat.services.registry import TransportRegistry  # noqa: E402
from mcpchat.tools import DataCache, ToolCatalog, ToolContext  # noqa: E402


@pytest.fixture
def tool_context() -> ToolContext:
    """ToolContext with a fresh cache and a seeded RNG."""
    return ToolContext(
        cache=DataCache({"crypto": 60.0, "news": 600.0}),
        rng=random.Random(7),
    )


@pytest.fixture
def catalog(tool_context: ToolContext) -> ToolCatalog:
    return ToolCatalog(tool_context, timeout_seconds=1.0)


@pytest.fixture
def registry() -> TransportRegistry:
    return TransportRegistry()
