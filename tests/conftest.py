# tests/conftest.py
"""Shared fixtures: scripted chat models, stub providers, a temp cache and a fake clock."""
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
from datetime import datetime, timedelta

import pytest
from langchain_core.messages import AIMessage, ToolMessage

from datasources.cache_manager import StockDataCache
from datasources.models import DataResult, FetchErrorKind
from datasources.providers import ProviderRegistry, RateLimitedDataProvider
from utils.config import load_settings


SAMPLE_TOOL_ARGS = {
    "ticker": "AAPL",
    "start_date": "2024-01-01",
    "end_date": "2024-01-15",
    "curr_date": "2024-01-15",
}

DEFAULT_DECISION = {
    "action": "buy",
    "target_price": 210.5,
    "confidence": 0.8,
    "risk_score": 0.4,
    "reasoning": "需求强劲",
}


def _prompt_text(messages) -> str:
    if isinstance(messages, str):
        return messages
    return "\n".join(str(getattr(m, "content", m)) for m in messages)


class ScriptedChatModel:
    """
    Deterministic stand-in for a chat model.

    Tool-bound calls request the first bound tool once, then answer with a
    report after the tool result arrives. Signal extraction prompts get a JSON
    decision; every other prompt gets a numbered reply.
    """

    def __init__(self, name: str = "quick", decision=None, raw_decision: str = None):
        self.name = name
        self.decision = decision or DEFAULT_DECISION
        self.raw_decision = raw_decision
        self.calls = []

    def bind_tools(self, tools):
        return _ToolBoundModel(self, list(tools))

    def invoke(self, messages):
        self.calls.append(messages)
        text = _prompt_text(messages)
        if "Extract the structured investment decision" in text:
            if self.raw_decision is not None:
                return AIMessage(content=self.raw_decision)
            return AIMessage(content="```json\n" + json.dumps(self.decision, ensure_ascii=False) + "\n```")
        return AIMessage(content=f"{self.name} reply {len(self.calls)}")


class _ToolBoundModel:
    def __init__(self, parent: ScriptedChatModel, tools):
        self.parent = parent
        self.tools = tools

    def invoke(self, messages):
        self.parent.calls.append(messages)
        last = messages[-1]
        tool = self.tools[0]
        if isinstance(last, ToolMessage):
            return AIMessage(content=f"{tool.name} report based on: {last.content[:60]}")
        args = {k: v for k, v in SAMPLE_TOOL_ARGS.items() if k in tool.args}
        return AIMessage(
            content="",
            tool_calls=[{"name": tool.name, "args": args, "id": f"call_{len(self.parent.calls)}"}],
        )


class StubProvider(RateLimitedDataProvider):
    """Provider whose upstream is in-memory; records every fetch."""

    name = "stub"

    def __init__(self, cache, fail: bool = False, raise_error: bool = False, **kwargs):
        kwargs.setdefault("min_api_interval", 0.0)
        super().__init__(cache, **kwargs)
        self.fail = fail
        self.raise_error = raise_error
        self.fetches = []

    def _result(self, kind: str, symbol: str, text: str) -> DataResult:
        self.fetches.append((kind, symbol))
        if self.raise_error:
            raise ConnectionError("upstream down")
        if self.fail:
            return DataResult.fail(FetchErrorKind.NO_DATA, f"No {kind} for {symbol}", self.name)
        return DataResult.ok(text, self.name)

    def _fetch_stock_data(self, symbol, start_date, end_date):
        return self._result("stock", symbol, f"# {symbol} prices {start_date} to {end_date}\n- Last close: 190.00")

    def _fetch_news(self, symbol, start_date, end_date):
        return self._result("news", symbol, f"# {symbol} news {start_date} to {end_date}\n### Record quarter")

    def _fetch_fundamentals(self, symbol):
        return self._result("fundamentals", symbol, f"# {symbol} fundamentals\n- P/E (TTM): 28.10")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 15, 9, 30)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    return StockDataCache(str(tmp_path / "cache"), clock=clock)


@pytest.fixture
def settings(tmp_path):
    return load_settings().model_copy(update={
        "cache_dir": str(tmp_path / "cache"),
        "selected_analysts": ["market", "news"],
        "max_debate_rounds": 1,
        "max_risk_discuss_rounds": 1,
        "max_recur_limit": 100,
        "signal_fallback": False,
        "enable_cache_length_check": False,
    })


@pytest.fixture
def registry(cache):
    return ProviderRegistry(us_provider=StubProvider(cache), asia_provider=StubProvider(cache))


@pytest.fixture
def make_graph(settings, cache, registry):
    """Factory building a TradingAgentsGraph on scripted models and stub providers."""
    from agent.graph import TradingAgentsGraph

    def _make(selected_analysts=None, quick=None, deep=None, **overrides):
        cfg = settings.model_copy(update=overrides) if overrides else settings
        return TradingAgentsGraph(
            cfg,
            selected_analysts=selected_analysts,
            deep_thinking_llm=deep or ScriptedChatModel("deep"),
            quick_thinking_llm=quick or ScriptedChatModel("quick"),
            cache=cache,
            registry=registry,
        )

    return _make
