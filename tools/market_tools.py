# tools/market_tools.py
"""
LangChain tools exposed to the analyst nodes.

Each tool routes the ticker to its market's provider, so analysts never see
which upstream API served (or failed to serve) the data.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List

from langchain_core.tools import BaseTool, tool

from datasources.providers import ProviderRegistry


def build_market_toolkit(registry: ProviderRegistry, news_look_back_days: int = 7) -> Dict[str, List[BaseTool]]:
    """Return the tools available to each analyst type, keyed by analyst type value."""

    @tool
    def get_stock_market_data_unified(ticker: str, start_date: str, end_date: str) -> str:
        """Get price data for any supported ticker (US like AAPL, Hong Kong like 0700.HK,
        China A-share like 600519). Dates are YYYY-MM-DD. Returns a markdown summary."""
        return registry.for_symbol(ticker).get_stock_data(ticker, start_date, end_date)

    @tool
    def get_stock_news(ticker: str, curr_date: str, look_back_days: int = news_look_back_days) -> str:
        """Get recent company news for a ticker, looking back from curr_date (YYYY-MM-DD)."""
        end = datetime.strptime(curr_date, "%Y-%m-%d")
        start = (end - timedelta(days=look_back_days)).strftime("%Y-%m-%d")
        return registry.for_symbol(ticker).get_news(ticker, start, curr_date)

    @tool
    def get_stock_fundamentals(ticker: str, curr_date: str) -> str:
        """Get valuation and profitability metrics for a ticker as of curr_date (YYYY-MM-DD)."""
        return registry.for_symbol(ticker).get_fundamentals(ticker)

    return {
        "market": [get_stock_market_data_unified],
        "news": [get_stock_news],
        "fundamentals": [get_stock_fundamentals],
    }
