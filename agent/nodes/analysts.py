# agent/nodes/analysts.py
"""
Analyst nodes.

Each analyst works one topic (market, news, fundamentals). It may request
tool calls; the graph loops Analyst → Tools → Analyst until the model answers
without a tool call, and that final answer becomes the analyst's report.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List

from langchain_core.messages import SystemMessage
from langchain_core.tools import BaseTool

from agent.node_ids import AnalystType
from agent.state import DeliberationState
from datasources.market_utils import get_market_info
from infrastructure.logging import analysts_log


# === ANALYST PROMPTS ===

MARKET_ANALYST_PROMPT = """You are a Market Analyst covering price action and trend for {ticker} ({market_name}, prices in {currency_name} {currency_symbol}).

**Your Role:**
Explain what the recent trading tells us about {ticker} as of {trade_date}.

**Instructions:**
- Call get_stock_market_data_unified for roughly the last 30 days ending {trade_date} before writing anything.
- Cover trend, volatility, support and resistance, and volume.
- Finish with a markdown table of the key points.
{user_context}"""

NEWS_ANALYST_PROMPT = """You are a News Analyst covering {ticker} ({market_name}).

**Your Role:**
Summarize the news flow that could move {ticker} as of {trade_date}.

**Instructions:**
- Call get_stock_news with curr_date {trade_date} before writing anything.
- Separate company-specific news from macro and sector news.
- Rate each item's likely price impact and finish with a markdown table.
{user_context}"""

FUNDAMENTALS_ANALYST_PROMPT = """You are a Fundamentals Analyst covering {ticker} ({market_name}, figures in {currency_name}).

**Your Role:**
Assess valuation and financial health of {ticker} as of {trade_date}.

**Instructions:**
- Call get_stock_fundamentals with curr_date {trade_date} before writing anything.
- Discuss valuation multiples, profitability and balance sheet risk.
- Finish with a markdown table of the key metrics.
{user_context}"""

PROMPTS = {
    AnalystType.MARKET: MARKET_ANALYST_PROMPT,
    AnalystType.NEWS: NEWS_ANALYST_PROMPT,
    AnalystType.FUNDAMENTALS: FUNDAMENTALS_ANALYST_PROMPT,
}


def _create_analyst(analyst_type: AnalystType, llm, tools: List[BaseTool]) -> Callable[[DeliberationState], Dict[str, Any]]:
    prompt = PROMPTS[analyst_type]
    report_field = analyst_type.report_field

    def analyst_node(state: DeliberationState) -> Dict[str, Any]:
        ticker = state["company_of_interest"]
        market = get_market_info(ticker)
        context = state.get("user_context") or ""

        system = prompt.format(
            ticker=ticker,
            trade_date=state["trade_date"],
            market_name=market.market_name,
            currency_name=market.currency_name,
            currency_symbol=market.currency_symbol,
            user_context=f"\n**Investor context:**\n{context}\n" if context else "",
        )

        chain = llm.bind_tools(tools)
        result = chain.invoke([SystemMessage(content=system), *state["messages"]])

        update: Dict[str, Any] = {"messages": [result], "sender": f"{analyst_type.label} Analyst"}
        if result.tool_calls:
            analysts_log.info(f"[{analyst_type.label}] requested {len(result.tool_calls)} tool call(s) for {ticker}")
        else:
            update[report_field] = result.content
            analysts_log.info(f"[{analyst_type.label}] report ready for {ticker} ({len(result.content)} chars)")
        return update

    analyst_node.__name__ = f"{analyst_type.value}_analyst_node"
    return analyst_node


def create_market_analyst(llm, tools: List[BaseTool]):
    return _create_analyst(AnalystType.MARKET, llm, tools)


def create_news_analyst(llm, tools: List[BaseTool]):
    return _create_analyst(AnalystType.NEWS, llm, tools)


def create_fundamentals_analyst(llm, tools: List[BaseTool]):
    return _create_analyst(AnalystType.FUNDAMENTALS, llm, tools)


ANALYST_FACTORIES = {
    AnalystType.MARKET: create_market_analyst,
    AnalystType.NEWS: create_news_analyst,
    AnalystType.FUNDAMENTALS: create_fundamentals_analyst,
}
