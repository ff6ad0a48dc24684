# agent/nodes/trader.py
"""
Trader Agent - turns the research plan into a trading proposal.

The proposal always ends with a line "最终交易建议: **买入/持有/卖出**" so the
risk team and the signal extractor can find the action.
"""
from __future__ import annotations

from typing import Any, Dict

from langchain_core.messages import HumanMessage, SystemMessage

from agent.memory import FinancialSituationMemory, format_memories
from agent.nodes.context import current_situation, reports_block, user_context_block
from agent.state import DeliberationState
from datasources.market_utils import get_market_info
from infrastructure.logging import trader_log


TRADER_PROMPT = """You are a Professional Trader deciding what to do with {ticker} ({market_name}, prices in {currency_name} {currency_symbol}).

**Decision Framework:**
- BUY: strong conviction in upside at acceptable risk
- SELL: strong conviction in downside or need to exit
- HOLD: insufficient conviction or unfavorable risk/reward

**Your Task:**
- Base the decision on the research team's investment plan and the analyst reports.
- Give a target price in {currency_symbol}, position sizing and the main risk.
- End with exactly one line: 最终交易建议: **买入/持有/卖出**

**Lessons from similar past situations:**
{memories}
{user_context}"""


def create_trader(llm, memory: FinancialSituationMemory):
    def trader_node(state: DeliberationState) -> Dict[str, Any]:
        ticker = state["company_of_interest"]
        market = get_market_info(ticker)
        memories = memory.get_memories(current_situation(state), n_matches=2)

        messages = [
            SystemMessage(content=TRADER_PROMPT.format(
                ticker=ticker,
                market_name=market.market_name,
                currency_name=market.currency_name,
                currency_symbol=market.currency_symbol,
                memories=format_memories(memories),
                user_context=user_context_block(state),
            )),
            HumanMessage(content=(
                f"Investment plan for {ticker}:\n{state.get('investment_plan', '')}\n\n"
                f"{reports_block(state)}"
            )),
        ]

        with trader_log.for_ticker(ticker).timed("trader"):
            result = llm.invoke(messages)

        return {
            "messages": [result],
            "trader_investment_plan": result.content,
            "sender": "Trader",
        }

    return trader_node
