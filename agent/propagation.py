# agent/propagation.py
"""Initial state and run arguments for one pass through the graph."""
from __future__ import annotations

from typing import Any, Dict, Optional

from langchain_core.messages import HumanMessage

from agent.state import DeliberationState, empty_invest_debate_state, empty_risk_debate_state


class Propagator:
    def __init__(self, max_recur_limit: int = 100):
        self.max_recur_limit = max_recur_limit

    def create_initial_state(self, company_name: str, trade_date: str, user_context: str = "") -> DeliberationState:
        return DeliberationState(
            messages=[HumanMessage(content=company_name)],
            company_of_interest=company_name,
            trade_date=str(trade_date),
            user_context=user_context,
            sender="",
            market_report="",
            news_report="",
            sentiment_report="",
            fundamentals_report="",
            investment_debate_state=empty_invest_debate_state(),
            investment_plan="",
            trader_investment_plan="",
            risk_debate_state=empty_risk_debate_state(),
            final_trade_decision="",
        )

    def get_graph_args(self, step_limit: Optional[int] = None) -> Dict[str, Any]:
        """stream/invoke keyword arguments; step_limit caps total node executions."""
        limit = self.max_recur_limit if step_limit is None else step_limit
        return {"config": {"recursion_limit": limit}}
