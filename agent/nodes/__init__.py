"""
LangGraph nodes for the trading deliberation.

Flow:
1. Analysts (market, news, fundamentals): tool-using reports, context pruned between stages
2. Research Team: Bull vs Bear debate, judged by the Research Manager
3. Trader: turns the investment plan into a trading proposal
4. Risk Management Team: Risky / Safe / Neutral debate, judged by the Risk Manager
"""
from .analysts import (
    ANALYST_FACTORIES,
    create_fundamentals_analyst,
    create_market_analyst,
    create_news_analyst,
)
from .msg_clear import create_msg_delete
from .researchers import create_bear_researcher, create_bull_researcher, create_research_manager
from .trader import create_trader
from .risk_manager import (
    create_neutral_debator,
    create_risk_manager,
    create_risky_debator,
    create_safe_debator,
)

__all__ = [
    # Analysts
    "ANALYST_FACTORIES",
    "create_market_analyst",
    "create_news_analyst",
    "create_fundamentals_analyst",
    "create_msg_delete",

    # Research team
    "create_bull_researcher",
    "create_bear_researcher",
    "create_research_manager",

    # Trader
    "create_trader",

    # Risk team
    "create_risky_debator",
    "create_safe_debator",
    "create_neutral_debator",
    "create_risk_manager",
]
