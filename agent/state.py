# agent/state.py
"""
Shared state schema for the deliberation graph.

Every field declares how a node's partial update is merged into the running
state, so nodes return only what they change:

    overwrite       report fields, inputs, plans, sender
    add_messages    conversation turns (RemoveMessage markers delete)
    debate merge    transcript fields append, current_* / latest_speaker /
                    judge_decision overwrite, count keeps the maximum

Debate counts therefore never decrease, and they are the only values the
routing rules read to end a debate.
"""
from enum import Enum
from typing import Annotated, Any, Callable, Dict, List, Optional, TypedDict

from langchain_core.messages import AnyMessage
from langgraph.graph.message import add_messages


class Channel(Enum):
    """Merge behavior of a single debate field."""
    OVERWRITE = "overwrite"
    APPEND = "append"
    MAX = "max"


def overwrite(current: Any, update: Any) -> Any:
    """Last writer wins."""
    return update


def _append_text(current: Optional[str], update: Optional[str]) -> str:
    if not current:
        return update or ""
    if not update:
        return current
    return f"{current}\n{update}"


def debate_reducer(channels: Dict[str, Channel]) -> Callable[[Optional[dict], Optional[dict]], dict]:
    """Build a field-wise merge for a debate substructure; undeclared fields overwrite."""

    def merge(current: Optional[dict], update: Optional[dict]) -> dict:
        merged = dict(current or {})
        for key, value in (update or {}).items():
            kind = channels.get(key, Channel.OVERWRITE)
            if kind is Channel.APPEND:
                merged[key] = _append_text(merged.get(key), value)
            elif kind is Channel.MAX:
                merged[key] = max(merged.get(key) or 0, value or 0)
            else:
                merged[key] = value
        return merged

    return merge


INVEST_DEBATE_CHANNELS: Dict[str, Channel] = {
    "history": Channel.APPEND,
    "bull_history": Channel.APPEND,
    "bear_history": Channel.APPEND,
    "current_response": Channel.OVERWRITE,
    "judge_decision": Channel.OVERWRITE,
    "count": Channel.MAX,
}

RISK_DEBATE_CHANNELS: Dict[str, Channel] = {
    "history": Channel.APPEND,
    "risky_history": Channel.APPEND,
    "safe_history": Channel.APPEND,
    "neutral_history": Channel.APPEND,
    "latest_speaker": Channel.OVERWRITE,
    "current_risky_response": Channel.OVERWRITE,
    "current_safe_response": Channel.OVERWRITE,
    "current_neutral_response": Channel.OVERWRITE,
    "judge_decision": Channel.OVERWRITE,
    "count": Channel.MAX,
}

merge_invest_debate = debate_reducer(INVEST_DEBATE_CHANNELS)
merge_risk_debate = debate_reducer(RISK_DEBATE_CHANNELS)


class InvestDebateState(TypedDict, total=False):
    """Bull vs bear researcher exchange."""
    history: str
    bull_history: str
    bear_history: str
    current_response: str
    judge_decision: str
    count: int


class RiskDebateState(TypedDict, total=False):
    """Risky / safe / neutral rotation."""
    history: str
    risky_history: str
    safe_history: str
    neutral_history: str
    latest_speaker: str
    current_risky_response: str
    current_safe_response: str
    current_neutral_response: str
    judge_decision: str
    count: int


class DeliberationState(TypedDict, total=False):
    """
    State threaded through every node of one analysis run.

    Flow: analysts (reports) → bull/bear debate → research manager
    (investment_plan) → trader (trader_investment_plan) → risk debate →
    risk manager (final_trade_decision)
    """
    messages: Annotated[List[AnyMessage], add_messages]

    # Inputs
    company_of_interest: Annotated[str, overwrite]
    trade_date: Annotated[str, overwrite]
    user_context: Annotated[str, overwrite]
    sender: Annotated[str, overwrite]

    # Analyst reports
    market_report: Annotated[str, overwrite]
    news_report: Annotated[str, overwrite]
    sentiment_report: Annotated[str, overwrite]
    fundamentals_report: Annotated[str, overwrite]

    # Research debate
    investment_debate_state: Annotated[InvestDebateState, merge_invest_debate]
    investment_plan: Annotated[str, overwrite]

    # Trader
    trader_investment_plan: Annotated[str, overwrite]

    # Risk debate
    risk_debate_state: Annotated[RiskDebateState, merge_risk_debate]
    final_trade_decision: Annotated[str, overwrite]


def empty_invest_debate_state() -> InvestDebateState:
    return InvestDebateState(
        history="", bull_history="", bear_history="",
        current_response="", judge_decision="", count=0,
    )


def empty_risk_debate_state() -> RiskDebateState:
    return RiskDebateState(
        history="", risky_history="", safe_history="", neutral_history="",
        latest_speaker="", current_risky_response="", current_safe_response="",
        current_neutral_response="", judge_decision="", count=0,
    )
