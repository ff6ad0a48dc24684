# agent/conditional_logic.py
"""
Routing rules for the conditional edges.

Debates end on count alone: bull/bear after 2 × max_debate_rounds turns,
risky/safe/neutral after 3 × max_risk_discuss_rounds turns.
"""
from __future__ import annotations

from typing import Callable

from agent.node_ids import (
    AnalystType,
    BEAR_RESEARCHER,
    BULL_RESEARCHER,
    NEUTRAL_ANALYST,
    NodeId,
    RESEARCH_MANAGER,
    RISK_MANAGER,
    RISKY_ANALYST,
    Role,
    SAFE_ANALYST,
)
from agent.state import DeliberationState


class ConditionalLogic:
    def __init__(self, max_debate_rounds: int = 1, max_risk_discuss_rounds: int = 1):
        self.max_debate_rounds = max_debate_rounds
        self.max_risk_discuss_rounds = max_risk_discuss_rounds

    def should_continue_analyst(self, analyst_type: AnalystType) -> Callable[[DeliberationState], NodeId]:
        """Route an analyst to its tools while its last message requests tool calls, else to its clear node."""
        tools = NodeId(Role.TOOLS, analyst_type)
        clear = NodeId(Role.CLEAR, analyst_type)

        def route(state: DeliberationState) -> NodeId:
            messages = state.get("messages") or []
            if messages and getattr(messages[-1], "tool_calls", None):
                return tools
            return clear

        route.__name__ = f"should_continue_{analyst_type.value}"
        return route

    def should_continue_debate(self, state: DeliberationState) -> NodeId:
        debate = state.get("investment_debate_state") or {}
        if debate.get("count", 0) >= 2 * self.max_debate_rounds:
            return RESEARCH_MANAGER
        if (debate.get("current_response") or "").startswith("Bull"):
            return BEAR_RESEARCHER
        return BULL_RESEARCHER

    def should_continue_risk_analysis(self, state: DeliberationState) -> NodeId:
        debate = state.get("risk_debate_state") or {}
        if debate.get("count", 0) >= 3 * self.max_risk_discuss_rounds:
            return RISK_MANAGER
        latest = debate.get("latest_speaker") or ""
        if latest.startswith("Risky"):
            return SAFE_ANALYST
        if latest.startswith("Safe"):
            return NEUTRAL_ANALYST
        return RISKY_ANALYST
