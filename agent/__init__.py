"""
Trading deliberation multi-agent system.

Usage:
    from agent import TradingAgentsGraph

    graph = TradingAgentsGraph()
    final_state, decision = graph.propagate("AAPL", "2024-01-15")
"""
from agent.graph import GraphSetup, TradingAgentsGraph, ProgressEmitter
from agent.signal_processor import (
    Action,
    SignalProcessor,
    TradeDecision,
    extract_simple_decision,
    get_default_decision,
)
from agent.state import DeliberationState

__all__ = [
    # Orchestrator
    "TradingAgentsGraph",
    "GraphSetup",
    "ProgressEmitter",

    # Signal extraction
    "SignalProcessor",
    "TradeDecision",
    "Action",
    "extract_simple_decision",
    "get_default_decision",

    # State types
    "DeliberationState",
]
