# tests/test_graph.py
"""End-to-end runs of the deliberation graph on scripted models and stub providers."""
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from langchain_core.messages import HumanMessage, ToolMessage
from langgraph.errors import GraphRecursionError

from agent.propagation import Propagator
from conftest import ScriptedChatModel


DEFAULT_ORDER = [
    "Market_Analyst", "Tools_Market", "Market_Analyst", "Msg_Clear_Market",
    "News_Analyst", "Tools_News", "News_Analyst", "Msg_Clear_News",
    "Bull_Researcher", "Bear_Researcher", "Research_Manager", "Trader",
    "Risky_Analyst", "Safe_Analyst", "Neutral_Analyst", "Risk_Manager",
]

ANALYST_STAGE_NODES = {
    "Market_Analyst", "Tools_Market", "Msg_Clear_Market",
    "News_Analyst", "Tools_News", "Msg_Clear_News",
    "Fundamentals_Analyst", "Tools_Fundamentals", "Msg_Clear_Fundamentals",
}


class RecordingEmitter:
    def __init__(self):
        self.payloads = []

    def send(self, payload):
        self.payloads.append(payload)


class TestGraphStructure:
    def test_default_graph_nodes(self, make_graph):
        graph = make_graph()
        nodes = set(graph.graph.get_graph().nodes) - {"__start__", "__end__"}
        assert nodes == set(DEFAULT_ORDER)

    def test_fundamentals_analyst_adds_its_stage(self, make_graph):
        graph = make_graph(selected_analysts=["market", "news", "fundamentals"])
        nodes = set(graph.graph.get_graph().nodes)
        assert {"Fundamentals_Analyst", "Tools_Fundamentals", "Msg_Clear_Fundamentals"} <= nodes

    def test_empty_analyst_list_rejected(self, make_graph):
        with pytest.raises(ValueError, match="no analysts selected"):
            make_graph(selected_analysts=[])

    def test_unknown_analyst_rejected(self, make_graph):
        with pytest.raises(ValueError, match="Unknown analyst"):
            make_graph(selected_analysts=["market", "social"])

    def test_duplicate_analyst_rejected(self, make_graph):
        with pytest.raises(ValueError, match="Duplicate analyst"):
            make_graph(selected_analysts=["market", "news", "Market"])


class TestPropagator:
    def test_default_step_limit(self):
        assert Propagator(100).get_graph_args() == {"config": {"recursion_limit": 100}}

    @pytest.mark.parametrize("step_limit", [7, 0])
    def test_explicit_step_limit_is_kept(self, step_limit):
        assert Propagator(100).get_graph_args(step_limit) == {"config": {"recursion_limit": step_limit}}

    def test_initial_state(self):
        state = Propagator().create_initial_state("NVDA", "2024-01-15", "long-term holder")

        assert state["messages"][0].content == "NVDA"
        assert state["company_of_interest"] == "NVDA"
        assert state["user_context"] == "long-term holder"
        assert state["investment_debate_state"]["count"] == 0
        assert state["final_trade_decision"] == ""


class TestExecutionOrder:
    def test_default_run_visits_nodes_in_order(self, make_graph):
        graph = make_graph()
        order = [name for name, _ in graph.stream("AAPL", "2024-01-15")]
        assert order == DEFAULT_ORDER

    def test_exactly_eight_non_analyst_steps(self, make_graph):
        graph = make_graph()
        order = [name for name, _ in graph.stream("AAPL", "2024-01-15")]
        assert len([n for n in order if n not in ANALYST_STAGE_NODES]) == 8

    def test_two_debate_rounds(self, make_graph):
        graph = make_graph(max_debate_rounds=2)
        order = [name for name, _ in graph.stream("AAPL", "2024-01-15")]
        start = order.index("Bull_Researcher")
        assert order[start:start + 5] == [
            "Bull_Researcher", "Bear_Researcher", "Bull_Researcher", "Bear_Researcher", "Research_Manager",
        ]
        assert graph.curr_state["investment_debate_state"]["count"] == 4

    def test_two_risk_rounds(self, make_graph):
        graph = make_graph(max_risk_discuss_rounds=2)
        order = [name for name, _ in graph.stream("AAPL", "2024-01-15")]
        start = order.index("Risky_Analyst")
        assert order[start:] == ["Risky_Analyst", "Safe_Analyst", "Neutral_Analyst"] * 2 + ["Risk_Manager"]
        assert graph.curr_state["risk_debate_state"]["count"] == 6

    def test_single_analyst(self, make_graph):
        graph = make_graph(selected_analysts=["news"])
        order = [name for name, _ in graph.stream("AAPL", "2024-01-15")]
        assert order[:5] == ["News_Analyst", "Tools_News", "News_Analyst", "Msg_Clear_News", "Bull_Researcher"]


class TestFinalState:
    def test_reports_and_plans_filled(self, make_graph):
        final_state = make_graph().invoke("AAPL", "2024-01-15")

        assert final_state["market_report"].startswith("get_stock_market_data_unified report")
        assert final_state["news_report"].startswith("get_stock_news report")
        assert final_state["fundamentals_report"] == ""
        assert final_state["investment_plan"]
        assert final_state["trader_investment_plan"]
        assert final_state["final_trade_decision"]
        assert final_state["risk_debate_state"]["latest_speaker"] == "Judge"

    def test_tool_results_pruned_between_stages(self, make_graph):
        final_state = make_graph().invoke("AAPL", "2024-01-15")
        messages = final_state["messages"]

        assert not any(isinstance(m, ToolMessage) for m in messages)
        humans = [m.content for m in messages if isinstance(m, HumanMessage)]
        assert humans == ["Continue"]

    def test_debate_transcript_accumulates(self, make_graph):
        final_state = make_graph().invoke("AAPL", "2024-01-15")
        debate = final_state["investment_debate_state"]

        assert debate["count"] == 2
        assert debate["bull_history"].startswith("Bull Analyst:")
        assert debate["bear_history"].startswith("Bear Analyst:")
        assert debate["history"].index("Bull Analyst:") < debate["history"].index("Bear Analyst:")
        assert debate["judge_decision"] == final_state["investment_plan"]

    def test_stock_data_served_through_cache(self, make_graph, registry, cache):
        make_graph().invoke("AAPL", "2024-01-15")
        assert registry.us_provider.fetches == [("stock", "AAPL"), ("news", "AAPL")]
        assert cache.get_cache_stats()["total_files"] == 2

    def test_step_limit_raises(self, make_graph):
        with pytest.raises(GraphRecursionError):
            make_graph().invoke("AAPL", "2024-01-15", step_limit=5)


class TestDecision:
    def test_propagate_returns_structured_decision(self, make_graph):
        final_state, decision = make_graph().propagate("AAPL", "2024-01-15")

        assert decision.action.value == "买入"
        assert decision.target_price == 210.5
        assert decision.confidence == 0.8
        assert final_state["final_trade_decision"]

    def test_propagate_stream_emits_every_node_then_decision(self, make_graph):
        emitter = RecordingEmitter()
        _, decision = make_graph().propagate_stream("AAPL", "2024-01-15", emitter)

        assert len(emitter.payloads) == 17
        assert [next(iter(p)) for p in emitter.payloads[:-1]] == DEFAULT_ORDER
        assert emitter.payloads[-1] == {"Trade_Decision_Maker": decision.to_dict()}
        assert emitter.payloads[-1]["Trade_Decision_Maker"]["action"] == "买入"

    def test_unparseable_decision_raises_without_fallback(self, make_graph):
        from agent.errors import SignalProcessingError

        graph = make_graph(quick=ScriptedChatModel("quick", raw_decision="no json here"))
        with pytest.raises(SignalProcessingError):
            graph.propagate("AAPL", "2024-01-15")

    def test_fallback_uses_keyword_extraction(self, make_graph):
        graph = make_graph(quick=ScriptedChatModel("quick", raw_decision="no json here"), signal_fallback=True)
        decision = graph.process_signal("最终交易建议: **卖出**\n目标价位: 150", "AAPL")

        assert decision.action.value == "卖出"
        assert decision.target_price == 150.0
        assert decision.confidence == 0.7


class TestMetrics:
    def test_each_tracked_node_records_metrics(self, make_graph):
        from evaluation.metrics import clear_session_metrics, get_session_metrics

        graph = make_graph()
        clear_session_metrics()
        graph.invoke("AAPL", "2024-01-15")

        names = [m.node_name for m in get_session_metrics()]
        assert len(names) == 14
        assert "Tools_Market" not in names
        assert names.count("Market_Analyst") == 2
        assert all(m.success for m in get_session_metrics())
