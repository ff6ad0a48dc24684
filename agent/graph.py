# agent/graph.py
"""
LangGraph orchestrator for the trading deliberation.

Flow (analysts configurable, market + news by default):

    START
      │
      ▼
    Market_Analyst ⇄ Tools_Market          (loop while tool calls are requested)
      │
      ▼
    Msg_Clear_Market                       (context pruned to one placeholder)
      │
      ▼
    News_Analyst ⇄ Tools_News
      │
      ▼
    Msg_Clear_News
      │
      ▼
    Bull_Researcher ⇄ Bear_Researcher      (2 × max_debate_rounds turns)
      │
      ▼
    Research_Manager → Trader
      │
      ▼
    Risky → Safe → Neutral → Risky ...     (3 × max_risk_discuss_rounds turns)
      │
      ▼
    Risk_Manager → END → signal extraction

Nodes run one at a time. The recursion limit (default 100) caps total node
executions and surfaces as langgraph's GraphRecursionError.
"""
from __future__ import annotations

import sys
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from langchain_core.tools import BaseTool
from langgraph.graph import END, START, StateGraph
from langgraph.prebuilt import ToolNode

from agent.conditional_logic import ConditionalLogic
from agent.errors import SignalProcessingError
from agent.llm import create_chat_models
from agent.memory import FinancialSituationMemory
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
    TRADER,
    analyst_nodes,
)
from agent.nodes import (
    ANALYST_FACTORIES,
    create_bear_researcher,
    create_bull_researcher,
    create_msg_delete,
    create_neutral_debator,
    create_research_manager,
    create_risk_manager,
    create_risky_debator,
    create_safe_debator,
    create_trader,
)
from agent.propagation import Propagator
from agent.signal_processor import SignalProcessor, TradeDecision, extract_simple_decision
from agent.state import DeliberationState
from datasources.cache_manager import StockDataCache
from datasources.providers import ProviderRegistry, build_default_registry
from evaluation.metrics import track_metrics
from infrastructure.logging import graph_log
from tools.market_tools import build_market_toolkit
from utils.config import Settings, load_settings

DECISION_EVENT = "Trade_Decision_Maker"
MEMORY_NAMES = ("bull_memory", "bear_memory", "trader_memory", "invest_judge_memory", "risk_manager_memory")


class ProgressEmitter(Protocol):
    """Observer receiving {node_name: update} after every node, then the decision."""

    def send(self, payload: Dict[str, Any]) -> None:
        ...


def parse_analysts(selected_analysts: Sequence[str]) -> List[AnalystType]:
    if not selected_analysts:
        raise ValueError("Graph setup error: no analysts selected")
    try:
        parsed = [AnalystType(str(a).lower()) for a in selected_analysts]
    except ValueError:
        valid = ", ".join(t.value for t in AnalystType)
        raise ValueError(f"Unknown analyst in {list(selected_analysts)}; valid: {valid}") from None
    if len(set(parsed)) != len(parsed):
        raise ValueError(f"Duplicate analyst in {list(selected_analysts)}")
    return parsed


class GraphSetup:
    """Builds the compiled graph from node handlers keyed by NodeId."""

    def __init__(
        self,
        quick_thinking_llm,
        deep_thinking_llm,
        toolkit: Dict[str, List[BaseTool]],
        memories: Dict[str, FinancialSituationMemory],
        conditional_logic: ConditionalLogic,
    ):
        self.quick_thinking_llm = quick_thinking_llm
        self.deep_thinking_llm = deep_thinking_llm
        self.toolkit = toolkit
        self.memories = memories
        self.conditional_logic = conditional_logic

    def node_handlers(self, analysts: List[AnalystType]) -> Dict[NodeId, Any]:
        quick, deep, mem = self.quick_thinking_llm, self.deep_thinking_llm, self.memories
        handlers: Dict[NodeId, Any] = {}

        for analyst_type in analysts:
            analyst, tools, clear = analyst_nodes(analyst_type)
            analyst_tools = self.toolkit[analyst_type.value]
            handlers[analyst] = ANALYST_FACTORIES[analyst_type](quick, analyst_tools)
            handlers[tools] = ToolNode(analyst_tools)
            handlers[clear] = create_msg_delete()

        handlers.update({
            BULL_RESEARCHER: create_bull_researcher(quick, mem["bull_memory"]),
            BEAR_RESEARCHER: create_bear_researcher(quick, mem["bear_memory"]),
            RESEARCH_MANAGER: create_research_manager(deep, mem["invest_judge_memory"]),
            TRADER: create_trader(quick, mem["trader_memory"]),
            RISKY_ANALYST: create_risky_debator(quick),
            SAFE_ANALYST: create_safe_debator(quick),
            NEUTRAL_ANALYST: create_neutral_debator(quick),
            RISK_MANAGER: create_risk_manager(deep, mem["risk_manager_memory"]),
        })
        return handlers

    def setup_graph(self, selected_analysts: Sequence[str] = ("market", "news")):
        analysts = parse_analysts(selected_analysts)
        logic = self.conditional_logic
        workflow = StateGraph(DeliberationState)

        for node_id, handler in self.node_handlers(analysts).items():
            if node_id.role is Role.TOOLS:
                workflow.add_node(node_id.name, handler)
            else:
                workflow.add_node(node_id.name, track_metrics(node_id.name)(handler))

        # Analyst chain
        workflow.add_edge(START, analyst_nodes(analysts[0])[0].name)
        for i, analyst_type in enumerate(analysts):
            analyst, tools, clear = analyst_nodes(analyst_type)
            workflow.add_conditional_edges(
                analyst.name,
                logic.should_continue_analyst(analyst_type),
                {tools: tools.name, clear: clear.name},
            )
            workflow.add_edge(tools.name, analyst.name)
            next_node = analyst_nodes(analysts[i + 1])[0] if i + 1 < len(analysts) else BULL_RESEARCHER
            workflow.add_edge(clear.name, next_node.name)

        # Research debate
        debate_targets = {n: n.name for n in (BULL_RESEARCHER, BEAR_RESEARCHER, RESEARCH_MANAGER)}
        workflow.add_conditional_edges(BULL_RESEARCHER.name, logic.should_continue_debate, debate_targets)
        workflow.add_conditional_edges(BEAR_RESEARCHER.name, logic.should_continue_debate, debate_targets)
        workflow.add_edge(RESEARCH_MANAGER.name, TRADER.name)
        workflow.add_edge(TRADER.name, RISKY_ANALYST.name)

        # Risk debate
        risk_targets = {n: n.name for n in (RISKY_ANALYST, SAFE_ANALYST, NEUTRAL_ANALYST, RISK_MANAGER)}
        for speaker in (RISKY_ANALYST, SAFE_ANALYST, NEUTRAL_ANALYST):
            workflow.add_conditional_edges(speaker.name, logic.should_continue_risk_analysis, risk_targets)
        workflow.add_edge(RISK_MANAGER.name, END)

        graph_log.info(f"Graph built with analysts: {[a.value for a in analysts]}")
        return workflow.compile()


class TradingAgentsGraph:
    """
    Entry point for one or more deliberation runs.

    Models, cache and providers are created once here (or injected) and
    shared by every run of this instance. The cache is not safe for
    concurrent writers from several processes.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        selected_analysts: Optional[Sequence[str]] = None,
        *,
        deep_thinking_llm=None,
        quick_thinking_llm=None,
        cache: Optional[StockDataCache] = None,
        registry: Optional[ProviderRegistry] = None,
        memories: Optional[Dict[str, FinancialSituationMemory]] = None,
    ):
        self.settings = settings or load_settings()

        if deep_thinking_llm is None or quick_thinking_llm is None:
            deep, quick = create_chat_models(self.settings)
            deep_thinking_llm = deep_thinking_llm or deep
            quick_thinking_llm = quick_thinking_llm or quick
        self.deep_thinking_llm = deep_thinking_llm
        self.quick_thinking_llm = quick_thinking_llm

        self.cache = cache if cache is not None else StockDataCache.from_settings(self.settings)
        self.registry = registry if registry is not None else build_default_registry(self.cache, self.settings)
        self.toolkit = build_market_toolkit(self.registry, self.settings.news_look_back_days)
        self.memories = memories or {name: FinancialSituationMemory(name) for name in MEMORY_NAMES}

        self.conditional_logic = ConditionalLogic(
            max_debate_rounds=self.settings.max_debate_rounds,
            max_risk_discuss_rounds=self.settings.max_risk_discuss_rounds,
        )
        self.propagator = Propagator(self.settings.max_recur_limit)
        self.signal_processor = SignalProcessor(self.quick_thinking_llm)
        self.signal_fallback = self.settings.signal_fallback

        self.graph = GraphSetup(
            self.quick_thinking_llm,
            self.deep_thinking_llm,
            self.toolkit,
            self.memories,
            self.conditional_logic,
        ).setup_graph(self.settings.selected_analysts if selected_analysts is None else selected_analysts)

        self.curr_state: Optional[Dict[str, Any]] = None
        self.ticker: Optional[str] = None

    # === Execution ===

    def invoke(
        self,
        company_name: str,
        trade_date: str,
        user_context: str = "",
        step_limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Run to completion and return the final state."""
        self.ticker = company_name
        init_state = self.propagator.create_initial_state(company_name, trade_date, user_context)
        args = self.propagator.get_graph_args(step_limit)

        with graph_log.for_ticker(company_name).timed(f"run {trade_date}"):
            final_state = self.graph.invoke(init_state, **args)

        self.curr_state = final_state
        return final_state

    def _stream_chunks(
        self,
        company_name: str,
        trade_date: str,
        user_context: str,
        step_limit: Optional[int],
    ) -> Iterator[Tuple[str, Any]]:
        self.ticker = company_name
        init_state = self.propagator.create_initial_state(company_name, trade_date, user_context)
        args = self.propagator.get_graph_args(step_limit)
        for mode, chunk in self.graph.stream(init_state, stream_mode=["updates", "values"], **args):
            if mode == "values":
                self.curr_state = chunk
            yield mode, chunk

    def stream(
        self,
        company_name: str,
        trade_date: str,
        user_context: str = "",
        step_limit: Optional[int] = None,
    ) -> Iterator[Tuple[str, Dict[str, Any]]]:
        """
        Yield (node_name, state_update) after every node execution.

        Once exhausted, curr_state holds the final state.
        """
        for mode, chunk in self._stream_chunks(company_name, trade_date, user_context, step_limit):
            if mode != "updates":
                continue
            for node_name, update in chunk.items():
                yield node_name, update

    def propagate(
        self,
        company_name: str,
        trade_date: str,
        user_context: str = "",
    ) -> Tuple[Dict[str, Any], TradeDecision]:
        """Run the graph and extract the structured decision from the final trade decision."""
        final_state = self.invoke(company_name, trade_date, user_context)
        decision = self.process_signal(final_state["final_trade_decision"], company_name)
        return final_state, decision

    def propagate_stream(
        self,
        company_name: str,
        trade_date: str,
        emitter: ProgressEmitter,
        user_context: str = "",
    ) -> Tuple[Dict[str, Any], TradeDecision]:
        """Like propagate, forwarding each node update and finally the decision to emitter.send."""
        for node_name, update in self.stream(company_name, trade_date, user_context):
            graph_log.debug(f"Node finished: {node_name}")
            emitter.send({node_name: update})

        final_state = self.curr_state or {}
        decision = self.process_signal(final_state.get("final_trade_decision", ""), company_name)
        emitter.send({DECISION_EVENT: decision.to_dict()})
        return final_state, decision

    def process_signal(self, full_signal: str, stock_symbol: str) -> TradeDecision:
        """Model-assisted parse; with signal_fallback set, parse failures fall back to keyword extraction."""
        try:
            return self.signal_processor.process_signal(full_signal, stock_symbol)
        except SignalProcessingError as e:
            if not self.signal_fallback:
                raise
            graph_log.warning(f"Signal parse failed for {stock_symbol}, using keyword extraction: {e}")
            return extract_simple_decision(full_signal, stock_symbol)


# === CLI Interface ===

def main():
    """CLI: python -m agent.graph TICKER YYYY-MM-DD"""
    if len(sys.argv) < 3:
        print("Usage: python -m agent.graph TICKER YYYY-MM-DD")
        sys.exit(1)

    ticker, trade_date = sys.argv[1], sys.argv[2]
    graph = TradingAgentsGraph()
    final_state, decision = graph.propagate(ticker, trade_date)

    print("\n" + "=" * 60)
    print(f"FINAL TRADE DECISION: {ticker} @ {trade_date}")
    print("=" * 60)
    print(final_state["final_trade_decision"])
    print("-" * 60)
    for key, value in decision.to_dict().items():
        print(f"  {key}: {value}")


if __name__ == "__main__":
    main()
