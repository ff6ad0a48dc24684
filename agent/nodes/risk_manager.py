# agent/nodes/risk_manager.py
"""
Risk Management Team - three-way debate over the trader's proposal.

1. Risky Analyst - champions upside and bold positioning
2. Safe Analyst - protects capital
3. Neutral Analyst - balances the two
4. Risk Manager - judges the debate and issues the final trade decision

Turns rotate Risky → Safe → Neutral until the count cap, then the Risk
Manager writes final_trade_decision.
"""
from __future__ import annotations

from typing import Any, Dict

from agent.memory import FinancialSituationMemory, format_memories
from agent.nodes.context import current_situation, reports_block, user_context_block
from agent.state import DeliberationState
from infrastructure.logging import risk_log


RISKY_PROMPT = """You are the Risky Risk Analyst. Champion high-reward opportunities in the trader's plan for {ticker}.

**Your Task:**
- Argue why the upside justifies the risk and counter the cautious arguments point by point.
- Debate conversationally, without special formatting.

**Trader's plan:**
{trader_plan}

{reports}
{user_context}
**Debate so far:**
{history}

**Last safe argument:** {safe}
**Last neutral argument:** {neutral}
"""

SAFE_PROMPT = """You are the Safe Risk Analyst. Protect capital and minimize volatility in the trader's plan for {ticker}.

**Your Task:**
- Point out where the plan takes on unnecessary risk and counter the aggressive arguments.
- Debate conversationally, without special formatting.

**Trader's plan:**
{trader_plan}

{reports}
{user_context}
**Debate so far:**
{history}

**Last risky argument:** {risky}
**Last neutral argument:** {neutral}
"""

NEUTRAL_PROMPT = """You are the Neutral Risk Analyst. Weigh the upside and the downside of the trader's plan for {ticker}.

**Your Task:**
- Challenge both the risky and the safe analyst where they overreach and propose a balanced approach.
- Debate conversationally, without special formatting.

**Trader's plan:**
{trader_plan}

{reports}
{user_context}
**Debate so far:**
{history}

**Last risky argument:** {risky}
**Last safe argument:** {safe}
"""

RISK_MANAGER_PROMPT = """You are the Risk Manager and debate judge for {ticker}.

**Your Task:**
- Decide clearly: Buy, Sell, or Hold, based on the strongest arguments of the risk debate.
- Refine the trader's plan: target price, position size, stop loss.
- End with exactly one line: 最终交易建议: **买入/持有/卖出**

**Trader's plan:**
{trader_plan}

**Lessons from similar past situations:**
{memories}

**Risk debate transcript:**
{history}
"""

_SPEAKERS = {
    "Risky": (RISKY_PROMPT, "risky_history", "current_risky_response"),
    "Safe": (SAFE_PROMPT, "safe_history", "current_safe_response"),
    "Neutral": (NEUTRAL_PROMPT, "neutral_history", "current_neutral_response"),
}


def _create_risk_debator(speaker: str, llm):
    prompt, own_history, own_current = _SPEAKERS[speaker]

    def risk_debator_node(state: DeliberationState) -> Dict[str, Any]:
        debate = state.get("risk_debate_state") or {}
        count = debate.get("count", 0)

        risk_log.info(f"[{speaker}] turn {count + 1} on {state['company_of_interest']}")
        response = llm.invoke(prompt.format(
            ticker=state["company_of_interest"],
            trader_plan=state.get("trader_investment_plan", ""),
            reports=reports_block(state),
            user_context=user_context_block(state),
            history=debate.get("history", ""),
            risky=debate.get("current_risky_response", "") or "None yet",
            safe=debate.get("current_safe_response", "") or "None yet",
            neutral=debate.get("current_neutral_response", "") or "None yet",
        ))

        argument = f"{speaker} Analyst: {response.content}"
        return {
            "risk_debate_state": {
                "history": argument,
                own_history: argument,
                own_current: argument,
                "latest_speaker": speaker,
                "count": count + 1,
            }
        }

    risk_debator_node.__name__ = f"{speaker.lower()}_node"
    return risk_debator_node


def create_risky_debator(llm):
    return _create_risk_debator("Risky", llm)


def create_safe_debator(llm):
    return _create_risk_debator("Safe", llm)


def create_neutral_debator(llm):
    return _create_risk_debator("Neutral", llm)


def create_risk_manager(llm, memory: FinancialSituationMemory):
    def risk_manager_node(state: DeliberationState) -> Dict[str, Any]:
        debate = state.get("risk_debate_state") or {}
        memories = memory.get_memories(current_situation(state), n_matches=2)

        log = risk_log.for_ticker(state["company_of_interest"])
        with log.timed("risk_manager"):
            response = llm.invoke(RISK_MANAGER_PROMPT.format(
                ticker=state["company_of_interest"],
                trader_plan=state.get("trader_investment_plan", ""),
                memories=format_memories(memories),
                history=debate.get("history", ""),
            ))
        log.log_decision(response.content[:120], {"rounds": debate.get("count", 0)})

        return {
            "risk_debate_state": {
                "judge_decision": response.content,
                "latest_speaker": "Judge",
            },
            "final_trade_decision": response.content,
        }

    return risk_manager_node
