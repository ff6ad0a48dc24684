# agent/nodes/researchers.py
"""
Research Team - Bull vs Bear debate and its judge.

1. Bull Researcher - argues for upside
2. Bear Researcher - argues for downside
3. Research Manager - weighs the debate and writes the investment plan

Each debater turn appends its prefixed argument to the transcripts and bumps
the debate count; routing alternates the two until the count cap is reached.
"""
from __future__ import annotations

from typing import Any, Dict

from agent.memory import FinancialSituationMemory, format_memories
from agent.nodes.context import current_situation, reports_block, user_context_block
from agent.state import DeliberationState
from infrastructure.logging import researchers_log


BULL_RESEARCHER_PROMPT = """You are a BULLISH Researcher arguing that {ticker} should be bought.

**Your Task:**
- Build an evidence-based case for growth, competitive advantages and positive signals.
- Respond directly to the bear's latest argument and show where it is weak.
- Speak conversationally, as in a live debate, without special formatting.

{reports}
{user_context}
**Debate so far:**
{history}

**Last bear argument:**
{opponent}

**Lessons from similar past situations:**
{memories}
"""

BEAR_RESEARCHER_PROMPT = """You are a BEARISH Researcher arguing against investing in {ticker}.

**Your Task:**
- Build an evidence-based case around risks, competitive weaknesses and negative signals.
- Respond directly to the bull's latest argument and show where it is over-optimistic.
- Speak conversationally, as in a live debate, without special formatting.

{reports}
{user_context}
**Debate so far:**
{history}

**Last bull argument:**
{opponent}

**Lessons from similar past situations:**
{memories}
"""

RESEARCH_MANAGER_PROMPT = """You are the Research Manager judging the Bull vs Bear debate on {ticker}.

**Your Task:**
- Decide clearly: Buy, Sell, or Hold. Only choose Hold when the arguments truly balance.
- Summarize the strongest point on each side.
- Write an investment plan for the trader: recommendation, rationale and concrete actions.

**Lessons from similar past situations:**
{memories}

{reports}

**Debate transcript:**
{history}
"""


def _create_debater(side: str, prompt: str, own_history: str, llm, memory: FinancialSituationMemory):
    speaker = f"{side} Analyst"

    def debater_node(state: DeliberationState) -> Dict[str, Any]:
        debate = state.get("investment_debate_state") or {}
        count = debate.get("count", 0)
        memories = memory.get_memories(current_situation(state), n_matches=2)

        researchers_log.info(f"[{side}] turn {count + 1} on {state['company_of_interest']}")
        response = llm.invoke(prompt.format(
            ticker=state["company_of_interest"],
            reports=reports_block(state),
            user_context=user_context_block(state),
            history=debate.get("history", ""),
            opponent=debate.get("current_response", "") or "None yet",
            memories=format_memories(memories),
        ))

        argument = f"{speaker}: {response.content}"
        return {
            "investment_debate_state": {
                "history": argument,
                own_history: argument,
                "current_response": argument,
                "count": count + 1,
            }
        }

    debater_node.__name__ = f"{side.lower()}_node"
    return debater_node


def create_bull_researcher(llm, memory: FinancialSituationMemory):
    return _create_debater("Bull", BULL_RESEARCHER_PROMPT, "bull_history", llm, memory)


def create_bear_researcher(llm, memory: FinancialSituationMemory):
    return _create_debater("Bear", BEAR_RESEARCHER_PROMPT, "bear_history", llm, memory)


def create_research_manager(llm, memory: FinancialSituationMemory):
    def research_manager_node(state: DeliberationState) -> Dict[str, Any]:
        debate = state.get("investment_debate_state") or {}
        memories = memory.get_memories(current_situation(state), n_matches=2)

        with researchers_log.for_ticker(state["company_of_interest"]).timed("research_manager"):
            response = llm.invoke(RESEARCH_MANAGER_PROMPT.format(
                ticker=state["company_of_interest"],
                memories=format_memories(memories),
                reports=reports_block(state),
                history=debate.get("history", ""),
            ))

        return {
            "investment_debate_state": {
                "judge_decision": response.content,
                "current_response": response.content,
            },
            "investment_plan": response.content,
        }

    return research_manager_node
