# agent/nodes/context.py
"""Prompt context shared by the debate and decision nodes."""
from __future__ import annotations

from agent.state import DeliberationState


def reports_block(state: DeliberationState) -> str:
    """All analyst reports that were produced, as one labelled block."""
    sections = [
        ("Market report", state.get("market_report")),
        ("News report", state.get("news_report")),
        ("Sentiment report", state.get("sentiment_report")),
        ("Fundamentals report", state.get("fundamentals_report")),
    ]
    return "\n\n".join(f"## {title}\n{body}" for title, body in sections if body)


def current_situation(state: DeliberationState) -> str:
    """Text used to recall similar past situations from memory."""
    return "\n\n".join(
        state.get(field) or ""
        for field in ("market_report", "news_report", "sentiment_report", "fundamentals_report")
    )


def user_context_block(state: DeliberationState) -> str:
    context = state.get("user_context") or ""
    return f"\n**Investor context:**\n{context}\n" if context else ""
