# agent/nodes/msg_clear.py
"""Context pruning between analyst stages."""
from __future__ import annotations

from typing import Any, Dict

from langchain_core.messages import HumanMessage, RemoveMessage

from agent.state import DeliberationState

PLACEHOLDER = "Continue"


def create_msg_delete():
    """Node that drops every message and leaves a single placeholder turn. Never calls the model."""

    def delete_messages(state: DeliberationState) -> Dict[str, Any]:
        removals = [RemoveMessage(id=m.id) for m in state.get("messages") or []]
        return {"messages": removals + [HumanMessage(content=PLACEHOLDER)]}

    return delete_messages
