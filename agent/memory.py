# agent/memory.py
"""
Recall of past situations for researchers, the trader and both managers.

No store backs it yet: every lookup recalls nothing, and the prompts say
"No past memories found." in place of lessons.
"""
from __future__ import annotations

from typing import Dict, List


class FinancialSituationMemory:
    def __init__(self, name: str):
        self.name = name

    def get_memories(self, current_situation: str, n_matches: int = 1) -> List[Dict[str, object]]:
        """Nothing is stored, so nothing is ever recalled."""
        return []


def format_memories(memories: List[Dict[str, object]]) -> str:
    """Render recalled lessons for a prompt."""
    if not memories:
        return "No past memories found."
    return "\n\n".join(str(m["recommendation"]) for m in memories)
