# agent/node_ids.py
"""
Typed node identifiers for the deliberation graph.

Nodes are addressed by NodeId(role, stage) rather than by hand-built strings;
NodeId.name renders the key LangGraph sees (Market_Analyst, Tools_News,
Msg_Clear_Market, Bull_Researcher, ...).
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class AnalystType(str, Enum):
    MARKET = "market"
    NEWS = "news"
    FUNDAMENTALS = "fundamentals"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def report_field(self) -> str:
        return f"{self.value}_report"


class Role(str, Enum):
    ANALYST = "Analyst"
    TOOLS = "Tools"
    CLEAR = "Msg_Clear"
    BULL_RESEARCHER = "Bull_Researcher"
    BEAR_RESEARCHER = "Bear_Researcher"
    RESEARCH_MANAGER = "Research_Manager"
    TRADER = "Trader"
    RISKY_ANALYST = "Risky_Analyst"
    SAFE_ANALYST = "Safe_Analyst"
    NEUTRAL_ANALYST = "Neutral_Analyst"
    RISK_MANAGER = "Risk_Manager"


STAGED_ROLES = (Role.ANALYST, Role.TOOLS, Role.CLEAR)


@dataclass(frozen=True)
class NodeId:
    role: Role
    stage: Optional[AnalystType] = None

    def __post_init__(self):
        if (self.role in STAGED_ROLES) != (self.stage is not None):
            raise ValueError(f"{self.role.value} node needs {'an' if self.role in STAGED_ROLES else 'no'} analyst stage")

    @property
    def name(self) -> str:
        if self.role is Role.ANALYST:
            return f"{self.stage.label}_Analyst"
        if self.role is Role.TOOLS:
            return f"Tools_{self.stage.label}"
        if self.role is Role.CLEAR:
            return f"Msg_Clear_{self.stage.label}"
        return self.role.value

    def __str__(self) -> str:
        return self.name


def analyst_nodes(analyst_type: AnalystType) -> Tuple[NodeId, NodeId, NodeId]:
    """(Analyst, Tools, Clear) node ids for one analyst stage."""
    return (
        NodeId(Role.ANALYST, analyst_type),
        NodeId(Role.TOOLS, analyst_type),
        NodeId(Role.CLEAR, analyst_type),
    )


BULL_RESEARCHER = NodeId(Role.BULL_RESEARCHER)
BEAR_RESEARCHER = NodeId(Role.BEAR_RESEARCHER)
RESEARCH_MANAGER = NodeId(Role.RESEARCH_MANAGER)
TRADER = NodeId(Role.TRADER)
RISKY_ANALYST = NodeId(Role.RISKY_ANALYST)
SAFE_ANALYST = NodeId(Role.SAFE_ANALYST)
NEUTRAL_ANALYST = NodeId(Role.NEUTRAL_ANALYST)
RISK_MANAGER = NodeId(Role.RISK_MANAGER)
