# agent/signal_processor.py
"""
Signal extraction: risk manager free text → structured trade decision.

Primary path is SignalProcessor.process_signal, which asks the model for a
JSON object and raises SignalProcessingError when the reply cannot be parsed.
The regex/heuristic helpers below (extract_target_price,
smart_price_estimation, extract_simple_decision, get_default_decision) never
call a model and never raise; callers wire them in when they want a
guaranteed result.
"""
from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern

from langchain_core.messages import HumanMessage, SystemMessage

from agent.errors import SignalProcessingError
from datasources.market_utils import get_market_info
from infrastructure.logging import signal_log


class Action(str, Enum):
    BUY = "买入"
    HOLD = "持有"
    SELL = "卖出"


ACTION_SYNONYMS: Dict[str, Action] = {
    "buy": Action.BUY,
    "hold": Action.HOLD,
    "sell": Action.SELL,
    "购买": Action.BUY,
    "保持": Action.HOLD,
    "出售": Action.SELL,
    "purchase": Action.BUY,
    "keep": Action.HOLD,
    "dispose": Action.SELL,
}

DEFAULT_CONFIDENCE = 0.7
DEFAULT_RISK_SCORE = 0.5
DEFAULT_REASONING = "基于综合分析的投资建议"


@dataclass(frozen=True)
class TradeDecision:
    action: Action
    target_price: Optional[float]
    confidence: float
    risk_score: float
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["action"] = self.action.value
        return data


def normalize_action(raw: Any) -> Action:
    """Canonical labels pass through, known synonyms map, anything else is hold."""
    text = str(raw or "").strip()
    for action in Action:
        if text == action.value:
            return action
    return ACTION_SYNONYMS.get(text.lower(), Action.HOLD)


def _clamp01(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(1.0, max(0.0, number))


def _parse_price(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = re.search(r"\d+(?:\.\d+)?", str(value).replace(",", ""))
    return float(match.group(0)) if match else None


_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _extract_json(content: str) -> Dict[str, Any]:
    fenced = _FENCE_RE.search(content)
    candidate = fenced.group(1) if fenced else content
    obj = _OBJECT_RE.search(candidate)
    if not obj:
        raise ValueError("no JSON object in model reply")
    data = json.loads(obj.group(0))
    if not isinstance(data, dict):
        raise ValueError("model reply JSON is not an object")
    return data


# === Fallback heuristics ===

_NUM = r"[¥\$]?\s*(\d+(?:\.\d+)?)"

# First match wins.
PRICE_PATTERNS: List[Pattern] = [
    re.compile(r"(?:目标价[位格]?|target\s+price)\s*[：:]?\s*" + _NUM, re.IGNORECASE),
    re.compile(r"\*\*(?:目标价[位格]?|target\s+price)\*\*\s*[：:]?\s*" + _NUM, re.IGNORECASE),
    re.compile(r"(?:目标|target)\s*[：:]?\s*" + _NUM, re.IGNORECASE),
    re.compile(r"(?:价格|price)\s*[：:]?\s*" + _NUM, re.IGNORECASE),
    re.compile(r"[¥\$](\d+(?:\.\d+)?)"),
    re.compile(r"(\d+(?:\.\d+)?)\s*(?:元|yuan)", re.IGNORECASE),
]

CURRENT_PRICE_PATTERNS: List[Pattern] = [
    re.compile(r"(?:当前价[格位]?|current\s+price)\s*[：:]?\s*" + _NUM, re.IGNORECASE),
    re.compile(r"现价\s*[：:]?\s*" + _NUM),
    re.compile(r"股价\s*[：:]?\s*" + _NUM),
    re.compile(r"(?:价格|price)\s*[：:]?\s*" + _NUM, re.IGNORECASE),
]

PERCENT_PATTERNS: List[Pattern] = [
    re.compile(r"上涨\s*(\d+(?:\.\d+)?)%"),
    re.compile(r"涨幅\s*(\d+(?:\.\d+)?)%"),
    re.compile(r"增长\s*(\d+(?:\.\d+)?)%"),
    re.compile(r"(\d+(?:\.\d+)?)%\s*的?上涨"),
    re.compile(r"(?:upside|rise|gain)\s+of\s+(\d+(?:\.\d+)?)%", re.IGNORECASE),
]


def _first_number(text: str, patterns: List[Pattern]) -> Optional[float]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return float(match.group(1))
    return None


def extract_target_price(text: str) -> Optional[float]:
    """Regex ladder over target-price phrasings; None when nothing matches."""
    return _first_number(text or "", PRICE_PATTERNS)


def smart_price_estimation(text: str, action: Action, is_china: bool = True) -> Optional[float]:
    """
    Estimate a target from a mentioned current price.

    With a percentage rise also present, buy → current × (1 + pct) and
    sell → current × (1 − pct). Otherwise buy/sell use default multipliers
    (1.15/0.95 for China A-shares, 1.12/0.92 elsewhere) and hold returns the
    current price. No current price → None.
    """
    text = text or ""
    current = _first_number(text, CURRENT_PRICE_PATTERNS)
    if not current:
        return None

    pct = _first_number(text, PERCENT_PATTERNS)
    if pct:
        pct /= 100
        if action is Action.BUY:
            return round(current * (1 + pct), 2)
        if action is Action.SELL:
            return round(current * (1 - pct), 2)

    if action is Action.BUY:
        return round(current * (1.15 if is_china else 1.12), 2)
    if action is Action.SELL:
        return round(current * (0.95 if is_china else 0.92), 2)
    return current


_BUY_RE = re.compile(r"买入|BUY", re.IGNORECASE)
_SELL_RE = re.compile(r"卖出|SELL", re.IGNORECASE)
_HOLD_RE = re.compile(r"持有|HOLD", re.IGNORECASE)


def extract_simple_decision(text: str, stock_symbol: Optional[str] = None) -> TradeDecision:
    """Keyword action plus ladder/estimated target price, with fixed confidence and risk."""
    text = text or ""
    if _BUY_RE.search(text):
        action = Action.BUY
    elif _SELL_RE.search(text):
        action = Action.SELL
    elif _HOLD_RE.search(text):
        action = Action.HOLD
    else:
        # no keyword at all
        action = Action.HOLD

    target_price = extract_target_price(text)
    if target_price is None:
        is_china = get_market_info(stock_symbol).is_china if stock_symbol else True
        target_price = smart_price_estimation(text, action, is_china)

    return TradeDecision(
        action=action,
        target_price=target_price,
        confidence=DEFAULT_CONFIDENCE,
        risk_score=DEFAULT_RISK_SCORE,
        reasoning=DEFAULT_REASONING,
    )


def get_default_decision() -> TradeDecision:
    return TradeDecision(
        action=Action.HOLD,
        target_price=None,
        confidence=0.5,
        risk_score=0.5,
        reasoning="输入数据无效，默认持有建议",
    )


# === Model-assisted extraction ===

SIGNAL_EXTRACTION_PROMPT = """You are a financial analysis assistant. Extract the structured investment decision from the trading report below and return ONLY a JSON object:
{{
    "action": "买入/持有/卖出",
    "target_price": number (price in {currency_name}, must be a concrete value),
    "confidence": number between 0 and 1 (0.7 if not stated),
    "risk_score": number between 0 and 1 (0.5 if not stated),
    "reasoning": "short summary of the main reasons, in Chinese"
}}

Rules:
1. action must be exactly one of "买入", "持有", "卖出" (never buy/hold/sell).
2. {symbol} trades on {market_name}; target_price is in {currency_name} ({currency_symbol}).
3. Use reasonable defaults for anything the report does not state."""


class SignalProcessor:
    def __init__(self, llm):
        self.llm = llm

    def process_signal(self, full_signal: str, stock_symbol: str) -> TradeDecision:
        market = get_market_info(stock_symbol)
        signal_log.info(
            f"Processing signal for {stock_symbol} ({market.market_name}, {market.currency_name})"
        )

        messages = [
            SystemMessage(content=SIGNAL_EXTRACTION_PROMPT.format(
                symbol=stock_symbol or "unknown",
                market_name=market.market_name,
                currency_name=market.currency_name,
                currency_symbol=market.currency_symbol,
            )),
            HumanMessage(content=full_signal),
        ]

        response = self.llm.invoke(messages)
        content = response.content if isinstance(response.content, str) else str(response.content)

        try:
            data = _extract_json(content)
        except ValueError as e:
            signal_log.error(f"Could not parse decision for {stock_symbol}: {e}")
            raise SignalProcessingError(f"Invalid decision JSON for {stock_symbol}: {e}", content) from e

        action = normalize_action(data.get("action"))
        if action.value != data.get("action"):
            signal_log.debug(f"Action mapped: {data.get('action')!r} -> {action.value}")

        decision = TradeDecision(
            action=action,
            target_price=_parse_price(data.get("target_price")),
            confidence=_clamp01(data.get("confidence"), DEFAULT_CONFIDENCE),
            risk_score=_clamp01(data.get("risk_score"), DEFAULT_RISK_SCORE),
            reasoning=str(data.get("reasoning") or DEFAULT_REASONING),
        )
        signal_log.info(f"Signal for {stock_symbol}: {decision.action.value} target={decision.target_price}")
        return decision
