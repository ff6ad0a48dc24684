# datasources/market_utils.py
"""Ticker classification by market."""
from __future__ import annotations

import re

from datasources.models import MarketInfo, MarketType

_CHINA_RE = re.compile(r"^\d{6}$")
_HK_RE = re.compile(r"^\d{4,5}\.HK$", re.IGNORECASE)
_US_RE = re.compile(r"^[A-Z]{1,5}$")


def get_market_info(ticker: str) -> MarketInfo:
    """Classify a ticker: 6 digits is a China A-share, NNNN.HK is Hong Kong, 1-5 letters is US."""
    ticker = (ticker or "").strip()

    if _CHINA_RE.match(ticker):
        return MarketInfo(
            ticker=ticker,
            market="china_a",
            market_name="中国A股",
            currency_name="人民币",
            currency_symbol="¥",
            is_china=True,
        )
    if _HK_RE.match(ticker):
        return MarketInfo(
            ticker=ticker.upper(),
            market="hong_kong",
            market_name="港股",
            currency_name="港币",
            currency_symbol="HK$",
            is_hk=True,
        )
    if _US_RE.match(ticker.upper()):
        return MarketInfo(
            ticker=ticker.upper(),
            market="us",
            market_name="美股",
            currency_name="美元",
            currency_symbol="$",
            is_us=True,
        )
    return MarketInfo(
        ticker=ticker,
        market="unknown",
        market_name="未知市场",
        currency_name="未知",
        currency_symbol="?",
    )


def market_type_for(ticker: str) -> MarketType:
    """Market family used for cache TTLs and provider routing; unknown tickers count as US."""
    return get_market_info(ticker).market_type


def to_yahoo_symbol(ticker: str) -> str:
    """Map a ticker to Yahoo Finance notation (600519 -> 600519.SS, 000001 -> 000001.SZ)."""
    info = get_market_info(ticker)
    if info.is_china:
        return f"{ticker}.SS" if ticker.startswith(("6", "9")) else f"{ticker}.SZ"
    if info.is_hk:
        code, _ = info.ticker.split(".")
        return f"{int(code):04d}.HK"
    return info.ticker
