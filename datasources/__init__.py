"""
Market data layer.

Combines:
- StockDataCache: TTL-keyed file cache with JSON sidecar metadata
- Rate-limited providers: Finnhub (US), yfinance (Hong Kong, China A-shares)
- ProviderRegistry: routes a ticker to its market's provider

Usage:
    from datasources import StockDataCache, build_default_registry
    from utils.config import load_settings

    settings = load_settings()
    cache = StockDataCache.from_settings(settings)
    registry = build_default_registry(cache, settings)
    text = registry.for_symbol("AAPL").get_stock_data("AAPL", "2024-01-01", "2024-01-15")
"""
from __future__ import annotations

from datasources.models import (
    CacheDataType,
    CacheMetadata,
    DataResult,
    FetchErrorKind,
    MarketInfo,
    MarketType,
)
from datasources.market_utils import get_market_info, market_type_for, to_yahoo_symbol
from datasources.cache_manager import StockDataCache
from datasources.providers import (
    FinnhubDataProvider,
    ProviderRegistry,
    RateLimitedDataProvider,
    YFinanceDataProvider,
    build_default_registry,
    generate_fallback_document,
)

__all__ = [
    # Models
    "CacheDataType",
    "CacheMetadata",
    "DataResult",
    "FetchErrorKind",
    "MarketInfo",
    "MarketType",

    # Market classification
    "get_market_info",
    "market_type_for",
    "to_yahoo_symbol",

    # Cache
    "StockDataCache",

    # Providers
    "RateLimitedDataProvider",
    "FinnhubDataProvider",
    "YFinanceDataProvider",
    "ProviderRegistry",
    "build_default_registry",
    "generate_fallback_document",
]
