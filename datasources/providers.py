# datasources/providers.py
"""
Rate-limited market data providers fronted by the stock data cache.

Supports:
- Finnhub (US tickers)
- yfinance (Hong Kong and China A-share tickers)

Each public getter checks the cache first. On a miss it waits for the
minimum interval since the previous upstream call, fetches, caches the
rendered text and returns it. Failures never propagate: the caller gets a
labelled "data unavailable" document instead.
"""
from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import finnhub
import pandas as pd
import yfinance as yf
from finnhub.exceptions import FinnhubAPIException

from datasources.cache_manager import StockDataCache
from datasources.market_utils import get_market_info, to_yahoo_symbol
from datasources.models import DataResult, FetchErrorKind
from infrastructure.logging import dataflow_log
from utils.config import Settings

DATE_FMT = "%Y-%m-%d"


def generate_fallback_document(
    symbol: str,
    error: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> str:
    """Clearly labelled placeholder returned when every fetch attempt failed."""
    period = f"{start_date} to {end_date}" if start_date and end_date else "n/a"
    return (
        f"# {symbol} data unavailable\n\n"
        f"## Error\n{error}\n\n"
        f"## Note\n"
        f"The upstream data source could not be reached or returned nothing "
        f"(rate limit, credentials or network). Do not treat this as market data.\n"
        f"- Requested period: {period}\n"
        f"- Generated at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
    )


def _span_days(start_date: str, end_date: str) -> int:
    start = datetime.strptime(start_date, DATE_FMT)
    end = datetime.strptime(end_date, DATE_FMT)
    return abs((end - start).days)


def _fmt(value, digits: int = 2) -> str:
    if value is None:
        return "N/A"
    try:
        return f"{float(value):.{digits}f}"
    except (TypeError, ValueError):
        return str(value)


class RateLimitedDataProvider(ABC):
    """Base class for cached, rate-limited providers."""

    name: str = "base"

    def __init__(
        self,
        cache: StockDataCache,
        min_api_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cache = cache
        self.min_api_interval = min_api_interval
        self.last_api_call: Optional[float] = None
        self._clock = clock
        self._sleep = sleep

    def _wait_for_rate_limit(self) -> None:
        """Sleep until min_api_interval has passed since the previous upstream call, then stamp."""
        if self.last_api_call is not None:
            elapsed = self._clock() - self.last_api_call
            if elapsed < self.min_api_interval:
                wait = self.min_api_interval - elapsed
                dataflow_log.debug(f"[{self.name}] rate limit wait {wait:.2f}s")
                self._sleep(wait)
        self.last_api_call = self._clock()

    @abstractmethod
    def _fetch_stock_data(self, symbol: str, start_date: str, end_date: str) -> DataResult:
        """Fetch and render price data."""

    @abstractmethod
    def _fetch_news(self, symbol: str, start_date: str, end_date: str) -> DataResult:
        """Fetch and render company news."""

    @abstractmethod
    def _fetch_fundamentals(self, symbol: str) -> DataResult:
        """Fetch and render fundamentals."""

    def _call_upstream(self, fetch: Callable[[], DataResult]) -> DataResult:
        self._wait_for_rate_limit()
        try:
            return fetch()
        except FinnhubAPIException as e:
            kind = FetchErrorKind.RATE_LIMITED if getattr(e, "status_code", None) == 429 else FetchErrorKind.UPSTREAM_ERROR
            return DataResult.fail(kind, str(e), self.name)
        except Exception as e:
            dataflow_log.log_error(e, f"{self.name} upstream call")
            return DataResult.fail(FetchErrorKind.UPSTREAM_ERROR, str(e), self.name)

    def get_stock_data(self, symbol: str, start_date: str, end_date: str, force_refresh: bool = False) -> str:
        if not force_refresh:
            cache_key = self.cache.find_cached_stock_data(symbol, start_date, end_date, self.name)
            if cache_key:
                cached = self.cache.load_stock_data(cache_key)
                if cached:
                    dataflow_log.info(f"[{self.name}] stock data for {symbol} served from cache")
                    return cached

        dataflow_log.info(f"[{self.name}] fetching stock data: {symbol} ({start_date} to {end_date})")
        result = self._call_upstream(lambda: self._fetch_stock_data(symbol, start_date, end_date))
        if not result.success:
            dataflow_log.warning(f"[{self.name}] stock data failed for {symbol}: {result.error_kind} {result.error}")
            return generate_fallback_document(symbol, result.error or "unknown error", start_date, end_date)

        self.cache.save_stock_data(symbol, result.data, start_date, end_date, self.name)
        return result.data

    def get_news(self, symbol: str, start_date: str, end_date: str, force_refresh: bool = False) -> str:
        if not force_refresh:
            cache_key = self.cache.find_cached_news_data(symbol, start_date, end_date, self.name)
            if cache_key:
                cached = self.cache.load_news_data(cache_key)
                if cached:
                    dataflow_log.info(f"[{self.name}] news for {symbol} served from cache")
                    return cached

        dataflow_log.info(f"[{self.name}] fetching news: {symbol} ({start_date} to {end_date})")
        result = self._call_upstream(lambda: self._fetch_news(symbol, start_date, end_date))
        if not result.success:
            dataflow_log.warning(f"[{self.name}] news failed for {symbol}: {result.error_kind} {result.error}")
            return generate_fallback_document(symbol, result.error or "unknown error", start_date, end_date)

        self.cache.save_news_data(symbol, result.data, start_date, end_date, self.name)
        return result.data

    def get_fundamentals(self, symbol: str, force_refresh: bool = False) -> str:
        if not force_refresh:
            cache_key = self.cache.find_cached_fundamentals_data(symbol, self.name)
            if cache_key:
                cached = self.cache.load_fundamentals_data(cache_key)
                if cached:
                    dataflow_log.info(f"[{self.name}] fundamentals for {symbol} served from cache")
                    return cached

        dataflow_log.info(f"[{self.name}] fetching fundamentals: {symbol}")
        result = self._call_upstream(lambda: self._fetch_fundamentals(symbol))
        if not result.success:
            dataflow_log.warning(f"[{self.name}] fundamentals failed for {symbol}: {result.error_kind} {result.error}")
            return generate_fallback_document(symbol, result.error or "unknown error")

        self.cache.save_fundamentals_data(symbol, result.data, self.name)
        return result.data


class FinnhubDataProvider(RateLimitedDataProvider):
    """US market data from Finnhub."""

    name = "finnhub"

    def __init__(self, cache: StockDataCache, api_key: str, **kwargs):
        super().__init__(cache, **kwargs)
        self.api_key = api_key
        self.client = finnhub.Client(api_key=api_key) if api_key else None

    def _missing_key(self) -> DataResult:
        return DataResult.fail(FetchErrorKind.MISSING_CREDENTIALS, "No Finnhub API key", self.name)

    def _fetch_stock_data(self, symbol: str, start_date: str, end_date: str) -> DataResult:
        if self.client is None:
            return self._missing_key()

        profile = self.client.company_profile2(symbol=symbol) or {}
        company_name = profile.get("name") or symbol.upper()
        currency = profile.get("currency") or "USD"

        if _span_days(start_date, end_date) > 1:
            start_ts = int(datetime.strptime(start_date, DATE_FMT).timestamp())
            end_ts = int(datetime.strptime(end_date, DATE_FMT).timestamp()) + 86400
            candles = self.client.stock_candles(symbol, "D", start_ts, end_ts) or {}
            closes = candles.get("c") or []
            if candles.get("s") == "no_data" or not closes:
                return DataResult.fail(FetchErrorKind.NO_DATA, f"No candles for {symbol}", self.name)

            first, last = closes[0], closes[-1]
            change = last - first
            section = (
                "## Price history\n"
                f"- Trading days: {len(closes)}\n"
                f"- First close: {_fmt(first)} {currency}\n"
                f"- Last close: {_fmt(last)} {currency}\n"
                f"- Period high: {_fmt(max(candles.get('h') or closes))} {currency}\n"
                f"- Period low: {_fmt(min(candles.get('l') or closes))} {currency}\n"
                f"- Change: {change:+.2f} ({change / first * 100:+.2f}%)\n"
            )
        else:
            quote = self.client.quote(symbol) or {}
            if not quote.get("c"):
                return DataResult.fail(FetchErrorKind.NO_DATA, f"No quote for {symbol}", self.name)
            section = (
                "## Quote\n"
                f"- Current price: {_fmt(quote.get('c'))} {currency}\n"
                f"- Change: {_fmt(quote.get('d'))} ({_fmt(quote.get('dp'))}%)\n"
                f"- Open: {_fmt(quote.get('o'))}\n"
                f"- High: {_fmt(quote.get('h'))}\n"
                f"- Low: {_fmt(quote.get('l'))}\n"
                f"- Previous close: {_fmt(quote.get('pc'))}\n"
            )

        text = (
            f"# {symbol.upper()} market data\n"
            f"- Company: {company_name}\n"
            f"- Exchange: {profile.get('exchange', 'N/A')}\n"
            f"- Currency: {currency}\n\n"
            f"{section}\n"
            f"## Overview\n"
            f"- Period: {start_date} to {end_date}\n"
            f"- Source: Finnhub\n"
        )
        return DataResult.ok(text, self.name)

    def _fetch_news(self, symbol: str, start_date: str, end_date: str) -> DataResult:
        if self.client is None:
            return self._missing_key()

        articles = self.client.company_news(symbol, _from=start_date, to=end_date) or []
        if not articles:
            return DataResult.fail(FetchErrorKind.NO_DATA, f"No news for {symbol}", self.name)

        lines = [f"# {symbol.upper()} news ({start_date} to {end_date})", ""]
        for item in articles[:10]:
            published = datetime.fromtimestamp(item.get("datetime", 0)).strftime(DATE_FMT)
            lines.append(f"### {item.get('headline', '').strip()} ({published}, {item.get('source', 'unknown')})")
            summary = (item.get("summary") or "").strip()
            if summary:
                lines.append(summary)
            lines.append("")
        return DataResult.ok("\n".join(lines), self.name)

    def _fetch_fundamentals(self, symbol: str) -> DataResult:
        if self.client is None:
            return self._missing_key()

        metrics = (self.client.company_basic_financials(symbol, "all") or {}).get("metric") or {}
        if not metrics:
            return DataResult.fail(FetchErrorKind.NO_DATA, f"No fundamentals for {symbol}", self.name)

        fields = [
            ("P/E (TTM)", "peBasicExclExtraTTM"),
            ("P/B", "pbQuarterly"),
            ("Dividend yield %", "dividendYieldIndicatedAnnual"),
            ("Market cap (M)", "marketCapitalization"),
            ("Net margin % (TTM)", "netProfitMarginTTM"),
            ("ROE % (TTM)", "roeTTM"),
            ("EPS (TTM)", "epsBasicExclExtraItemsTTM"),
            ("52w high", "52WeekHigh"),
            ("52w low", "52WeekLow"),
            ("Beta", "beta"),
        ]
        lines = [f"# {symbol.upper()} fundamentals", ""]
        lines += [f"- {label}: {_fmt(metrics.get(key))}" for label, key in fields]
        lines.append("- Source: Finnhub")
        return DataResult.ok("\n".join(lines), self.name)


class YFinanceDataProvider(RateLimitedDataProvider):
    """Hong Kong and China A-share data from Yahoo Finance."""

    name = "yfinance"

    def _ticker(self, symbol: str):
        return yf.Ticker(to_yahoo_symbol(symbol))

    def _fetch_stock_data(self, symbol: str, start_date: str, end_date: str) -> DataResult:
        market = get_market_info(symbol)
        end_exclusive = (datetime.strptime(end_date, DATE_FMT) + timedelta(days=1)).strftime(DATE_FMT)
        history: pd.DataFrame = self._ticker(symbol).history(start=start_date, end=end_exclusive)
        if history is None or history.empty:
            return DataResult.fail(FetchErrorKind.NO_DATA, f"No price history for {symbol}", self.name)

        closes = history["Close"]
        first, last = float(closes.iloc[0]), float(closes.iloc[-1])
        change = last - first
        recent = history[["Open", "High", "Low", "Close", "Volume"]].tail(5).round(2)

        text = (
            f"# {market.ticker} market data\n"
            f"- Market: {market.market_name}\n"
            f"- Currency: {market.currency_name} ({market.currency_symbol})\n\n"
            f"## Price history\n"
            f"- Trading days: {len(history)}\n"
            f"- First close: {market.currency_symbol}{first:.2f}\n"
            f"- Last close: {market.currency_symbol}{last:.2f}\n"
            f"- Period high: {market.currency_symbol}{float(history['High'].max()):.2f}\n"
            f"- Period low: {market.currency_symbol}{float(history['Low'].min()):.2f}\n"
            f"- Change: {change:+.2f} ({change / first * 100:+.2f}%)\n"
            f"- Average volume: {float(history['Volume'].mean()):,.0f}\n\n"
            f"## Recent sessions\n{recent.to_string()}\n\n"
            f"## Overview\n"
            f"- Period: {start_date} to {end_date}\n"
            f"- Source: Yahoo Finance\n"
        )
        return DataResult.ok(text, self.name)

    def _fetch_news(self, symbol: str, start_date: str, end_date: str) -> DataResult:
        items = self._ticker(symbol).news or []
        if not items:
            return DataResult.fail(FetchErrorKind.NO_DATA, f"No news for {symbol}", self.name)

        lines = [f"# {symbol} news ({start_date} to {end_date})", ""]
        for item in items[:10]:
            # newer yfinance releases nest article fields under "content"
            content = item.get("content") or item
            title = content.get("title", "")
            publisher = (content.get("provider") or {}).get("displayName") or content.get("publisher", "unknown")
            lines.append(f"### {title} ({publisher})")
            summary = content.get("summary") or ""
            if summary:
                lines.append(summary.strip())
            lines.append("")
        return DataResult.ok("\n".join(lines), self.name)

    def _fetch_fundamentals(self, symbol: str) -> DataResult:
        info = self._ticker(symbol).info or {}
        if not info:
            return DataResult.fail(FetchErrorKind.NO_DATA, f"No fundamentals for {symbol}", self.name)

        fields = [
            ("Name", "shortName"),
            ("Sector", "sector"),
            ("Industry", "industry"),
            ("P/E (TTM)", "trailingPE"),
            ("Forward P/E", "forwardPE"),
            ("P/B", "priceToBook"),
            ("Dividend yield", "dividendYield"),
            ("Market cap", "marketCap"),
            ("Profit margin", "profitMargins"),
            ("Debt/Equity", "debtToEquity"),
            ("52w high", "fiftyTwoWeekHigh"),
            ("52w low", "fiftyTwoWeekLow"),
            ("Beta", "beta"),
        ]
        lines = [f"# {symbol} fundamentals", ""]
        lines += [f"- {label}: {info.get(key, 'N/A')}" for label, key in fields]
        lines.append("- Source: Yahoo Finance")
        return DataResult.ok("\n".join(lines), self.name)


class ProviderRegistry:
    """Routes a ticker to the provider for its market. Built once per process and shared."""

    def __init__(self, us_provider: RateLimitedDataProvider, asia_provider: RateLimitedDataProvider):
        self.us_provider = us_provider
        self.asia_provider = asia_provider

    def for_symbol(self, symbol: str) -> RateLimitedDataProvider:
        market = get_market_info(symbol)
        if market.is_china or market.is_hk:
            return self.asia_provider
        return self.us_provider

    @property
    def providers(self) -> List[RateLimitedDataProvider]:
        return [self.us_provider, self.asia_provider]


def build_default_registry(cache: StockDataCache, settings: Settings) -> ProviderRegistry:
    return ProviderRegistry(
        us_provider=FinnhubDataProvider(cache, settings.finnhub_api_key, min_api_interval=settings.min_api_interval),
        asia_provider=YFinanceDataProvider(cache, min_api_interval=settings.min_api_interval),
    )
