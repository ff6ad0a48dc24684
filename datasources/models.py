# datasources/models.py
"""
Data models for the market data layer.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime


class MarketType(Enum):
    """Market families with distinct cache policies and providers."""
    US = "us"
    CHINA = "china"
    HK = "hk"


class CacheDataType(Enum):
    """Coarse data categories, one cache directory each."""
    STOCK_DATA = "stock_data"
    NEWS = "news"
    FUNDAMENTALS = "fundamentals"


class FetchErrorKind(Enum):
    """Why a provider fetch failed."""
    MISSING_CREDENTIALS = "missing_credentials"
    RATE_LIMITED = "rate_limited"
    NO_DATA = "no_data"
    UPSTREAM_ERROR = "upstream_error"


@dataclass
class MarketInfo:
    """Market classification derived from a ticker's shape."""
    ticker: str
    market: str
    market_name: str
    currency_name: str
    currency_symbol: str
    is_china: bool = False
    is_hk: bool = False
    is_us: bool = False

    @property
    def market_type(self) -> MarketType:
        if self.is_china:
            return MarketType.CHINA
        if self.is_hk:
            return MarketType.HK
        return MarketType.US


@dataclass
class CacheMetadata:
    """Sidecar record stored next to every cached payload."""
    symbol: str
    data_type: str
    market_type: str
    data_source: Optional[str]
    file_path: str
    content_length: int
    cached_at: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    file_format: str = "txt"

    @property
    def cached_at_dt(self) -> datetime:
        return datetime.fromisoformat(self.cached_at)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CacheMetadata":
        return cls(
            symbol=raw["symbol"],
            data_type=raw["data_type"],
            market_type=raw.get("market_type", MarketType.US.value),
            data_source=raw.get("data_source"),
            file_path=raw["file_path"],
            content_length=int(raw.get("content_length", 0)),
            cached_at=raw["cached_at"],
            start_date=raw.get("start_date"),
            end_date=raw.get("end_date"),
            file_format=raw.get("file_format", "txt"),
        )


@dataclass
class DataResult:
    """Outcome of a single provider fetch: rendered text or a typed failure."""
    success: bool
    data: str = ""
    source: str = ""
    error_kind: Optional[FetchErrorKind] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def ok(cls, data: str, source: str) -> "DataResult":
        return cls(success=True, data=data, source=source)

    @classmethod
    def fail(cls, kind: FetchErrorKind, error: str, source: str) -> "DataResult":
        return cls(success=False, source=source, error_kind=kind, error=error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "data": self.data,
            "source": self.source,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }
