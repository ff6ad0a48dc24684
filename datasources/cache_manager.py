# datasources/cache_manager.py
"""
File-backed stock data cache.

Every fetched payload is written to a per-category directory and described by
a JSON sidecar in metadata/. Entries expire by a (market, data type) TTL table,
are never overwritten in place (a parameter change means a new key), and are
only deleted by clear_old_cache().

Layout:
    <cache_dir>/stocks/<key>.txt
    <cache_dir>/news/<key>.txt
    <cache_dir>/fundamentals/<key>.txt
    <cache_dir>/metadata/<key>_meta.json

Reads and writes are plain file I/O without locking. Two processes sharing a
cache directory can both write the same key, and a reader can observe a
half-written payload.
"""
from __future__ import annotations

import json
import hashlib
from pathlib import Path
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, Iterable, Iterator, List, Optional, Tuple

from datasources.market_utils import market_type_for
from datasources.models import CacheDataType, CacheMetadata, MarketType
from infrastructure.logging import cache_log
from utils.config import Settings

DEFAULT_TTL_HOURS = 24
DEFAULT_LONG_TEXT_PROVIDERS = ("dashscope", "openai", "google")


class StockDataCache:
    """
    TTL-keyed, content-length-aware file cache.

    Example:
        cache = StockDataCache("/tmp/cache")
        key = cache.save_stock_data("AAPL", text, "2024-01-01", "2024-01-15", "finnhub")
        cache.find_cached_stock_data("AAPL", "2024-01-01", "2024-01-15", "finnhub") == key
    """

    # TTL by market and data type (hours)
    TTL_HOURS: Dict[Tuple[MarketType, CacheDataType], float] = {
        (MarketType.US, CacheDataType.STOCK_DATA): 2,
        (MarketType.CHINA, CacheDataType.STOCK_DATA): 1,
        (MarketType.HK, CacheDataType.STOCK_DATA): 2,
        (MarketType.US, CacheDataType.NEWS): 6,
        (MarketType.CHINA, CacheDataType.NEWS): 4,
        (MarketType.HK, CacheDataType.NEWS): 6,
        (MarketType.US, CacheDataType.FUNDAMENTALS): 24,
        (MarketType.CHINA, CacheDataType.FUNDAMENTALS): 12,
        (MarketType.HK, CacheDataType.FUNDAMENTALS): 24,
    }

    DATA_DIRS = {
        CacheDataType.STOCK_DATA: "stocks",
        CacheDataType.NEWS: "news",
        CacheDataType.FUNDAMENTALS: "fundamentals",
    }

    def __init__(
        self,
        cache_dir: str,
        enable_length_check: bool = False,
        max_content_length: int = 50000,
        long_text_providers: Iterable[str] = DEFAULT_LONG_TEXT_PROVIDERS,
        available_providers: Iterable[str] = (),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.cache_dir = Path(cache_dir).resolve()
        self.metadata_dir = self.cache_dir / "metadata"
        self.enable_length_check = enable_length_check
        self.max_content_length = max_content_length
        self.long_text_providers = tuple(long_text_providers)
        self.available_providers = tuple(available_providers)
        self._clock = clock

        for sub in list(self.DATA_DIRS.values()) + ["metadata"]:
            (self.cache_dir / sub).mkdir(parents=True, exist_ok=True)

        cache_log.info(f"Cache initialized at {self.cache_dir}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "StockDataCache":
        """Build a cache whose long-text providers are those with a configured API key."""
        keys = {
            "dashscope": settings.dashscope_api_key,
            "openai": settings.openai_api_key,
            "google": settings.google_api_key,
        }
        return cls(
            settings.cache_dir,
            enable_length_check=settings.enable_cache_length_check,
            max_content_length=settings.max_cache_content_length,
            available_providers=[name for name, key in keys.items() if key],
        )

    # === Keys and paths ===

    @staticmethod
    def _generate_cache_key(data_type: str, symbol: str, **kwargs) -> str:
        """Deterministic key; kwargs are sorted so insertion order never matters."""
        params_str = f"{data_type}_{symbol}"
        for key in sorted(kwargs):
            params_str += f"_{key}_{kwargs[key]}"
        digest = hashlib.md5(params_str.encode("utf-8")).hexdigest()[:12]
        return f"{symbol}_{data_type}_{digest}"

    def _get_cache_path(self, data_type: CacheDataType, cache_key: str, file_format: str = "txt") -> Path:
        return self.cache_dir / self.DATA_DIRS[data_type] / f"{cache_key}.{file_format}"

    def _get_metadata_path(self, cache_key: str) -> Path:
        return self.metadata_dir / f"{cache_key}_meta.json"

    # === Metadata ===

    def _save_metadata(self, cache_key: str, metadata: CacheMetadata) -> None:
        path = self._get_metadata_path(cache_key)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(metadata.to_dict(), f, ensure_ascii=False, indent=2)

    def _load_metadata(self, cache_key: str) -> Optional[CacheMetadata]:
        path = self._get_metadata_path(cache_key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return CacheMetadata.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            cache_log.warning(f"Unreadable cache metadata {path.name}: {e}")
            return None

    def _iter_metadata(self) -> Iterator[Tuple[str, CacheMetadata]]:
        """Yield (key, metadata) for every readable sidecar."""
        for path in sorted(self.metadata_dir.glob("*_meta.json")):
            cache_key = path.name[: -len("_meta.json")]
            metadata = self._load_metadata(cache_key)
            if metadata is not None:
                yield cache_key, metadata

    # === TTL ===

    def ttl_hours(self, market_type: MarketType, data_type: CacheDataType) -> float:
        return self.TTL_HOURS.get((market_type, data_type), DEFAULT_TTL_HOURS)

    def is_cache_valid(
        self,
        cache_key: str,
        max_age_hours: Optional[float] = None,
        symbol: Optional[str] = None,
        data_type: Optional[str] = None,
    ) -> bool:
        """An entry is valid while its age is strictly below the TTL."""
        metadata = self._load_metadata(cache_key)
        if metadata is None:
            return False

        try:
            if max_age_hours is None:
                market = market_type_for(symbol) if symbol else MarketType(metadata.market_type)
                max_age_hours = self.ttl_hours(market, CacheDataType(data_type or metadata.data_type))
            age = self._clock() - metadata.cached_at_dt
        except ValueError as e:
            cache_log.warning(f"Bad cache metadata on {cache_key}: {e}")
            return False

        valid = age < timedelta(hours=max_age_hours)
        if not valid:
            cache_log.debug(f"Cache expired: {cache_key} (age {age}, ttl {max_age_hours}h)")
        return valid

    # === Content length policy ===

    def should_skip_cache_for_content(self, content: str, data_type: str = "unknown") -> bool:
        """Skip persisting oversized content unless a long-text-capable provider is available."""
        if not self.enable_length_check:
            return False

        content_length = len(content)
        if content_length <= self.max_content_length:
            return False

        long_providers = [p for p in self.available_providers if p in self.long_text_providers]
        if long_providers:
            cache_log.info(
                f"{data_type} is {content_length:,} chars, cached anyway "
                f"(long-text providers: {', '.join(long_providers)})"
            )
            return False

        cache_log.warning(
            f"{data_type} is {content_length:,} chars (limit {self.max_content_length:,}) "
            f"and no long-text provider is available, skipping cache"
        )
        return True

    # === Generic save/load/find ===

    def _save(
        self,
        data_type: CacheDataType,
        symbol: str,
        content: str,
        key_params: Dict[str, Any],
        data_source: Optional[str],
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> str:
        if self.should_skip_cache_for_content(content, data_type.value):
            cache_key = self._generate_cache_key(data_type.value, symbol, **key_params, skipped=True)
            cache_log.info(f"Skipped caching {data_type.value} for {symbol} -> {cache_key}")
            return cache_key

        cache_key = self._generate_cache_key(data_type.value, symbol, **key_params)
        path = self._get_cache_path(data_type, cache_key)
        try:
            path.write_text(content, encoding="utf-8")
            self._save_metadata(cache_key, CacheMetadata(
                symbol=symbol,
                data_type=data_type.value,
                market_type=market_type_for(symbol).value,
                data_source=data_source,
                file_path=str(path),
                content_length=len(content),
                cached_at=self._clock().isoformat(),
                start_date=start_date,
                end_date=end_date,
            ))
        except OSError as e:
            # Unwritten entries stay a miss; never leave a payload without its sidecar
            cache_log.log_error(e, f"cache write {cache_key}")
            try:
                path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                cache_log.warning(f"Could not remove partial payload {path}: {cleanup_error}")
            return cache_key

        cache_log.info(f"Cached {data_type.value}: {symbol} ({data_source}) -> {cache_key}")
        return cache_key

    def _load(self, cache_key: str) -> Optional[str]:
        metadata = self._load_metadata(cache_key)
        if metadata is None:
            return None
        path = Path(metadata.file_path)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            cache_log.error(f"Failed to read cached payload {path}: {e}")
            return None

    def _find(
        self,
        data_type: CacheDataType,
        symbol: str,
        data_source: Optional[str],
        max_age_hours: Optional[float],
        exact_key: Optional[str] = None,
    ) -> Optional[str]:
        """Exact key first, then any sidecar for the same symbol/type/market[/source] still within TTL."""
        market = market_type_for(symbol)
        if max_age_hours is None:
            max_age_hours = self.ttl_hours(market, data_type)

        if exact_key and self.is_cache_valid(exact_key, max_age_hours, symbol, data_type.value):
            cache_log.info(f"Exact cache hit: {symbol} -> {exact_key}")
            return exact_key

        for cache_key, metadata in self._iter_metadata():
            if (
                metadata.symbol == symbol
                and metadata.data_type == data_type.value
                and metadata.market_type == market.value
                and (data_source is None or metadata.data_source == data_source)
                and self.is_cache_valid(cache_key, max_age_hours, symbol, data_type.value)
            ):
                cache_log.info(f"Partial cache hit: {symbol} -> {cache_key}")
                return cache_key

        cache_log.debug(f"No valid {data_type.value} cache for {symbol}")
        return None

    # === Stock data ===

    def save_stock_data(
        self,
        symbol: str,
        data: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        data_source: Optional[str] = None,
    ) -> str:
        params = {
            "start_date": start_date,
            "end_date": end_date,
            "source": data_source,
            "market": market_type_for(symbol).value,
        }
        return self._save(CacheDataType.STOCK_DATA, symbol, data, params, data_source, start_date, end_date)

    def load_stock_data(self, cache_key: str) -> Optional[str]:
        return self._load(cache_key)

    def find_cached_stock_data(
        self,
        symbol: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        data_source: Optional[str] = None,
        max_age_hours: Optional[float] = None,
    ) -> Optional[str]:
        exact_key = self._generate_cache_key(
            CacheDataType.STOCK_DATA.value, symbol,
            start_date=start_date,
            end_date=end_date,
            source=data_source,
            market=market_type_for(symbol).value,
        )
        return self._find(CacheDataType.STOCK_DATA, symbol, data_source, max_age_hours, exact_key)

    # === News ===

    def save_news_data(
        self,
        symbol: str,
        news_data: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        data_source: str = "unknown",
    ) -> str:
        params = {"start_date": start_date, "end_date": end_date, "source": data_source}
        return self._save(CacheDataType.NEWS, symbol, news_data, params, data_source, start_date, end_date)

    def load_news_data(self, cache_key: str) -> Optional[str]:
        return self._load(cache_key)

    def find_cached_news_data(
        self,
        symbol: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        data_source: Optional[str] = None,
        max_age_hours: Optional[float] = None,
    ) -> Optional[str]:
        exact_key = self._generate_cache_key(
            CacheDataType.NEWS.value, symbol,
            start_date=start_date,
            end_date=end_date,
            source=data_source,
        )
        return self._find(CacheDataType.NEWS, symbol, data_source, max_age_hours, exact_key)

    # === Fundamentals ===

    def save_fundamentals_data(self, symbol: str, fundamentals_data: str, data_source: str = "unknown") -> str:
        params = {
            "source": data_source,
            "market": market_type_for(symbol).value,
            "date": self._clock().strftime("%Y-%m-%d"),
        }
        return self._save(CacheDataType.FUNDAMENTALS, symbol, fundamentals_data, params, data_source)

    def load_fundamentals_data(self, cache_key: str) -> Optional[str]:
        return self._load(cache_key)

    def find_cached_fundamentals_data(
        self,
        symbol: str,
        data_source: Optional[str] = None,
        max_age_hours: Optional[float] = None,
    ) -> Optional[str]:
        return self._find(CacheDataType.FUNDAMENTALS, symbol, data_source, max_age_hours)

    # === Maintenance ===

    def clear_old_cache(self, max_age_days: int = 7) -> int:
        """Delete payload and sidecar of every entry older than the cutoff. Returns the count removed."""
        cutoff = self._clock() - timedelta(days=max_age_days)
        removed = 0

        for path in list(self.metadata_dir.glob("*_meta.json")):
            cache_key = path.name[: -len("_meta.json")]
            metadata = self._load_metadata(cache_key)
            if metadata is None:
                continue
            try:
                expired = metadata.cached_at_dt < cutoff
            except ValueError:
                continue
            if not expired:
                continue

            Path(metadata.file_path).unlink(missing_ok=True)
            path.unlink(missing_ok=True)
            removed += 1

        cache_log.info(f"Cleared {removed} cache entries older than {max_age_days} days")
        return removed

    def get_cache_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "total_files": 0,
            "stock_data_count": 0,
            "news_count": 0,
            "fundamentals_count": 0,
            "total_size_mb": 0.0,
            "skipped_count": 0,
        }
        counters = {
            CacheDataType.STOCK_DATA.value: "stock_data_count",
            CacheDataType.NEWS.value: "news_count",
            CacheDataType.FUNDAMENTALS.value: "fundamentals_count",
        }

        for _, metadata in self._iter_metadata():
            if metadata.data_type in counters:
                stats[counters[metadata.data_type]] += 1
            path = Path(metadata.file_path)
            if path.exists():
                stats["total_size_mb"] += path.stat().st_size / (1024 * 1024)
            else:
                stats["skipped_count"] += 1
            stats["total_files"] += 1

        stats["total_size_mb"] = round(stats["total_size_mb"], 2)
        return stats

    def get_content_length_config_status(self) -> Dict[str, Any]:
        long_providers: List[str] = [p for p in self.available_providers if p in self.long_text_providers]
        return {
            "enabled": self.enable_length_check,
            "max_content_length": self.max_content_length,
            "max_content_length_formatted": f"{self.max_content_length:,} chars",
            "long_text_providers": list(self.long_text_providers),
            "available_providers": list(self.available_providers),
            "available_long_providers": long_providers,
            "has_long_text_support": bool(long_providers),
            "will_skip_long_content": self.enable_length_check and not long_providers,
        }
