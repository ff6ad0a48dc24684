# tests/test_cache_manager.py
"""Tests for the file-backed stock data cache."""
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import hashlib
import json

from unittest.mock import patch

import pytest

from datasources.cache_manager import StockDataCache
from datasources.models import CacheDataType


class TestCacheKey:
    def test_key_is_independent_of_kwarg_order(self):
        a = StockDataCache._generate_cache_key("stock_data", "AAPL", start_date="2024-01-01", source="finnhub")
        b = StockDataCache._generate_cache_key("stock_data", "AAPL", source="finnhub", start_date="2024-01-01")
        assert a == b

    def test_changing_any_value_changes_key(self):
        base = StockDataCache._generate_cache_key("stock_data", "AAPL", start_date="2024-01-01", source="finnhub")
        assert base != StockDataCache._generate_cache_key("stock_data", "AAPL", start_date="2024-01-02", source="finnhub")
        assert base != StockDataCache._generate_cache_key("stock_data", "AAPL", start_date="2024-01-01", source="yfinance")
        assert base != StockDataCache._generate_cache_key("news", "AAPL", start_date="2024-01-01", source="finnhub")

    def test_key_format(self):
        key = StockDataCache._generate_cache_key("stock_data", "AAPL", b=2, a=1)
        expected = hashlib.md5("stock_data_AAPL_a_1_b_2".encode("utf-8")).hexdigest()[:12]
        assert key == f"AAPL_stock_data_{expected}"


class TestTTL:
    def test_us_stock_data_valid_just_before_two_hours(self, cache, clock):
        key = cache.save_stock_data("AAPL", "prices", "2024-01-01", "2024-01-15", "finnhub")
        clock.advance(hours=2, seconds=-1)
        assert cache.is_cache_valid(key, symbol="AAPL", data_type="stock_data")

    def test_entry_exactly_at_ttl_is_invalid(self, cache, clock):
        key = cache.save_stock_data("AAPL", "prices", "2024-01-01", "2024-01-15", "finnhub")
        clock.advance(hours=2)
        assert not cache.is_cache_valid(key, symbol="AAPL", data_type="stock_data")
        assert cache.find_cached_stock_data("AAPL", "2024-01-01", "2024-01-15", "finnhub") is None

    def test_china_stock_data_uses_one_hour(self, cache, clock):
        key = cache.save_stock_data("600519", "prices", "2024-01-01", "2024-01-15", "yfinance")
        clock.advance(minutes=59)
        assert cache.is_cache_valid(key)
        clock.advance(minutes=1)
        assert not cache.is_cache_valid(key)

    def test_explicit_max_age_overrides_table(self, cache, clock):
        key = cache.save_stock_data("AAPL", "prices", "2024-01-01", "2024-01-15", "finnhub")
        clock.advance(hours=5)
        assert cache.is_cache_valid(key, max_age_hours=6)

    def test_unconfigured_pair_defaults_to_24_hours(self, cache):
        assert cache.ttl_hours("nowhere", "stock_data") == 24

    def test_missing_key_is_a_miss(self, cache):
        assert not cache.is_cache_valid("AAPL_stock_data_000000000000")


class TestSaveAndFind:
    def test_example_round_trip(self, cache):
        data = "# AAPL\n- Last close: 185.92"
        key = cache.save_stock_data("AAPL", data, "2024-01-01", "2024-01-15", "finnhub")

        found = cache.find_cached_stock_data("AAPL", start_date="2024-01-01", end_date="2024-01-15", data_source="finnhub")

        assert found == key
        assert cache.load_stock_data(found) == data

    def test_sidecar_contents(self, cache):
        key = cache.save_stock_data("AAPL", "abc", "2024-01-01", "2024-01-15", "finnhub")
        meta_path = cache.metadata_dir / f"{key}_meta.json"
        meta = json.loads(meta_path.read_text(encoding="utf-8"))

        assert meta["symbol"] == "AAPL"
        assert meta["data_type"] == "stock_data"
        assert meta["market_type"] == "us"
        assert meta["data_source"] == "finnhub"
        assert meta["content_length"] == 3
        assert meta["file_path"].endswith(f"stocks{os.sep}{key}.txt")

    def test_partial_match_reuses_other_date_range(self, cache):
        key = cache.save_stock_data("AAPL", "prices", "2024-01-01", "2024-01-15", "finnhub")
        assert cache.find_cached_stock_data("AAPL", "2024-01-02", "2024-01-16", "finnhub") == key

    def test_partial_match_respects_source(self, cache):
        cache.save_stock_data("AAPL", "prices", "2024-01-01", "2024-01-15", "finnhub")
        assert cache.find_cached_stock_data("AAPL", "2024-01-02", "2024-01-16", "yfinance") is None
        assert cache.find_cached_stock_data("AAPL", "2024-01-02", "2024-01-16", None) is not None

    def test_partial_match_skips_expired_entries(self, cache, clock):
        cache.save_stock_data("AAPL", "old", "2024-01-01", "2024-01-15", "finnhub")
        clock.advance(hours=3)
        assert cache.find_cached_stock_data("AAPL", "2024-01-02", "2024-01-16", "finnhub") is None

    def test_news_round_trip(self, cache):
        key = cache.save_news_data("AAPL", "headlines", "2024-01-08", "2024-01-15", "finnhub")
        assert cache.find_cached_news_data("AAPL", "2024-01-08", "2024-01-15", "finnhub") == key
        assert cache.load_news_data(key) == "headlines"

    def test_fundamentals_found_by_scan(self, cache, clock):
        key = cache.save_fundamentals_data("AAPL", "P/E 28", "finnhub")
        assert cache.find_cached_fundamentals_data("AAPL", "finnhub") == key
        assert cache.load_fundamentals_data(key) == "P/E 28"
        clock.advance(hours=24)
        assert cache.find_cached_fundamentals_data("AAPL", "finnhub") is None

    def test_new_parameters_leave_old_file_on_disk(self, cache):
        first = cache.save_stock_data("AAPL", "v1", "2024-01-01", "2024-01-15", "finnhub")
        second = cache.save_stock_data("AAPL", "v2", "2024-01-01", "2024-01-16", "finnhub")
        assert first != second
        assert cache.load_stock_data(first) == "v1"
        assert cache.load_stock_data(second) == "v2"


class TestContentLengthSkip:
    def test_oversized_content_is_never_persisted(self, tmp_path, clock):
        cache = StockDataCache(str(tmp_path / "c"), enable_length_check=True, max_content_length=10, clock=clock)
        key = cache.save_stock_data("AAPL", "x" * 11, "2024-01-01", "2024-01-15", "finnhub")

        assert key.startswith("AAPL_stock_data_")
        assert cache.load_stock_data(key) is None
        assert cache.find_cached_stock_data("AAPL", "2024-01-01", "2024-01-15", "finnhub") is None
        assert list(cache.metadata_dir.iterdir()) == []

    def test_skipped_key_differs_from_stored_key(self, tmp_path, clock):
        checking = StockDataCache(str(tmp_path / "a"), enable_length_check=True, max_content_length=10, clock=clock)
        plain = StockDataCache(str(tmp_path / "b"), clock=clock)
        args = ("AAPL", "x" * 11, "2024-01-01", "2024-01-15", "finnhub")
        assert checking.save_stock_data(*args) != plain.save_stock_data(*args)

    def test_long_text_provider_allows_caching(self, tmp_path, clock):
        cache = StockDataCache(
            str(tmp_path / "c"),
            enable_length_check=True,
            max_content_length=10,
            available_providers=["openai"],
            clock=clock,
        )
        key = cache.save_news_data("AAPL", "y" * 50, "2024-01-08", "2024-01-15", "finnhub")
        assert cache.load_news_data(key) == "y" * 50

    def test_disabled_check_caches_anything(self, cache):
        key = cache.save_stock_data("AAPL", "z" * 100000, "2024-01-01", "2024-01-15", "finnhub")
        assert cache.load_stock_data(key) is not None

    def test_config_status(self, tmp_path, clock):
        cache = StockDataCache(str(tmp_path / "c"), enable_length_check=True, max_content_length=500, clock=clock)
        status = cache.get_content_length_config_status()
        assert status["enabled"] is True
        assert status["max_content_length"] == 500
        assert status["has_long_text_support"] is False
        assert status["will_skip_long_content"] is True


class TestMaintenance:
    def test_clear_old_cache_removes_data_and_sidecar(self, cache, clock):
        old_key = cache.save_stock_data("AAPL", "old", "2024-01-01", "2024-01-15", "finnhub")
        old_meta = cache._load_metadata(old_key)
        clock.advance(days=8)
        new_key = cache.save_stock_data("MSFT", "new", "2024-01-01", "2024-01-15", "finnhub")

        assert cache.clear_old_cache(7) == 1
        assert not os.path.exists(old_meta.file_path)
        assert not (cache.metadata_dir / f"{old_key}_meta.json").exists()
        assert cache.load_stock_data(new_key) == "new"

    def test_cleanup_ignores_ttl_validity(self, cache, clock):
        cache.save_stock_data("AAPL", "a", "2024-01-01", "2024-01-15", "finnhub")
        clock.advance(hours=3)
        assert cache.clear_old_cache(7) == 0

    def test_stats(self, cache):
        cache.save_stock_data("AAPL", "a", "2024-01-01", "2024-01-15", "finnhub")
        cache.save_news_data("AAPL", "b", "2024-01-08", "2024-01-15", "finnhub")
        cache.save_fundamentals_data("AAPL", "c", "finnhub")

        stats = cache.get_cache_stats()
        assert stats["total_files"] == 3
        assert stats["stock_data_count"] == 1
        assert stats["news_count"] == 1
        assert stats["fundamentals_count"] == 1
        assert stats["skipped_count"] == 0


class TestCorruptMetadata:
    def test_corrupt_sidecar_is_treated_as_miss(self, cache):
        key = cache.save_stock_data("AAPL", "prices", "2024-01-01", "2024-01-15", "finnhub")
        (cache.metadata_dir / f"{key}_meta.json").write_text("{not json", encoding="utf-8")

        assert cache.is_cache_valid(key) is False
        assert cache.load_stock_data(key) is None
        assert cache.find_cached_stock_data("AAPL", "2024-01-01", "2024-01-15", "finnhub") is None
        assert cache.get_cache_stats()["total_files"] == 0

    def test_missing_payload_file_is_a_miss(self, cache):
        key = cache.save_stock_data("AAPL", "prices", "2024-01-01", "2024-01-15", "finnhub")
        os.remove(cache._load_metadata(key).file_path)
        assert cache.load_stock_data(key) is None


class TestWriteFailure:
    def test_sidecar_failure_removes_payload(self, cache):
        with patch.object(cache, "_save_metadata", side_effect=OSError("read-only")):
            key = cache.save_news_data("AAPL", "headlines", "2024-01-08", "2024-01-15", "finnhub")

        assert not cache._get_cache_path(CacheDataType.NEWS, key).exists()
        assert cache.is_cache_valid(key) is False
        assert cache.find_cached_news_data("AAPL", "2024-01-08", "2024-01-15", "finnhub") is None

    def test_unwritable_payload_path_is_a_miss(self, cache):
        key = cache.save_stock_data("BRK/B", "prices", "2024-01-01", "2024-01-15", "finnhub")

        assert key.startswith("BRK/B_stock_data_")
        assert cache.load_stock_data(key) is None
        assert cache.get_cache_stats()["total_files"] == 0
