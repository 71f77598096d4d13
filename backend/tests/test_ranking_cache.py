"""Tests for the Redis ranking cache against a mocked client."""

import json
from unittest.mock import MagicMock, patch

import pytest
import redis

from assessment.config import settings
from assessment.services import ranking_cache


@pytest.fixture
def fake_redis(monkeypatch):
    monkeypatch.setattr(settings, "RANKING_CACHE_ENABLED", True)
    client = MagicMock()
    with patch.object(ranking_cache, "_get_redis", return_value=client):
        yield client


class TestGeneration:
    def test_missing_counter_is_generation_zero(self, fake_redis):
        fake_redis.get.return_value = None
        assert ranking_cache.current_generation() == "0"

    def test_disabled_cache_has_no_generation(self, monkeypatch):
        monkeypatch.setattr(settings, "RANKING_CACHE_ENABLED", False)
        assert ranking_cache.current_generation() is None

    def test_invalidate_bumps_counter(self, fake_redis):
        ranking_cache.invalidate()
        fake_redis.incr.assert_called_once_with("ranking_cache:generation")

    def test_redis_down_fails_open(self, fake_redis):
        fake_redis.get.side_effect = redis.ConnectionError("down")
        fake_redis.incr.side_effect = redis.ConnectionError("down")
        assert ranking_cache.current_generation() is None
        assert ranking_cache.cache_get("all", "3") is None
        ranking_cache.invalidate()


class TestEntries:
    def test_keys_depend_on_scope_and_generation(self):
        assert ranking_cache._make_key("all", "1") == ranking_cache._make_key("all", "1")
        assert ranking_cache._make_key("all", "1") != ranking_cache._make_key("all", "2")
        assert ranking_cache._make_key("all", "1") != ranking_cache._make_key("quiz:x", "1")

    def test_set_uses_ttl_and_json(self, fake_redis):
        ranking_cache.cache_set("all", "4", [{"rank": 1}])
        key, ttl, raw = fake_redis.setex.call_args.args
        assert key == ranking_cache._make_key("all", "4")
        assert ttl == settings.RANKING_CACHE_TTL_SECONDS
        assert json.loads(raw) == [{"rank": 1}]

    def test_get_hit_and_miss(self, fake_redis):
        fake_redis.get.return_value = json.dumps([{"rank": 1}])
        assert ranking_cache.cache_get("all", "4") == [{"rank": 1}]
        fake_redis.get.return_value = None
        assert ranking_cache.cache_get("all", "4") is None


class TestAggregatorUsesCache:
    def test_computed_rows_stored_under_generation_read_first(self, db, fake_redis):
        from assessment.services.ranking import RankingAggregator, RankingScope

        fake_redis.get.side_effect = ["7", None]  # generation, then cache miss
        assert RankingAggregator(db).aggregate(RankingScope()) == []
        key = fake_redis.setex.call_args.args[0]
        assert key == ranking_cache._make_key("all", "7")

    def test_cached_rows_short_circuit_the_query(self, db, fake_redis):
        from assessment.services.ranking import RankingAggregator, RankingScope

        row = {
            "user_id": "00000000-0000-0000-0000-000000000001",
            "rank": 1,
            "average_score": 88.0,
            "best_score": 90.0,
            "total_marks_obtained": 44.0,
            "total_attempts": 2,
            "pass_rate": 1.0,
            "accuracy": 0.9,
            "first_submitted_at": "2026-01-05T09:10:00Z",
        }
        fake_redis.get.side_effect = ["2", json.dumps([row])]
        (entry,) = RankingAggregator(db).aggregate(RankingScope())
        assert entry.average_score == 88.0
        fake_redis.setex.assert_not_called()
