"""
Unit tests for the Redis store, using a mocked redis client.
"""

from unittest.mock import MagicMock

import pytest
import redis

from wallet_gate.database import RedisStore, check_store_health, create_redis_client, init_store
from wallet_gate.errors import UpstreamUnavailable
from wallet_gate.storage import MemoryStore


@pytest.fixture
def client():
    return MagicMock(spec=redis.Redis)


@pytest.fixture
def redis_store(client):
    return RedisStore(client)


@pytest.fixture
def pipe(client):
    pipe = MagicMock()
    client.pipeline.return_value.__enter__.return_value = pipe
    return pipe


class TestKeyLayout:
    def test_set_challenge_uses_salt_key_with_ttl(self, redis_store, client):
        redis_store.set_challenge("42", "salt-a", 300)

        client.set.assert_called_once_with("salt:42", "salt-a", ex=300)

    def test_role_rules_live_in_guild_hash(self, redis_store, client):
        client.hgetall.return_value = {"r1": "{}"}

        redis_store.put_role_rule("7", "r1", "{}")

        client.hset.assert_called_once_with("guild:7", "r1", "{}")
        assert redis_store.get_role_rules("7") == {"r1": "{}"}
        client.hgetall.assert_called_with("guild:7")

    def test_bindings_live_in_user_hash(self, redis_store, client):
        redis_store.add_binding("42", "0xAbc", "0xsig")

        client.hset.assert_called_once_with("user:42", "0xAbc", "0xsig")

    def test_reply_routes(self, redis_store, client):
        redis_store.put_reply_route("tok", "{}", 900)
        redis_store.delete_reply_route("tok")

        client.set.assert_called_once_with("reply:tok", "{}", ex=900)
        client.delete.assert_called_once_with("reply:tok")


class TestConsumeChallenge:
    def test_deletes_when_salt_matches(self, redis_store, pipe):
        pipe.get.return_value = "salt-a"
        pipe.execute.return_value = [1]

        assert redis_store.consume_challenge("42", "salt-a") is True
        pipe.watch.assert_called_once_with("salt:42")
        pipe.multi.assert_called_once()
        pipe.delete.assert_called_once_with("salt:42")

    def test_keeps_key_when_salt_differs(self, redis_store, pipe):
        pipe.get.return_value = "salt-b"

        assert redis_store.consume_challenge("42", "salt-a") is False
        pipe.delete.assert_not_called()
        pipe.unwatch.assert_called_once()

    def test_lost_race_returns_false(self, redis_store, pipe):
        pipe.get.return_value = "salt-a"
        pipe.execute.side_effect = redis.WatchError()

        assert redis_store.consume_challenge("42", "salt-a") is False


class TestErrorTranslation:
    def test_redis_errors_become_upstream_unavailable(self, redis_store, client):
        client.get.side_effect = redis.ConnectionError("down")

        with pytest.raises(UpstreamUnavailable):
            redis_store.get_challenge("42")

    def test_health_reports_unhealthy(self, redis_store, client):
        client.ping.side_effect = redis.TimeoutError("slow")

        health = check_store_health(redis_store)

        assert health["status"] == "unhealthy"
        assert health["backend"] == "redis"


class TestInitStore:
    def test_no_redis_configured_uses_memory(self):
        store = init_store({"FLASK_ENV": "development"})

        assert isinstance(store, MemoryStore)

    def test_no_redis_in_production_raises(self):
        with pytest.raises(RuntimeError, match="Redis is required"):
            init_store({"FLASK_ENV": "production"})

    def test_create_client_from_url(self):
        client = create_redis_client({"REDIS_URL": "redis://localhost:6390/2"})

        assert isinstance(client, redis.Redis)
        assert client.connection_pool.connection_kwargs["db"] == 2
        assert client.connection_pool.connection_kwargs["decode_responses"] is True

    def test_create_client_none_without_config(self):
        assert create_redis_client({}) is None
