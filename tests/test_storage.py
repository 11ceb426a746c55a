from __future__ import annotations

from unittest.mock import patch

import redis

from licensing.config import LicensingSettings
from licensing.storage import InMemoryStore, RedisStore, SqlOptionStore, build_store


class _FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value):
        self.store[key] = value

    def delete(self, key):
        self.store.pop(key, None)


class _BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("down")

    def set(self, key, value):
        raise redis.ConnectionError("down")

    def delete(self, key):
        raise redis.ConnectionError("down")


def test_in_memory_store_round_trips_json():
    store = InMemoryStore({"first_run": 1700000000})
    store.set("license", {"key": "N8C-ABCD-1234-EFGH-5678", "days_left": 3})

    assert store.get("license") == {"key": "N8C-ABCD-1234-EFGH-5678", "days_left": 3}
    assert store.get("first_run") == 1700000000
    assert store.get("missing", "fallback") == "fallback"
    assert store.keys() == ["first_run", "license"]

    store.delete("license")
    assert store.get("license") is None


def test_in_memory_store_returns_copies():
    store = InMemoryStore()
    store.set("runtime_cache", {"payload": {"valid": True}})

    value = store.get("runtime_cache")
    value["payload"]["valid"] = False

    assert store.get("runtime_cache") == {"payload": {"valid": True}}


def test_redis_store_prefixes_keys():
    fake = _FakeRedis()
    store = RedisStore("redis://localhost:6379/0")
    store._redis = fake

    store.set("license", {"status": "active"})

    assert "license:license" in fake.store
    assert store.get("license") == {"status": "active"}

    store.delete("license")
    assert store.get("license", "none") == "none"


def test_redis_store_non_json_value_reads_as_default():
    fake = _FakeRedis()
    fake.store["license:license"] = "{broken"
    store = RedisStore("redis://localhost:6379/0")
    store._redis = fake

    assert store.get("license") is None


def test_redis_store_degrades_on_errors():
    store = RedisStore("redis://localhost:6379/0")
    store._redis = _BrokenRedis()

    assert store.get("license", "default") == "default"
    store.set("license", {"status": "active"})
    store.delete("license")


def test_redis_connection_is_lazy():
    with patch("licensing.storage.redis.from_url") as from_url:
        store = RedisStore("redis://cache:6379/1")
        from_url.assert_not_called()

        from_url.return_value = _FakeRedis()
        store.get("license")

    from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)


def test_sql_store_round_trip():
    store = SqlOptionStore("sqlite:///:memory:")

    store.set("perf_baseline", {"gate.py": "abc"})
    assert store.get("perf_baseline") == {"gate.py": "abc"}

    store.set("perf_baseline", {"gate.py": "def"})
    assert store.get("perf_baseline") == {"gate.py": "def"}

    store.delete("perf_baseline")
    assert store.get("perf_baseline", {}) == {}


def test_sql_store_persists_across_instances(tmp_path):
    url = f"sqlite:///{tmp_path / 'license.db'}"
    SqlOptionStore(url).set("first_run", 1700000000)

    assert SqlOptionStore(url).get("first_run") == 1700000000


def test_build_store_prefers_redis_then_sql(tmp_path):
    assert isinstance(build_store(LicensingSettings(redis_url="redis://localhost:6379/0")), RedisStore)
    assert isinstance(
        build_store(LicensingSettings(database_url=f"sqlite:///{tmp_path / 'x.db'}")),
        SqlOptionStore,
    )
    assert isinstance(build_store(LicensingSettings()), InMemoryStore)
