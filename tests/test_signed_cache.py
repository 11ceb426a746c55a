from __future__ import annotations

import pytest

from licensing.errors import TamperedCacheError
from licensing.signed_cache import SignedCache


def test_written_entry_round_trips_with_valid_signature(store, clock):
    cache = SignedCache(store, "license_cache", "secret", clock=clock)
    cache.write({"valid": True, "status": "active"}, ttl_seconds=60)

    entry = cache.load()

    assert entry is not None
    assert entry.payload == {"valid": True, "status": "active"}
    assert entry.written_at == int(clock().timestamp())
    assert entry.expires_at == entry.written_at + 60


def test_missing_entry_reads_as_none(store, clock):
    cache = SignedCache(store, "license_cache", "secret", clock=clock)
    assert cache.load() is None
    assert cache.read() is None
    assert cache.exists() is False


def test_flipped_payload_value_fails_verification(store, clock):
    cache = SignedCache(store, "runtime_cache", "secret", clock=clock)
    cache.write({"valid": False, "status": "expired"})

    raw = store.get("runtime_cache")
    raw["payload"]["valid"] = True
    store.set("runtime_cache", raw)

    with pytest.raises(TamperedCacheError):
        cache.load()
    assert cache.read() is None


def test_flipped_signature_character_fails_verification(store, clock):
    cache = SignedCache(store, "runtime_cache", "secret", clock=clock)
    cache.write({"valid": True})

    raw = store.get("runtime_cache")
    sig = raw["signature"]
    raw["signature"] = ("0" if sig[0] != "0" else "1") + sig[1:]
    store.set("runtime_cache", raw)

    assert cache.read() is None


def test_extended_expiry_fails_verification(store, clock):
    cache = SignedCache(store, "license_cache", "secret", clock=clock)
    cache.write({"result": {"success": True}}, ttl_seconds=300)

    raw = store.get("license_cache")
    raw["expires_at"] += 86400
    store.set("license_cache", raw)

    assert cache.read() is None


def test_entry_signed_with_other_secret_is_rejected(store, clock):
    SignedCache(store, "license_cache", "secret-a", clock=clock).write({"valid": True})
    assert SignedCache(store, "license_cache", "secret-b", clock=clock).read() is None


def test_non_envelope_value_is_treated_as_tampered(store, clock):
    store.set("license_cache", "not-an-envelope")
    cache = SignedCache(store, "license_cache", "secret", clock=clock)

    with pytest.raises(TamperedCacheError):
        cache.load()


def test_read_fresh_honours_ttl(store, clock):
    cache = SignedCache(store, "license_cache", "secret", clock=clock)
    cache.write({"valid": True}, ttl_seconds=300)

    clock.advance(seconds=299)
    assert cache.read_fresh() is not None

    clock.advance(seconds=1)
    assert cache.read_fresh() is None
    assert cache.read() is not None


def test_clear_removes_entry(store, clock):
    cache = SignedCache(store, "license_cache", "secret", clock=clock)
    cache.write({"valid": True})
    cache.clear()
    assert cache.exists() is False


def test_empty_secret_rejected(store):
    with pytest.raises(ValueError):
        SignedCache(store, "license_cache", "")
