from __future__ import annotations

import random

import pytest

from licensing.baseline import BaselineMonitor
from licensing.errors import AuthorityConnectionError
from licensing.models import EntitlementRecord
from licensing.scheduler import TaskScheduler
from licensing.secondary import (
    ASYNC_CHECK_TASK,
    BOOTSTRAP_KEY,
    CACHE_KEY,
    MAX_AGE_INVALID,
    MAX_AGE_VALID,
    SecondaryValidator,
)

VALID_KEY = "N8C-ABCD-1234-EFGH-5678"
CONTACT = "owner@example.com"


@pytest.fixture
def record():
    return EntitlementRecord(key=VALID_KEY, contact=CONTACT, status="active")


@pytest.fixture
def scheduler(clock):
    return TaskScheduler(clock=clock)


@pytest.fixture
def secondary(store, authority, settings, components, scheduler, clock, record):
    baseline = BaselineMonitor(store, components.source(), settings.critical_components)
    return SecondaryValidator(
        store,
        authority,
        settings,
        record_loader=lambda: record,
        baseline=baseline,
        scheduler=scheduler,
        clock=clock,
    )


def test_check_writes_signed_result(secondary, store):
    payload = secondary.check()

    assert payload["valid"] is True
    assert payload["status"] == "active"
    assert payload["tampered"] is False
    assert set(store.get(CACHE_KEY)) == {"payload", "written_at", "expires_at", "signature"}
    assert secondary.status() == "active"


def test_fresh_valid_cache_skips_network(secondary, authority, clock):
    secondary.check()
    clock.advance(seconds=MAX_AGE_VALID - 1)
    secondary.check()

    assert len(authority.calls) == 1

    clock.advance(seconds=2)
    secondary.check()
    assert len(authority.calls) == 2


def test_invalid_result_goes_stale_after_an_hour(secondary, authority, clock):
    authority.body = {"valid": False, "status": "expired"}
    secondary.check()

    clock.advance(seconds=MAX_AGE_INVALID + 1)
    secondary.check()

    assert len(authority.calls) == 2


def test_force_bypasses_freshness(secondary, authority):
    secondary.check()
    secondary.check(force=True)

    assert len(authority.calls) == 2


def test_missing_identity_records_not_configured(secondary, authority, record):
    record.key = ""

    payload = secondary.check()

    assert payload["valid"] is False
    assert payload["status"] == "not_configured"
    assert authority.calls == []


def test_authority_failure_keeps_previous_valid_result(secondary, authority):
    secondary.check()
    authority.error = AuthorityConnectionError("down")

    payload = secondary.check(force=True)

    assert payload["valid"] is True


def test_authority_failure_without_previous_result_records_offline(secondary, authority):
    authority.error = AuthorityConnectionError("down")

    payload = secondary.check()

    assert payload["valid"] is False
    assert payload["offline"] is True
    assert secondary.is_corroborated() is False


def test_baseline_mismatch_sets_sticky_tamper_flag(secondary, components):
    secondary.check()
    assert secondary.is_tampered() is False

    components.files["primary.py"] = b"patched"
    secondary.check(force=True)
    assert secondary.is_tampered() is True

    # restoring the component does not clear the flag
    components.files["primary.py"] = b"primary v1"
    secondary.check(force=True)
    assert secondary.is_tampered() is True


def test_first_uncached_evaluation_is_lenient_once(secondary, scheduler, store):
    assert secondary.is_corroborated() is True
    assert store.get(BOOTSTRAP_KEY) is not None
    assert scheduler.pending() == [ASYNC_CHECK_TASK]

    assert secondary.is_corroborated() is False
    assert scheduler.pending() == [ASYNC_CHECK_TASK]


def test_scheduled_async_check_fills_cache(secondary, scheduler, clock, authority):
    secondary.is_corroborated()

    clock.advance(seconds=30)
    report = scheduler.run_due()

    assert report.executed == [ASYNC_CHECK_TASK]
    assert len(authority.calls) == 1
    assert secondary.is_corroborated() is True


def test_forged_cache_is_never_corroborated(secondary, store):
    secondary.check()
    raw = store.get(CACHE_KEY)
    raw["payload"]["tampered"] = False
    raw["payload"]["checked_at"] += 1
    store.set(CACHE_KEY, raw)

    assert secondary.is_corroborated() is False


def test_dev_mode_always_corroborates(store, authority, settings, components, clock, record):
    dev = settings.with_overrides(dev_mode=True)
    secondary = SecondaryValidator(
        store,
        authority,
        dev,
        record_loader=lambda: record,
        baseline=BaselineMonitor(store, components.source(), dev.critical_components),
        clock=clock,
    )

    assert secondary.is_corroborated() is True
    assert authority.calls == []


def test_sampled_check_uses_rate(secondary, authority):
    class Roll:
        def __init__(self, value):
            self.value = value

        def random(self):
            return self.value

    assert secondary.maybe_check(Roll(0.5)) is False
    assert authority.calls == []

    assert secondary.maybe_check(Roll(0.01)) is True
    assert len(authority.calls) == 1


def test_zero_sample_rate_never_checks(store, authority, settings, components, clock, record):
    secondary = SecondaryValidator(
        store,
        authority,
        settings.with_overrides(sample_rate=0.0),
        record_loader=lambda: record,
        baseline=BaselineMonitor(store, components.source(), settings.critical_components),
        clock=clock,
    )

    assert secondary.maybe_check(random.Random(1)) is False


def test_feature_use_tracking_is_idempotent(secondary, clock):
    assert secondary.days_since_first_premium_use() is None

    secondary.track_feature_use()
    first = secondary.feature_init_at()
    clock.advance(days=3, hours=5)
    secondary.track_feature_use()

    assert secondary.feature_init_at() == first
    assert secondary.days_since_first_premium_use() == 3


def test_reset_clears_everything(secondary, store):
    secondary.check()
    secondary.track_feature_use()
    secondary.is_corroborated()

    secondary.reset()

    assert store.get(CACHE_KEY) is None
    assert secondary.feature_init_at() is None
    assert store.get(BOOTSTRAP_KEY) is None
    assert secondary.baseline.snapshot() == {}
