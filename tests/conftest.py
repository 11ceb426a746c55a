from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from licensing.baseline import CallableComponentSource
from licensing.config import LicensingSettings
from licensing.engine import LicensingEngine
from licensing.errors import RemoteAuthorityError
from licensing.models import RemoteResponse
from licensing.storage import InMemoryStore


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StubAuthority:
    """Stands in for LicenseApiClient; replies with a fixed body or raises."""

    def __init__(self, body: Optional[dict] = None, error: Optional[RemoteAuthorityError] = None):
        self.body = body if body is not None else {"valid": True, "status": "active"}
        self.error = error
        self.calls: List[tuple] = []

    def validate(self, license_key: str, contact: str) -> RemoteResponse:
        self.calls.append((license_key, contact))
        if self.error is not None:
            raise self.error
        return RemoteResponse.from_body(self.body)

    def close(self) -> None:
        pass


class NoSampling:
    """RNG stand-in that never lands inside a sample rate."""

    def random(self) -> float:
        return 0.999


class Components:
    """Mutable component contents for the baseline monitor."""

    def __init__(self):
        self.files: Dict[str, bytes] = {
            "primary.py": b"primary v1",
            "secondary.py": b"secondary v1",
            "gate.py": b"gate v1",
        }

    def source(self) -> CallableComponentSource:
        return CallableComponentSource(self.files.get)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def settings():
    return LicensingSettings(
        site_url="https://shop.example.com",
        product_version="2.1.0",
        critical_components=("primary.py", "secondary.py", "gate.py"),
    )


@pytest.fixture
def authority():
    return StubAuthority()


@pytest.fixture
def secondary_authority():
    return StubAuthority()


@pytest.fixture
def components():
    return Components()


@pytest.fixture
def sent_heartbeats():
    return []


@pytest.fixture
def make_engine(settings, store, clock, authority, components, sent_heartbeats):
    def _make(**overrides) -> LicensingEngine:
        engine_settings = overrides.pop("settings", settings)
        kwargs = dict(
            store=store,
            client=authority,
            secondary_client=authority,
            component_source=components.source(),
            clock=clock,
            telemetry_sender=sent_heartbeats.append,
            rng=NoSampling(),
        )
        kwargs.update(overrides)
        return LicensingEngine(engine_settings, **kwargs)

    return _make
