from __future__ import annotations

import os

import pytest

from licensing.config import DEFAULT_CRITICAL_COMPONENTS, LicensingSettings
from licensing.errors import SettingsError


def test_defaults(monkeypatch, tmp_path):
    for name in (
        "LICENSE_API_ENDPOINT",
        "LICENSE_SAMPLE_RATE",
        "LICENSE_DEV_MODE",
        "LICENSE_CRITICAL_COMPONENTS",
        "LICENSE_COMPONENT_ROOT",
        "LICENSE_PROCESS_SECRET",
        "REDIS_URL",
        "DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    settings = LicensingSettings.from_env()

    assert settings.api_endpoint == "https://n8.chat/api/license/validate"
    assert settings.timeout_seconds == 15.0
    assert settings.secondary_timeout_seconds == 10.0
    assert settings.sample_rate == 0.05
    assert settings.dev_mode is False
    assert settings.critical_components == DEFAULT_CRITICAL_COMPONENTS == ()
    assert settings.component_root == os.getcwd()
    assert settings.uses_default_secret is True
    assert settings.redis_url is None


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("LICENSE_SITE_URL", "https://shop.example.com")
    monkeypatch.setenv("LICENSE_SAMPLE_RATE", "0.5")
    monkeypatch.setenv("LICENSE_DEV_MODE", "true")
    monkeypatch.setenv("LICENSE_TELEMETRY_DISABLED", "1")
    monkeypatch.setenv("LICENSE_CRITICAL_COMPONENTS", "a.py, b.py,")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")

    settings = LicensingSettings.from_env()

    assert settings.site_url == "https://shop.example.com"
    assert settings.sample_rate == 0.5
    assert settings.dev_mode is True
    assert settings.telemetry_disabled is True
    assert settings.critical_components == ("a.py", "b.py")
    assert settings.redis_url == "redis://cache:6379/0"


def test_non_numeric_value_raises(monkeypatch):
    monkeypatch.setenv("LICENSE_TIMEOUT_SECONDS", "fast")

    with pytest.raises(SettingsError) as exc:
        LicensingSettings.from_env()
    assert exc.value.setting == "LICENSE_TIMEOUT_SECONDS"


@pytest.mark.parametrize(
    "changes",
    [{"sample_rate": 1.5}, {"timeout_seconds": 0}, {"process_secret": ""}],
)
def test_invalid_settings_rejected(changes):
    with pytest.raises(SettingsError):
        LicensingSettings(**changes)


def test_with_overrides_returns_new_instance():
    base = LicensingSettings()
    changed = base.with_overrides(dev_mode=True)

    assert changed.dev_mode is True
    assert base.dev_mode is False
