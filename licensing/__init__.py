"""
Entitlement validation and feature degradation for a single installation.

This package provides:
- PrimaryValidator: activate / validate / deactivate against the license authority
- SecondaryValidator: independent signed-cache corroboration with tamper flagging
- FeatureGate: FULL / GRACE / LIMITED / BASIC levels and their capability sets
- TelemetryReporter: throttled, sampled, fire-and-forget heartbeat
- LicensingEngine: facade wiring everything from LicensingSettings

Degradation schedule (days since first premium use, unverified license):
FULL 0-6, GRACE 7-13, LIMITED 14-29, BASIC 30+
"""

from licensing.baseline import BaselineMonitor, CallableComponentSource, FileComponentSource
from licensing.client import LicenseApiClient
from licensing.config import LicensingSettings
from licensing.engine import LicensingEngine
from licensing.errors import (
    AuthorityConnectionError,
    AuthorityRateLimitedError,
    AuthorityServerError,
    ErrorCode,
    LicensingError,
    RemoteAuthorityError,
    SettingsError,
    TamperedCacheError,
)
from licensing.gate import FeatureGate, features_for_level, level_for_days
from licensing.models import (
    ActivationResult,
    DegradationInfo,
    EntitlementRecord,
    FeatureLevel,
    LicenseStatus,
    RemoteResponse,
    ValidationResult,
)
from licensing.notices import Notice, build_notices
from licensing.primary import PrimaryValidator, mask_key
from licensing.scheduler import TaskScheduler
from licensing.secondary import SecondaryValidator
from licensing.signed_cache import SignedCache, SignedCacheEntry
from licensing.storage import InMemoryStore, KeyValueStore, RedisStore, SqlOptionStore, build_store
from licensing.telemetry import BackgroundSender, TelemetryReporter

__all__ = [
    # Engine
    "LicensingEngine",
    "LicensingSettings",
    # Validators
    "PrimaryValidator",
    "SecondaryValidator",
    "LicenseApiClient",
    "mask_key",
    # Gate
    "FeatureGate",
    "features_for_level",
    "level_for_days",
    # Integrity
    "BaselineMonitor",
    "FileComponentSource",
    "CallableComponentSource",
    "SignedCache",
    "SignedCacheEntry",
    # Storage
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
    "SqlOptionStore",
    "build_store",
    # Scheduling / telemetry
    "TaskScheduler",
    "TelemetryReporter",
    "BackgroundSender",
    # Models
    "ActivationResult",
    "ValidationResult",
    "DegradationInfo",
    "EntitlementRecord",
    "FeatureLevel",
    "LicenseStatus",
    "RemoteResponse",
    "Notice",
    "build_notices",
    # Errors
    "ErrorCode",
    "LicensingError",
    "RemoteAuthorityError",
    "AuthorityConnectionError",
    "AuthorityRateLimitedError",
    "AuthorityServerError",
    "TamperedCacheError",
    "SettingsError",
]
