"""
Runtime settings for the licensing engine.

All values come from environment variables with safe defaults so the engine
can be constructed in tests without any configuration.

Configuration (environment variables):
- LICENSE_API_ENDPOINT:        Remote authority URL
- LICENSE_TELEMETRY_ENDPOINT:  Heartbeat URL
- LICENSE_PRODUCT:             Product identifier sent to the authority (default: "wordpress")
- LICENSE_SITE_URL:            Installation URL sent with every request
- LICENSE_PROCESS_SECRET:      HMAC key for signed cache entries; when unset a per-installation
                               secret is generated and stored
- LICENSE_TIMEOUT_SECONDS:     Primary validation timeout (default: "15")
- LICENSE_SECONDARY_TIMEOUT_SECONDS: Secondary validation timeout (default: "10")
- LICENSE_TELEMETRY_DISABLED:  Opt out of heartbeats (default: "false")
- LICENSE_SAMPLE_RATE:         Request-path check probability, 0..1 (default: "0.05")
- LICENSE_DEV_MODE:            Bypass gating for local development (default: "false")
- LICENSE_CRITICAL_COMPONENTS: Comma separated component ids for the baseline monitor (default: none)
- LICENSE_COMPONENT_ROOT:      Directory the component ids are resolved against (default: cwd)
- REDIS_URL / DATABASE_URL:    Optional storage backends
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from licensing.errors import SettingsError

DEFAULT_API_ENDPOINT = "https://n8.chat/api/license/validate"
DEFAULT_TELEMETRY_ENDPOINT = "https://n8.chat/api/telemetry/heartbeat"
DEFAULT_PURCHASE_URL = "https://n8.chat"
DEFAULT_RESEND_URL = "https://n8.chat/resend-license"
DEFAULT_PRODUCT = "wordpress"
DEFAULT_PROCESS_SECRET = "n8n_chat_default"

DEFAULT_CRITICAL_COMPONENTS: Tuple[str, ...] = ()


def _get_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise SettingsError(f"{name} must be a number", setting=name) from exc


def _get_optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _default_component_root() -> str:
    return os.getcwd()


@dataclass(frozen=True)
class LicensingSettings:
    """Immutable engine configuration."""

    api_endpoint: str = DEFAULT_API_ENDPOINT
    telemetry_endpoint: str = DEFAULT_TELEMETRY_ENDPOINT
    purchase_url: str = DEFAULT_PURCHASE_URL
    resend_url: str = DEFAULT_RESEND_URL
    product: str = DEFAULT_PRODUCT
    product_version: str = "0.0.0"
    site_url: str = "http://localhost"
    process_secret: str = DEFAULT_PROCESS_SECRET
    timeout_seconds: float = 15.0
    secondary_timeout_seconds: float = 10.0
    telemetry_timeout_seconds: float = 5.0
    telemetry_disabled: bool = False
    sample_rate: float = 0.05
    dev_mode: bool = False
    critical_components: Tuple[str, ...] = field(default=DEFAULT_CRITICAL_COMPONENTS)
    component_root: str = field(default_factory=_default_component_root)
    redis_url: Optional[str] = None
    database_url: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.sample_rate <= 1.0:
            raise SettingsError("sample_rate must be between 0 and 1", setting="sample_rate")
        if self.timeout_seconds <= 0 or self.secondary_timeout_seconds <= 0:
            raise SettingsError("timeouts must be positive", setting="timeout_seconds")
        if not self.process_secret:
            raise SettingsError("process_secret is required", setting="process_secret")

    @classmethod
    def from_env(cls) -> "LicensingSettings":
        components = _get_optional("LICENSE_CRITICAL_COMPONENTS")
        return cls(
            api_endpoint=_get_str("LICENSE_API_ENDPOINT", DEFAULT_API_ENDPOINT),
            telemetry_endpoint=_get_str("LICENSE_TELEMETRY_ENDPOINT", DEFAULT_TELEMETRY_ENDPOINT),
            purchase_url=_get_str("LICENSE_PURCHASE_URL", DEFAULT_PURCHASE_URL),
            resend_url=_get_str("LICENSE_RESEND_URL", DEFAULT_RESEND_URL),
            product=_get_str("LICENSE_PRODUCT", DEFAULT_PRODUCT),
            product_version=_get_str("LICENSE_PRODUCT_VERSION", "0.0.0"),
            site_url=_get_str("LICENSE_SITE_URL", "http://localhost"),
            process_secret=_get_str("LICENSE_PROCESS_SECRET", DEFAULT_PROCESS_SECRET),
            timeout_seconds=_get_float("LICENSE_TIMEOUT_SECONDS", 15.0),
            secondary_timeout_seconds=_get_float("LICENSE_SECONDARY_TIMEOUT_SECONDS", 10.0),
            telemetry_disabled=_get_bool("LICENSE_TELEMETRY_DISABLED", False),
            sample_rate=_get_float("LICENSE_SAMPLE_RATE", 0.05),
            dev_mode=_get_bool("LICENSE_DEV_MODE", False),
            critical_components=(
                tuple(c.strip() for c in components.split(",") if c.strip())
                if components
                else DEFAULT_CRITICAL_COMPONENTS
            ),
            component_root=_get_str("LICENSE_COMPONENT_ROOT", _default_component_root()),
            redis_url=_get_optional("REDIS_URL"),
            database_url=_get_optional("DATABASE_URL"),
        )

    @property
    def uses_default_secret(self) -> bool:
        return self.process_secret == DEFAULT_PROCESS_SECRET

    def with_overrides(self, **changes) -> "LicensingSettings":
        return replace(self, **changes)
