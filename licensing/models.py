from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

SECONDS_PER_DAY = 86400


class LicenseStatus(str, Enum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    GRACE = "grace"
    EXPIRED = "expired"
    REVOKED = "revoked"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    ERROR = "error"
    NOT_CONFIGURED = "not_configured"
    # result-only values, never persisted as the record status
    OFFLINE = "offline"
    PRODUCT_MISMATCH = "product_mismatch"


PREMIUM_STATUSES = frozenset({LicenseStatus.ACTIVE.value, LicenseStatus.GRACE.value})


class FeatureLevel(str, Enum):
    FULL = "full"
    GRACE = "grace"
    LIMITED = "limited"
    BASIC = "basic"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else ""


def days_until(target: datetime, now: datetime) -> int:
    """Whole days remaining until target, rounded up and floored at zero."""
    return max(0, int(math.ceil((target - now).total_seconds() / SECONDS_PER_DAY)))


@dataclass
class EntitlementRecord:
    """Durable entitlement state for this installation."""

    key: str = ""
    contact: str = ""
    status: str = LicenseStatus.INACTIVE.value
    valid_until: Optional[datetime] = None
    grace_until: Optional[datetime] = None
    days_left: Optional[int] = None
    warning: str = ""
    last_checked_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    last_error: str = ""
    offline_mode: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.key) and bool(self.contact)

    def effective_expiry(self) -> Optional[datetime]:
        """Grace expiry wins over validity expiry when both are known."""
        return self.grace_until or self.valid_until

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "contact": self.contact,
            "status": self.status,
            "valid_until": format_timestamp(self.valid_until),
            "grace_until": format_timestamp(self.grace_until),
            "days_left": self.days_left,
            "warning": self.warning,
            "last_checked_at": format_timestamp(self.last_checked_at),
            "activated_at": format_timestamp(self.activated_at),
            "last_error": self.last_error,
            "offline_mode": self.offline_mode,
        }

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "EntitlementRecord":
        if not isinstance(raw, Mapping):
            return cls()
        days_left = raw.get("days_left")
        try:
            days_left = int(days_left) if days_left not in (None, "") else None
        except (TypeError, ValueError):
            days_left = None
        return cls(
            key=str(raw.get("key") or ""),
            contact=str(raw.get("contact") or ""),
            status=str(raw.get("status") or LicenseStatus.INACTIVE.value),
            valid_until=parse_timestamp(raw.get("valid_until")),
            grace_until=parse_timestamp(raw.get("grace_until")),
            days_left=days_left,
            warning=str(raw.get("warning") or ""),
            last_checked_at=parse_timestamp(raw.get("last_checked_at")),
            activated_at=parse_timestamp(raw.get("activated_at")),
            last_error=str(raw.get("last_error") or ""),
            offline_mode=bool(raw.get("offline_mode", False)),
        )


@dataclass(frozen=True)
class RemoteResponse:
    """Parsed body of a successful (HTTP 200) authority response."""

    valid: bool
    status: str
    valid_until: Optional[datetime] = None
    grace_until: Optional[datetime] = None
    days_left: Optional[int] = None
    warning: str = ""
    message: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def in_grace(self) -> bool:
        return self.warning == "grace"

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "RemoteResponse":
        valid = body.get("valid") is True
        default_status = LicenseStatus.ACTIVE.value if valid else LicenseStatus.INVALID.value
        days_left = body.get("days_left")
        try:
            days_left = int(days_left) if days_left is not None else None
        except (TypeError, ValueError):
            days_left = None
        return cls(
            valid=valid,
            status=str(body.get("status") or default_status),
            valid_until=parse_timestamp(body.get("valid_until")),
            grace_until=parse_timestamp(body.get("grace_until")),
            days_left=days_left,
            warning=str(body.get("warning") or ""),
            message=str(body.get("message") or ""),
            raw=dict(body),
        )


@dataclass(frozen=True)
class ActivationResult:
    """Outcome of activate/validate/revalidate. Never raised, always returned."""

    success: bool
    status: str
    message: str = ""
    days_left: Optional[int] = None
    valid_until: Optional[str] = None
    grace_until: Optional[str] = None
    error_code: Optional[str] = None
    http_status: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ActivationResult":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in raw.items() if k in known}
        return cls(
            success=bool(data.pop("success", False)),
            status=str(data.pop("status", LicenseStatus.ERROR.value)),
            **data,
        )


# ValidationResult has the same shape as ActivationResult
ValidationResult = ActivationResult


@dataclass(frozen=True)
class DegradationInfo:
    """Admin-facing summary of the current degradation state."""

    degraded: bool
    level: str
    days_since_init: int = 0
    message: str = ""
    days_until_limited: Optional[int] = None
    days_until_basic: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        if not self.degraded:
            return {"degraded": False, "level": self.level}
        return {k: v for k, v in asdict(self).items() if v is not None}
