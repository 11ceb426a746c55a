"""
Primary validator: owns the entitlement record and the user-facing
activate / validate / deactivate flow.

FLOW (activate):
1. Normalise and format-check key and contact locally (no network on failure)
2. Drop the cached result and call the authority
3. Network failure with a premium record -> offline continuation
4. Persist the authority verdict and cache it with a response-dependent TTL

Cache TTL policy:
- error responses:            5 minutes
- invalid / non-premium:      1 hour
- premium with grace warning: 1 hour (grace is time-sensitive)
- premium, clean:             12 hours
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from licensing.client import LicenseApiClient
from licensing.config import LicensingSettings
from licensing.errors import (
    AuthorityConnectionError,
    AuthorityRateLimitedError,
    ErrorCode,
    RemoteAuthorityError,
)
from licensing.models import (
    PREMIUM_STATUSES,
    ActivationResult,
    EntitlementRecord,
    LicenseStatus,
    RemoteResponse,
    days_until,
    format_timestamp,
)
from licensing.notices import status_message
from licensing.signed_cache import SignedCache
from licensing.storage import KeyValueStore

logger = logging.getLogger(__name__)

RECORD_KEY = "license"
CACHE_KEY = "license_cache"

CACHE_TTL_VALID = 12 * 3600
CACHE_TTL_GRACE = 3600
CACHE_TTL_INVALID = 3600
CACHE_TTL_ERROR = 5 * 60

# N8C-XXXX-XXXX-XXXX-XXXX (4 groups of 4 alphanumeric chars)
LICENSE_KEY_PATTERN = re.compile(r"^N8C-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")
CONTACT_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DEFAULT_GRACE_DAYS = 15


def format_key(license_key: str) -> str:
    return (license_key or "").strip().upper()


def is_valid_key_format(license_key: str) -> bool:
    return bool(LICENSE_KEY_PATTERN.match(format_key(license_key)))


def is_valid_contact(contact: str) -> bool:
    return bool(CONTACT_PATTERN.match((contact or "").strip()))


def mask_key(license_key: str) -> str:
    """N8C-XXXX-****-****-XXXX for full keys, all asterisks otherwise."""
    if not license_key:
        return ""
    key = format_key(license_key)
    if len(key) >= 23:
        return f"{key[:8]}-****-****-{key[-4:]}"
    return "*" * len(key)


def cache_ttl_for(result: ActivationResult, response: Optional[RemoteResponse] = None) -> int:
    if result.error_code is not None:
        return CACHE_TTL_ERROR
    if response is None or not response.valid:
        return CACHE_TTL_INVALID
    if response.in_grace:
        return CACHE_TTL_GRACE
    return CACHE_TTL_VALID


class PrimaryValidator:
    """
    User-facing license manager.

    All collaborators are injected: storage, authority client, clock and an
    optional event sink receiving ("license.activated" | "license.grace" |
    "license.expired", payload) signals.
    """

    def __init__(
        self,
        store: KeyValueStore,
        client: LicenseApiClient,
        settings: LicensingSettings,
        clock: Optional[Callable[[], datetime]] = None,
        event_sink: Optional[Callable[[str, dict], None]] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._event_sink = event_sink or (lambda event, payload: None)
        self.cache = SignedCache(store, CACHE_KEY, settings.process_secret, clock=self._clock)

    # -- record persistence ----------------------------------------------

    def get_record(self) -> EntitlementRecord:
        return EntitlementRecord.from_dict(self.store.get(RECORD_KEY))

    def _save_record(self, **changes: Any) -> EntitlementRecord:
        record = self.get_record()
        for name, value in changes.items():
            setattr(record, name, value)
        self.store.set(RECORD_KEY, record.to_dict())
        return record

    def _cache_result(self, result: ActivationResult, response: Optional[RemoteResponse] = None) -> None:
        self.cache.write({"result": result.to_dict()}, ttl_seconds=cache_ttl_for(result, response))

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            self._event_sink(event, payload)
        except Exception:
            logger.exception("License event sink failed", extra={"event": event})

    # -- operations --------------------------------------------------------

    def activate(self, license_key: str, contact: str) -> ActivationResult:
        license_key = format_key(license_key)
        contact = (contact or "").strip().lower()

        if not is_valid_key_format(license_key):
            return ActivationResult(
                success=False,
                status=LicenseStatus.INVALID.value,
                message="Invalid license key format. Expected: N8C-XXXX-XXXX-XXXX-XXXX",
                error_code=ErrorCode.INVALID.value,
            )

        if not is_valid_contact(contact):
            return ActivationResult(
                success=False,
                status=LicenseStatus.INVALID.value,
                message="A valid email address is required.",
                error_code=ErrorCode.INVALID.value,
            )

        self.cache.clear()

        try:
            response = self.client.validate(license_key, contact)
        except AuthorityConnectionError as e:
            return self._handle_connection_error(e)
        except AuthorityRateLimitedError:
            result = ActivationResult(
                success=False,
                status=LicenseStatus.ERROR.value,
                message="Too many requests. Please try again in a few minutes.",
                error_code=ErrorCode.RATE_LIMITED.value,
                http_status=429,
            )
            self._cache_result(result)
            return result
        except RemoteAuthorityError as e:
            result = ActivationResult(
                success=False,
                status=LicenseStatus.ERROR.value,
                message="License server error. Please try again later.",
                error_code=ErrorCode.SERVER_ERROR.value,
                http_status=e.http_status,
            )
            self._cache_result(result)
            return result

        if response.valid:
            result = self._apply_valid_response(license_key, contact, response)
        else:
            result = self._apply_invalid_response(license_key, contact, response)
        self._cache_result(result, response)
        return result

    def _handle_connection_error(self, error: AuthorityConnectionError) -> ActivationResult:
        existing = self.get_record()
        if existing.status in PREMIUM_STATUSES:
            self._save_record(last_error=error.message, offline_mode=True)
            logger.info("License authority unreachable; continuing with cached license", extra={
                "license_key": mask_key(existing.key),
                "status": existing.status,
            })
            result = ActivationResult(
                success=True,
                status=LicenseStatus.OFFLINE.value,
                message="Could not connect to license server. Using cached license.",
            )
        else:
            result = ActivationResult(
                success=False,
                status=LicenseStatus.ERROR.value,
                message=f"Could not connect to license server. {error.message}",
                error_code=ErrorCode.CONNECTION_ERROR.value,
            )
        # offline continuation is retried as soon as an error would be
        self.cache.write({"result": result.to_dict()}, ttl_seconds=CACHE_TTL_ERROR)
        return result

    def _apply_valid_response(self, license_key: str, contact: str, response: RemoteResponse) -> ActivationResult:
        now = self._clock()
        existing = self.get_record()
        activated_at = existing.activated_at if existing.key == license_key and existing.activated_at else now

        self._save_record(
            key=license_key,
            contact=contact,
            status=response.status,
            valid_until=response.valid_until,
            grace_until=response.grace_until,
            days_left=response.days_left,
            warning=response.warning,
            last_checked_at=now,
            activated_at=activated_at,
            last_error="",
            offline_mode=False,
        )

        self._emit("license.activated", {"license_key": mask_key(license_key), "status": response.status})
        if response.in_grace:
            self._emit("license.grace", {"license_key": mask_key(license_key), "days_left": response.days_left})

        if response.status == LicenseStatus.GRACE.value or response.in_grace:
            message = (
                "License activated. Payment attention required - "
                f"{response.days_left if response.days_left is not None else DEFAULT_GRACE_DAYS} days remaining."
            )
        else:
            message = "License activated successfully!"

        logger.info("License validated", extra={
            "license_key": mask_key(license_key),
            "status": response.status,
            "warning": response.warning,
        })

        return ActivationResult(
            success=True,
            status=response.status,
            message=message,
            days_left=response.days_left,
            valid_until=format_timestamp(response.valid_until) or None,
            grace_until=format_timestamp(response.grace_until) or None,
        )

    def _apply_invalid_response(self, license_key: str, contact: str, response: RemoteResponse) -> ActivationResult:
        status = response.status or LicenseStatus.INVALID.value
        self._save_record(
            key=license_key,
            contact=contact,
            status=status,
            last_checked_at=self._clock(),
            last_error=response.message,
            offline_mode=False,
        )

        if status == LicenseStatus.EXPIRED.value:
            self._emit("license.expired", {"license_key": mask_key(license_key)})

        logger.info("License rejected by authority", extra={
            "license_key": mask_key(license_key),
            "status": status,
        })

        return ActivationResult(
            success=False,
            status=status,
            message=status_message(status, response.message),
        )

    def validate(self, force_refresh: bool = False) -> ActivationResult:
        record = self.get_record()
        if not record.is_configured:
            return ActivationResult(
                success=False,
                status=LicenseStatus.NOT_CONFIGURED.value,
                message="No license key configured.",
                error_code=ErrorCode.NOT_CONFIGURED.value,
            )

        if not force_refresh:
            entry = self.cache.read_fresh()
            if entry is not None and isinstance(entry.payload.get("result"), dict):
                return ActivationResult.from_dict(entry.payload["result"])

        return self.activate(record.key, record.contact)

    def revalidate(self) -> ActivationResult:
        record = self.get_record()
        if not record.is_configured:
            return ActivationResult(
                success=False,
                status=LicenseStatus.INACTIVE.value,
                message="No license to validate.",
            )
        return self.validate(force_refresh=True)

    def needs_revalidation(self) -> bool:
        return self.cache.read_fresh() is None

    def deactivate(self) -> bool:
        """Local-only: clears key, status and expiry; keeps the contact."""
        self._save_record(
            key="",
            status=LicenseStatus.INACTIVE.value,
            valid_until=None,
            grace_until=None,
            days_left=None,
            warning="",
            last_checked_at=None,
            activated_at=None,
            offline_mode=False,
        )
        self.cache.clear()
        logger.info("License deactivated")
        return True

    def clear(self) -> bool:
        self.store.delete(RECORD_KEY)
        self.cache.clear()
        return True

    # -- status queries ------------------------------------------------------

    def is_premium(self) -> bool:
        record = self.get_record()
        if record.status not in PREMIUM_STATUSES:
            return False
        expiry = record.effective_expiry()
        if expiry is not None and expiry < self._clock():
            return False
        return True

    def is_in_grace(self) -> bool:
        record = self.get_record()
        return record.status == LicenseStatus.GRACE.value or record.warning == "grace"

    def grace_days_left(self) -> Optional[int]:
        record = self.get_record()
        if record.days_left:
            return int(record.days_left)
        if record.grace_until is not None:
            return days_until(record.grace_until, self._clock())
        return None

    def get_status(self) -> str:
        return self.get_record().status

    def premium_status(self) -> Dict[str, Any]:
        record = self.get_record()
        now = self._clock()
        in_grace = self.is_in_grace()

        grace_days_left = None
        if in_grace:
            if record.days_left:
                grace_days_left = int(record.days_left)
            elif record.grace_until is not None:
                grace_days_left = days_until(record.grace_until, now)

        return {
            "is_premium": self.is_premium(),
            "status": record.status,
            "email": record.contact,
            "license_key_masked": mask_key(record.key),
            "valid_until": format_timestamp(record.valid_until),
            "grace_until": format_timestamp(record.grace_until),
            "days_left": days_until(record.valid_until, now) if record.valid_until else None,
            "grace_days_left": grace_days_left,
            "warning": record.warning,
            "offline_mode": record.offline_mode,
            "last_checked": format_timestamp(record.last_checked_at),
        }
