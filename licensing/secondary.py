"""
Secondary validator: an independently cached check against the license
authority, used only to corroborate the primary validator's premium verdict.

Its signed cache (runtime_cache) holds:
    valid, status, checked_at, grace, days_left, offline, tampered

The tampered flag is sticky: once a baseline mismatch is seen it is carried
into every later write and is never cleared automatically.

Bootstrap leniency: before any check has completed, the first call to
is_corroborated() returns True and queues an asynchronous check. Every later
call without a cache returns False.
"""

import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from licensing.baseline import BaselineMonitor
from licensing.client import LicenseApiClient
from licensing.config import LicensingSettings
from licensing.errors import RemoteAuthorityError, TamperedCacheError
from licensing.models import SECONDS_PER_DAY, EntitlementRecord, LicenseStatus
from licensing.scheduler import TaskScheduler
from licensing.signed_cache import SignedCache, SignedCacheEntry
from licensing.storage import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_KEY = "runtime_cache"
BOOTSTRAP_KEY = "runtime_bootstrap"
FEATURE_INIT_KEY = "feature_init"

MAX_AGE_VALID = 7 * SECONDS_PER_DAY
MAX_AGE_INVALID = 3600
ASYNC_CHECK_DELAY_SECONDS = 30
ASYNC_CHECK_TASK = "license.async_validate"


class SecondaryValidator:
    def __init__(
        self,
        store: KeyValueStore,
        client: LicenseApiClient,
        settings: LicensingSettings,
        record_loader: Callable[[], EntitlementRecord],
        baseline: BaselineMonitor,
        scheduler: Optional[TaskScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.settings = settings
        self._record_loader = record_loader
        self.baseline = baseline
        self.scheduler = scheduler
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.cache = SignedCache(store, CACHE_KEY, settings.process_secret, clock=self._clock)

    # -- cache helpers -------------------------------------------------------

    def _payload(self) -> Dict[str, Any]:
        entry = self.cache.read()
        return dict(entry.payload) if entry is not None else {}

    def _is_fresh(self, entry: Optional[SignedCacheEntry]) -> bool:
        if entry is None or not entry.payload.get("checked_at"):
            return False
        max_age = MAX_AGE_VALID if entry.payload.get("valid") else MAX_AGE_INVALID
        return entry.age_seconds(self._clock()) <= max_age

    def _write(self, payload: Dict[str, Any], previous: Optional[SignedCacheEntry]) -> None:
        if previous is not None and previous.payload.get("tampered"):
            payload["tampered"] = True
        payload.setdefault("tampered", False)
        self.cache.write(payload)

    # -- scheduled check -----------------------------------------------------

    def check(self, force: bool = False) -> Dict[str, Any]:
        """Revalidate against the authority unless the signed cache is still fresh."""
        previous = self.cache.read()
        if not force and self._is_fresh(previous):
            return dict(previous.payload)

        now = int(self._clock().timestamp())
        record = self._record_loader()
        if not record.is_configured:
            self._write({"valid": False, "status": LicenseStatus.NOT_CONFIGURED.value, "checked_at": now}, previous)
            return self._payload()

        try:
            response = self.client.validate(record.key, record.contact)
        except RemoteAuthorityError as e:
            logger.info("Secondary license check failed", extra={"error_code": e.error_code})
            if previous is not None and previous.payload.get("valid"):
                return dict(previous.payload)
            self._write({
                "valid": False,
                "status": LicenseStatus.ERROR.value,
                "checked_at": now,
                "offline": True,
            }, previous)
            return self._payload()

        self._write({
            "valid": response.valid,
            "status": response.status,
            "checked_at": now,
            "grace": response.in_grace,
            "days_left": response.days_left,
        }, previous)

        if not self.baseline.check_integrity():
            self.flag_tampered()

        return self._payload()

    def flag_tampered(self) -> None:
        payload = self._payload()
        payload["tampered"] = True
        self.cache.write(payload)

    def maybe_check(self, rng: Optional[random.Random] = None) -> bool:
        """Request-path sampling: run check() with the configured low probability."""
        if self.settings.sample_rate <= 0:
            return False
        roll = (rng or random).random()
        if roll >= self.settings.sample_rate:
            return False
        self.check()
        return True

    def _schedule_async_check(self) -> None:
        if self.scheduler is None:
            return
        self.scheduler.schedule_once(ASYNC_CHECK_TASK, self.check, delay_seconds=ASYNC_CHECK_DELAY_SECONDS)

    # -- corroboration ---------------------------------------------------------

    def is_corroborated(self) -> bool:
        if self.settings.dev_mode:
            return True

        try:
            entry = self.cache.load()
        except TamperedCacheError:
            logger.warning("Runtime cache failed verification", extra={"cache_key": CACHE_KEY})
            return False

        if entry is None:
            self._schedule_async_check()
            if self.store.get(BOOTSTRAP_KEY) is None:
                self.store.set(BOOTSTRAP_KEY, int(self._clock().timestamp()))
                logger.info("No runtime cache yet; allowing first evaluation")
                return True
            return False

        return bool(entry.payload.get("valid"))

    def status(self) -> str:
        return str(self._payload().get("status") or "unknown")

    def in_grace(self) -> bool:
        return bool(self._payload().get("grace"))

    def is_tampered(self) -> bool:
        return bool(self._payload().get("tampered"))

    # -- first premium use -----------------------------------------------------

    def track_feature_use(self) -> None:
        if not self.store.get(FEATURE_INIT_KEY):
            self.store.set(FEATURE_INIT_KEY, int(self._clock().timestamp()))

    def feature_init_at(self) -> Optional[int]:
        value = self.store.get(FEATURE_INIT_KEY)
        try:
            return int(value) if value else None
        except (TypeError, ValueError):
            return None

    def days_since_first_premium_use(self) -> Optional[int]:
        """Whole days since premium features were first used; None when never used."""
        init = self.feature_init_at()
        if init is None:
            return None
        elapsed = self._clock().timestamp() - init
        return max(0, int(elapsed // SECONDS_PER_DAY))

    def reset(self) -> None:
        self.cache.clear()
        self.store.delete(BOOTSTRAP_KEY)
        self.store.delete(FEATURE_INIT_KEY)
        self.baseline.reset()
