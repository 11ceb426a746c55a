from __future__ import annotations

import logging
import random
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from licensing.baseline import BaselineMonitor, ComponentSource, FileComponentSource
from licensing.client import LicenseApiClient
from licensing.config import LicensingSettings
from licensing.gate import FeatureGate
from licensing.models import ActivationResult, DegradationInfo, FeatureLevel
from licensing.notices import Notice, build_notices, purchase_url, resend_url
from licensing.primary import PrimaryValidator
from licensing.scheduler import TaskScheduler
from licensing.secondary import SecondaryValidator
from licensing.storage import KeyValueStore, build_store
from licensing.telemetry import TelemetryReporter

logger = logging.getLogger(__name__)

REVALIDATE_TASK = "license.daily_revalidate"
SECONDARY_CHECK_TASK = "license.daily_runtime_check"
DEFERRED_REVALIDATE_TASK = "license.revalidate"
REVALIDATE_INTERVAL = timedelta(days=1)

INSTALL_SECRET_KEY = "install_secret"


class LicensingEngine:
    """
    Facade wiring the validators, gate, telemetry and scheduler together.

    Every collaborator can be injected; anything omitted is built from
    settings. Host applications call on_request() once per request so the
    gate re-evaluates and request-path sampling runs.
    """

    def __init__(
        self,
        settings: Optional[LicensingSettings] = None,
        *,
        store: Optional[KeyValueStore] = None,
        client: Optional[LicenseApiClient] = None,
        secondary_client: Optional[LicenseApiClient] = None,
        component_source: Optional[ComponentSource] = None,
        scheduler: Optional[TaskScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
        telemetry_sender: Optional[Callable[[Dict[str, Any]], Any]] = None,
        event_sink: Optional[Callable[[str, dict], None]] = None,
    ) -> None:
        self.settings = settings or LicensingSettings.from_env()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rng = rng or random.Random()

        self.store = store if store is not None else build_store(self.settings)
        if self.settings.uses_default_secret:
            self.settings = self.settings.with_overrides(process_secret=self._installation_secret())

        self.client = client or LicenseApiClient(self.settings)
        self.secondary_client = secondary_client or LicenseApiClient(
            self.settings, timeout=self.settings.secondary_timeout_seconds
        )
        self.scheduler = scheduler or TaskScheduler(clock=self._clock)
        self.baseline = BaselineMonitor(
            self.store,
            component_source or FileComponentSource(self.settings.component_root),
            self.settings.critical_components,
        )

        self.primary = PrimaryValidator(
            self.store, self.client, self.settings, clock=self._clock, event_sink=event_sink
        )
        self.secondary = SecondaryValidator(
            self.store,
            self.secondary_client,
            self.settings,
            record_loader=self.primary.get_record,
            baseline=self.baseline,
            scheduler=self.scheduler,
            clock=self._clock,
        )
        self.gate = FeatureGate(self.primary, self.secondary, self.settings)
        self.telemetry = TelemetryReporter(
            self.store,
            self.settings,
            self.primary,
            self.secondary,
            sender=telemetry_sender,
            clock=self._clock,
        )

        if not self.scheduler.is_scheduled(REVALIDATE_TASK):
            self.scheduler.schedule_recurring(REVALIDATE_TASK, self.scheduled_revalidate, REVALIDATE_INTERVAL)
        if not self.scheduler.is_scheduled(SECONDARY_CHECK_TASK):
            self.scheduler.schedule_recurring(SECONDARY_CHECK_TASK, self.secondary.check, REVALIDATE_INTERVAL)

    def _installation_secret(self) -> str:
        logger.warning("LICENSE_PROCESS_SECRET is not set; signing caches with a per-installation secret")
        secret = self.store.get(INSTALL_SECRET_KEY)
        if not secret:
            secret = secrets.token_hex(32)
            self.store.set(INSTALL_SECRET_KEY, secret)
        return str(secret)

    def close(self) -> None:
        self.client.close()
        if self.secondary_client is not self.client:
            self.secondary_client.close()

    # -- license operations ----------------------------------------------

    def activate(self, license_key: str, contact: str) -> ActivationResult:
        result = self.primary.activate(license_key, contact)
        if result.success:
            self.secondary.check(force=True)
        self.gate.reset()
        return result

    def validate(self, force_refresh: bool = False) -> ActivationResult:
        result = self.primary.validate(force_refresh=force_refresh)
        self.gate.reset()
        return result

    def revalidate(self) -> ActivationResult:
        result = self.primary.revalidate()
        self.gate.reset()
        return result

    def deactivate(self) -> bool:
        deactivated = self.primary.deactivate()
        self.gate.reset()
        return deactivated

    def scheduled_revalidate(self) -> Optional[ActivationResult]:
        """Daily job: revalidate a configured license whose cache has lapsed."""
        if not self.primary.get_record().is_configured:
            return None
        if not self.primary.needs_revalidation():
            return None
        logger.info("Running scheduled license revalidation")
        return self.revalidate()

    # -- status ------------------------------------------------------------

    def is_premium(self) -> bool:
        return self.primary.is_premium()

    def is_in_grace(self) -> bool:
        return self.primary.is_in_grace()

    def grace_days_left(self) -> Optional[int]:
        return self.primary.grace_days_left()

    def premium_status(self) -> Dict[str, Any]:
        return self.primary.premium_status()

    def purchase_url(self, campaign: str = "plugin") -> str:
        return purchase_url(self.settings, campaign)

    def resend_url(self) -> str:
        return resend_url(self.settings, self.primary.get_record().contact)

    # -- gating ------------------------------------------------------------

    def get_level(self) -> FeatureLevel:
        return self.gate.get_level()

    def has_feature(self, name: str) -> bool:
        return self.gate.has_feature(name)

    def mark_feature_used(self, name: str) -> None:
        self.gate.mark_feature_used(name)

    def get_degradation_info(self) -> DegradationInfo:
        return self.gate.get_degradation_info()

    def notices(self) -> List[Notice]:
        record = self.primary.get_record()
        return build_notices(
            self.settings,
            status=record.status,
            in_grace=self.primary.is_in_grace() and self.primary.is_premium(),
            grace_days_left=self.primary.grace_days_left(),
            offline_mode=record.offline_mode,
        )

    # -- hooks ---------------------------------------------------------------

    def on_request(self) -> None:
        """Start of an application request: fresh gate decision plus sampled checks."""
        self.gate.reset()
        try:
            self.secondary.maybe_check(self._rng)
            self.telemetry.maybe_send_heartbeat(self._rng)
        except Exception:
            logger.exception("Request-path license check failed")
        self.scheduler.run_due()

    def _queue_revalidation(self) -> bool:
        if not self.primary.get_record().is_configured:
            return False
        if not self.primary.needs_revalidation():
            return False
        return self.scheduler.schedule_once(DEFERRED_REVALIDATE_TASK, self.revalidate)

    def on_admin_login(self) -> None:
        """Queue a primary revalidation when the cached result has lapsed."""
        self._queue_revalidation()

    def on_settings_updated(self) -> None:
        self.gate.reset()
        self._queue_revalidation()
