"""
Best-effort usage heartbeat.

Throttled to once per day, then sampled on eligible requests. Payloads are
handed to a BackgroundSender whose daemon thread posts them; the caller never
waits and failures are dropped. Nothing here influences gating decisions.

Payload fields: site_hash (sha256 of the installation URL), license_status,
license_key (masked), product_version, days_installed, premium_used,
integrity ("ok" | "modified") and runtime.
"""

import hashlib
import logging
import platform
import random
import threading
from datetime import datetime, timezone
from queue import Empty, Full, Queue
from typing import Any, Callable, Dict, Optional

import httpx

from licensing.config import LicensingSettings
from licensing.models import SECONDS_PER_DAY
from licensing.primary import PrimaryValidator, mask_key
from licensing.secondary import SecondaryValidator
from licensing.storage import KeyValueStore

logger = logging.getLogger(__name__)

SYNC_KEY = "analytics_sync"
FIRST_RUN_KEY = "first_run"
OPT_OUT_KEY = "telemetry_opt_out"

SYNC_INTERVAL_SECONDS = SECONDS_PER_DAY


class BackgroundSender:
    """
    Fire-and-forget JSON poster.

    Payloads go onto a bounded queue drained by a daemon thread. A full queue
    drops the payload instead of blocking the caller.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
        max_queue_size: int = 100,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport
        self._queue: Queue = Queue(maxsize=max_queue_size)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_started(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._process_queue, name="license-telemetry", daemon=True)
            self._thread.start()

    def submit(self, payload: Dict[str, Any]) -> bool:
        try:
            self._queue.put_nowait(payload)
        except Full:
            logger.debug("Telemetry queue full; dropping heartbeat")
            return False
        self._ensure_started()
        return True

    def _process_queue(self) -> None:
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            while True:
                try:
                    payload = self._queue.get(timeout=30.0)
                except Empty:
                    return
                try:
                    client.post(self.endpoint, json=payload)
                except httpx.HTTPError as e:
                    logger.debug("Telemetry heartbeat failed", extra={"error": str(e)})
                finally:
                    self._queue.task_done()

    def flush(self, timeout: float = 5.0) -> None:
        """Block until queued payloads are processed (tests and shutdown only)."""
        done = threading.Event()

        def _wait() -> None:
            self._queue.join()
            done.set()

        threading.Thread(target=_wait, daemon=True).start()
        done.wait(timeout)


class TelemetryReporter:
    def __init__(
        self,
        store: KeyValueStore,
        settings: LicensingSettings,
        primary: PrimaryValidator,
        secondary: SecondaryValidator,
        sender: Optional[Callable[[Dict[str, Any]], Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.primary = primary
        self.secondary = secondary
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        if sender is None:
            sender = BackgroundSender(
                settings.telemetry_endpoint,
                timeout=settings.telemetry_timeout_seconds,
            ).submit
        self._sender = sender

    def telemetry_allowed(self) -> bool:
        if self.settings.telemetry_disabled:
            return False
        return not self.store.get(OPT_OUT_KEY, False)

    def set_opt_out(self, opted_out: bool) -> None:
        self.store.set(OPT_OUT_KEY, bool(opted_out))

    def maybe_send_heartbeat(self, rng: Optional[random.Random] = None) -> bool:
        """Throttled, sampled sync. Returns True when a sync ran."""
        if not self.telemetry_allowed():
            return False
        now = self._clock().timestamp()
        last = self.store.get(SYNC_KEY, 0) or 0
        if now - float(last) < SYNC_INTERVAL_SECONDS:
            return False
        if (rng or random).random() >= self.settings.sample_rate:
            return False
        self.sync()
        return True

    def sync(self) -> None:
        self.store.set(SYNC_KEY, int(self._clock().timestamp()))
        try:
            self.secondary.check()
        except Exception:
            logger.exception("Secondary license check failed during sync")
        self.send_heartbeat()

    def send_heartbeat(self) -> bool:
        if not self.telemetry_allowed():
            return False
        payload = self.build_payload()
        try:
            self._sender(payload)
        except Exception as e:
            logger.debug("Telemetry dispatch failed", extra={"error": str(e)})
            return False
        return True

    def build_payload(self) -> Dict[str, Any]:
        record = self.primary.get_record()
        return {
            "site_hash": hashlib.sha256(self.settings.site_url.encode("utf-8")).hexdigest(),
            "license_status": self.secondary.status(),
            "license_key": mask_key(record.key),
            "product_version": self.settings.product_version,
            "days_installed": self.days_since_install(),
            "premium_used": self.secondary.feature_init_at() is not None,
            "integrity": "modified" if self.secondary.is_tampered() else "ok",
            "runtime": platform.python_version(),
        }

    def days_since_install(self) -> int:
        now = int(self._clock().timestamp())
        first_run = self.store.get(FIRST_RUN_KEY)
        if not first_run:
            self.store.set(FIRST_RUN_KEY, now)
            return 0
        return max(0, int((now - int(first_run)) // SECONDS_PER_DAY))
