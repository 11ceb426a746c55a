"""
HMAC-signed cache entries.

Each entry is stored as:

    {"payload": {...}, "written_at": 1700000000, "expires_at": 1700003600,
     "signature": "<hex sha256 hmac>"}

The signature covers the canonical JSON of the payload, the write time and the
expiry, keyed by the process secret. Any entry that fails verification, or is
not shaped like an envelope at all, is reported as tampered and treated as
absent. It is never returned as a stale-but-valid result.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from licensing.errors import TamperedCacheError
from licensing.storage import KeyValueStore

logger = logging.getLogger(__name__)


def _canonical(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class SignedCacheEntry:
    payload: Dict[str, Any]
    written_at: int
    signature: str
    expires_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payload": self.payload,
            "written_at": self.written_at,
            "expires_at": self.expires_at,
            "signature": self.signature,
        }

    def age_seconds(self, now: datetime) -> float:
        return now.timestamp() - self.written_at

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now.timestamp() >= self.expires_at


class SignedCache:
    """Signed key-value cache slot owned by one validator."""

    def __init__(
        self,
        store: KeyValueStore,
        key: str,
        secret: str,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("secret is required")
        self.store = store
        self.key = key
        self._secret = secret.encode("utf-8")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sign(self, payload: Mapping[str, Any], written_at: int, expires_at: Optional[int]) -> str:
        message = f"{_canonical(payload)}|{written_at}|{expires_at if expires_at is not None else ''}"
        return hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def write(self, payload: Mapping[str, Any], ttl_seconds: Optional[int] = None) -> SignedCacheEntry:
        written_at = int(self._clock().timestamp())
        expires_at = written_at + int(ttl_seconds) if ttl_seconds is not None else None
        data = json.loads(_canonical(payload))
        entry = SignedCacheEntry(
            payload=data,
            written_at=written_at,
            expires_at=expires_at,
            signature=self.sign(data, written_at, expires_at),
        )
        self.store.set(self.key, entry.to_dict())
        return entry

    def load(self) -> Optional[SignedCacheEntry]:
        """
        Return the verified entry, None when nothing is stored.

        Raises:
            TamperedCacheError: stored value exists but does not verify
        """
        raw = self.store.get(self.key)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise TamperedCacheError(self.key)

        payload = raw.get("payload")
        written_at = raw.get("written_at")
        expires_at = raw.get("expires_at")
        signature = raw.get("signature")
        if (
            not isinstance(payload, dict)
            or not isinstance(written_at, int)
            or not (expires_at is None or isinstance(expires_at, int))
            or not isinstance(signature, str)
        ):
            raise TamperedCacheError(self.key)

        expected = self.sign(payload, written_at, expires_at)
        if not hmac.compare_digest(expected, signature):
            raise TamperedCacheError(self.key)

        return SignedCacheEntry(
            payload=payload,
            written_at=written_at,
            expires_at=expires_at,
            signature=signature,
        )

    def read(self) -> Optional[SignedCacheEntry]:
        """Verified entry or None; tampered entries are logged and read as absent."""
        try:
            return self.load()
        except TamperedCacheError:
            logger.warning("Signed cache entry failed verification", extra={"cache_key": self.key})
            return None

    def read_fresh(self) -> Optional[SignedCacheEntry]:
        """Verified, unexpired entry or None."""
        entry = self.read()
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def exists(self) -> bool:
        return self.store.get(self.key) is not None

    def clear(self) -> None:
        self.store.delete(self.key)
