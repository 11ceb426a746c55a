"""
HTTP client for the remote license authority.

Request body:
    {"license_key": ..., "email": ..., "site_url": ..., "product": ...}

Response body (HTTP 200):
    {"valid": bool, "status": str, "valid_until"?, "grace_until"?,
     "days_left"?, "warning"?: "grace", "message"?}

Failures are raised as RemoteAuthorityError subclasses so callers can tell
connection problems, rate limiting and server errors apart.
"""

import logging
from typing import Optional

import httpx

from licensing.config import LicensingSettings
from licensing.errors import (
    AuthorityConnectionError,
    AuthorityRateLimitedError,
    AuthorityServerError,
)
from licensing.models import RemoteResponse

logger = logging.getLogger(__name__)


class LicenseApiClient:
    """Synchronous client with a bounded timeout per call."""

    def __init__(
        self,
        settings: LicensingSettings,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.endpoint = settings.api_endpoint
        self.site_url = settings.site_url
        self.product = settings.product
        self.timeout = timeout if timeout is not None else settings.timeout_seconds
        self._client = httpx.Client(
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def validate(self, license_key: str, contact: str) -> RemoteResponse:
        """
        Ask the authority about a key/contact pair.

        Raises:
            AuthorityConnectionError: network unreachable or timed out
            AuthorityRateLimitedError: HTTP 429
            AuthorityServerError: any other non-200 status or malformed body
        """
        body = {
            "license_key": license_key.strip().upper(),
            "email": contact.strip().lower(),
            "site_url": self.site_url,
            "product": self.product,
        }

        try:
            response = self._client.post(self.endpoint, json=body)
        except httpx.TimeoutException as e:
            logger.warning("License authority timed out", extra={"endpoint": self.endpoint})
            raise AuthorityConnectionError(f"Request timed out: {e}")
        except httpx.RequestError as e:
            logger.warning("License authority unreachable", extra={"endpoint": self.endpoint, "error": str(e)})
            raise AuthorityConnectionError(f"Request failed: {e}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise AuthorityRateLimitedError(
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

        if response.status_code != 200:
            logger.error("License authority HTTP error", extra={
                "endpoint": self.endpoint,
                "status_code": response.status_code,
                "response": response.text[:500],
            })
            raise AuthorityServerError(
                f"License server error: {response.status_code}",
                http_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data:
            raise AuthorityServerError("Malformed license server response", http_status=response.status_code)

        return RemoteResponse.from_body(data)
