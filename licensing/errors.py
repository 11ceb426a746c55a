"""
Licensing error hierarchy.

Provides:
- ErrorCode: machine-readable failure taxonomy shared with result objects
- LicensingError: base for all licensing failures
- RemoteAuthorityError: authority round-trip failed (connection, 429, server)
- TamperedCacheError: signed cache entry failed verification (fail-closed)
- SettingsError: invalid configuration

Network errors never escape the validators; they are converted into
non-fatal ActivationResult objects.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    CONNECTION_ERROR = "connection_error"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    INVALID = "invalid"
    TAMPERED = "tampered"
    NOT_CONFIGURED = "not_configured"


class LicensingError(Exception):
    """Base exception for licensing failures."""

    error_code: str = "LICENSING_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class RemoteAuthorityError(LicensingError):
    """Raised by the authority client when a validation round-trip fails."""

    error_code = ErrorCode.SERVER_ERROR.value

    def __init__(self, message: str, http_status: Optional[int] = None):
        self.http_status = http_status
        super().__init__(message)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.http_status is not None:
            d["http_status"] = self.http_status
        return d


class AuthorityConnectionError(RemoteAuthorityError):
    """Network unreachable or timed out."""

    error_code = ErrorCode.CONNECTION_ERROR.value


class AuthorityRateLimitedError(RemoteAuthorityError):
    """Authority answered 429."""

    error_code = ErrorCode.RATE_LIMITED.value

    def __init__(self, message: str = "Too many requests", retry_after: Optional[int] = None):
        self.retry_after = retry_after
        super().__init__(message, http_status=429)


class AuthorityServerError(RemoteAuthorityError):
    """Non-200 status or a body that is not a JSON object."""

    error_code = ErrorCode.SERVER_ERROR.value


class TamperedCacheError(LicensingError):
    """Signed cache entry whose signature does not match its content."""

    error_code = ErrorCode.TAMPERED.value

    def __init__(self, cache_key: str):
        self.cache_key = cache_key
        super().__init__(f"Signature mismatch for cache entry {cache_key}")


class SettingsError(LicensingError):
    """Invalid engine configuration."""

    error_code = "SETTINGS_INVALID"

    def __init__(self, message: str, setting: Optional[str] = None):
        self.setting = setting
        super().__init__(message)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.setting is not None:
            d["setting"] = self.setting
        return d
