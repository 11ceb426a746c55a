"""
Admin-facing notices and outbound links.

Grace, expired and revoked states produce advisory notices with an actionable
link; offline mode produces an informational notice. Tamper detection never
produces a notice.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional
from urllib.parse import urlencode

from licensing.config import LicensingSettings
from licensing.models import LicenseStatus

STATUS_MESSAGES: Dict[str, str] = {
    LicenseStatus.NOT_FOUND.value: "License not found. Please check your license key and email.",
    LicenseStatus.EXPIRED.value: "Your license has expired. Please renew to continue using premium features.",
    LicenseStatus.REVOKED.value: "This license has been revoked. Please contact support.",
    LicenseStatus.PRODUCT_MISMATCH.value: "This license is for a different product.",
    LicenseStatus.INVALID.value: "Invalid license key format.",
}


@dataclass(frozen=True)
class Notice:
    severity: str  # warning | error | info
    title: str
    message: str
    link_url: Optional[str] = None
    link_text: Optional[str] = None
    dismissible: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def _with_query(url: str, params: Dict[str, str]) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


def purchase_url(settings: LicensingSettings, campaign: str = "plugin", path: str = "") -> str:
    return _with_query(
        f"{settings.purchase_url}{path}",
        {"utm_source": "plugin", "utm_medium": "admin", "utm_campaign": campaign or "plugin"},
    )


def resend_url(settings: LicensingSettings, contact: str = "") -> str:
    if not contact:
        return settings.resend_url
    return _with_query(settings.resend_url, {"email": contact})


def status_message(status: str, fallback: str = "") -> str:
    return STATUS_MESSAGES.get(status) or fallback or "License is not valid."


def build_notices(
    settings: LicensingSettings,
    *,
    status: str,
    in_grace: bool,
    grace_days_left: Optional[int],
    offline_mode: bool,
) -> List[Notice]:
    notices: List[Notice] = []

    if in_grace:
        notices.append(Notice(
            severity="warning",
            title="Payment Issue:",
            message=(
                "Your license payment failed. Premium features will be disabled "
                f"in {int(grace_days_left or 0)} days."
            ),
            link_url=purchase_url(settings, "renewal"),
            link_text="Update payment method",
            dismissible=True,
        ))

    if status == LicenseStatus.EXPIRED.value:
        notices.append(Notice(
            severity="error",
            title="License expired:",
            message="Premium features are disabled.",
            link_url=purchase_url(settings, "expired", path="/#pricing"),
            link_text="Renew now",
        ))

    if status == LicenseStatus.REVOKED.value:
        notices.append(Notice(
            severity="error",
            title="License revoked:",
            message=STATUS_MESSAGES[LicenseStatus.REVOKED.value],
        ))

    if offline_mode:
        notices.append(Notice(
            severity="info",
            title="",
            message="Could not verify license. Using cached license status.",
            dismissible=True,
        ))

    return notices
