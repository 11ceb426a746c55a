"""
Pydantic schemas for the license admin API.

Request and response models for /license endpoints.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class ActivateRequest(BaseModel):
    """Request body for license activation."""

    license_key: str = Field(..., description="License key, N8C-XXXX-XXXX-XXXX-XXXX")
    email: str = Field(..., description="Contact email the license was issued to")


class ActivationResponse(BaseModel):
    """Outcome of activate / revalidate."""

    success: bool = Field(..., description="Whether the license is usable after the call")
    status: str = Field(..., description="License status reported by the authority")
    message: str = Field("", description="Human readable outcome")
    days_left: Optional[int] = Field(None, description="Days left (grace days when in grace)")
    valid_until: Optional[str] = Field(None, description="ISO-8601 expiry")
    grace_until: Optional[str] = Field(None, description="ISO-8601 end of grace period")
    error_code: Optional[str] = Field(None, description="connection_error | rate_limited | server_error | invalid | not_configured")


class DeactivateResponse(BaseModel):
    success: bool = Field(..., description="Whether the local license was cleared")
    message: str = Field(..., description="Human readable outcome")


class NoticeResponse(BaseModel):
    severity: str = Field(..., description="warning | error | info")
    title: str = Field("", description="Short heading")
    message: str = Field(..., description="Notice body")
    link_url: Optional[str] = Field(None, description="Call-to-action URL")
    link_text: Optional[str] = Field(None, description="Call-to-action label")
    dismissible: bool = Field(False, description="Whether the notice can be dismissed")


class LicenseStatusResponse(BaseModel):
    """Current license status for the admin screen. The key is always masked."""

    is_premium: bool = Field(..., description="Primary validator premium verdict")
    status: str = Field(..., description="Persisted license status")
    email: str = Field("", description="Contact email")
    license_key_masked: str = Field("", description="Masked license key")
    valid_until: str = Field("", description="ISO-8601 expiry, empty when unknown")
    grace_until: str = Field("", description="ISO-8601 end of grace, empty when unknown")
    days_left: Optional[int] = Field(None, description="Days until expiry")
    grace_days_left: Optional[int] = Field(None, description="Days until grace ends")
    warning: str = Field("", description="Authority warning, e.g. 'grace'")
    offline_mode: bool = Field(False, description="Running on cached status after a connection failure")
    last_checked: str = Field("", description="ISO-8601 time of the last authority check")
    notices: List[NoticeResponse] = Field(default_factory=list, description="Admin notices")


class UrlResponse(BaseModel):
    url: str = Field(..., description="Outbound URL")


class DegradationResponse(BaseModel):
    degraded: bool = Field(..., description="Whether any premium capability is withheld")
    level: str = Field(..., description="full | grace | limited | basic")
    days_since_init: Optional[int] = Field(None, description="Days since first premium use")
    message: Optional[str] = Field(None, description="Admin-facing explanation")
    days_until_limited: Optional[int] = Field(None, description="Days until LIMITED")
    days_until_basic: Optional[int] = Field(None, description="Days until BASIC")


class FeaturesResponse(BaseModel):
    level: str = Field(..., description="Current feature level")
    available: List[str] = Field(..., description="Capabilities available at this level")
    premium: List[str] = Field(..., description="All premium capabilities")
    degradation: DegradationResponse = Field(..., description="Degradation details")
