"""
License admin endpoints.

Activation outcomes map to HTTP status:
- 200 on success (including offline continuation)
- 503 when the license server could not be reached
- 400 for every other failure
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from api.schemas.license import (
    ActivateRequest,
    ActivationResponse,
    DeactivateResponse,
    FeaturesResponse,
    LicenseStatusResponse,
    UrlResponse,
)
from licensing.engine import LicensingEngine
from licensing.errors import ErrorCode
from licensing.models import ActivationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/license", tags=["license"])


@lru_cache(maxsize=1)
def get_licensing_engine() -> LicensingEngine:
    """Process-wide engine built from environment settings. Override in tests."""
    return LicensingEngine()


def get_request_engine(engine: LicensingEngine = Depends(get_licensing_engine)) -> LicensingEngine:
    """Per-request engine: re-derives the gate level and runs due license tasks."""
    engine.on_request()
    return engine


def _status_code_for(result: ActivationResult) -> int:
    if result.success:
        return status.HTTP_200_OK
    if result.error_code == ErrorCode.CONNECTION_ERROR.value:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def _activation_response(result: ActivationResult) -> JSONResponse:
    body = ActivationResponse(**{k: v for k, v in result.to_dict().items() if k != "http_status"})
    return JSONResponse(status_code=_status_code_for(result), content=body.model_dump())


@router.get("", response_model=LicenseStatusResponse)
def get_license_status(engine: LicensingEngine = Depends(get_request_engine)) -> LicenseStatusResponse:
    premium = engine.premium_status()
    return LicenseStatusResponse(
        **premium,
        notices=[notice.to_dict() for notice in engine.notices()],
    )


@router.post("/activate", response_model=ActivationResponse)
def activate_license(
    request: ActivateRequest,
    engine: LicensingEngine = Depends(get_request_engine),
) -> JSONResponse:
    result = engine.activate(request.license_key, request.email)
    logger.info("License activation requested", extra={
        "status": result.status,
        "success": result.success,
        "error_code": result.error_code,
    })
    return _activation_response(result)


@router.post("/deactivate", response_model=DeactivateResponse)
def deactivate_license(engine: LicensingEngine = Depends(get_request_engine)) -> DeactivateResponse:
    engine.deactivate()
    return DeactivateResponse(success=True, message="License deactivated successfully.")


@router.post("/revalidate", response_model=ActivationResponse)
def revalidate_license(engine: LicensingEngine = Depends(get_request_engine)) -> JSONResponse:
    return _activation_response(engine.revalidate())


@router.get("/resend-url", response_model=UrlResponse)
def get_resend_url(engine: LicensingEngine = Depends(get_request_engine)) -> UrlResponse:
    return UrlResponse(url=engine.resend_url())


@router.get("/purchase-url", response_model=UrlResponse)
def get_purchase_url(
    campaign: Optional[str] = Query(None, description="utm_campaign value"),
    engine: LicensingEngine = Depends(get_request_engine),
) -> UrlResponse:
    return UrlResponse(url=engine.purchase_url(campaign or "plugin"))


@router.get("/features", response_model=FeaturesResponse)
def get_features(engine: LicensingEngine = Depends(get_request_engine)) -> FeaturesResponse:
    """Resolved feature level for UX. Gating itself happens server-side via has_feature()."""
    return FeaturesResponse(
        level=engine.get_level().value,
        available=list(engine.gate.available_features()),
        premium=list(engine.gate.all_premium_features()),
        degradation=engine.get_degradation_info().to_dict(),
    )
