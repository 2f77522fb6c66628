import logging

from fastapi import APIRouter, Depends, Request

from affiliate_api.bootstrap import get_lifecycle
from affiliate_api.lifecycle import AuthLifecycle, LinkRequestResult
from affiliate_api.rate_limit import RateLimitConfig, RateLimiter
from affiliate_api.schemas import (
    AckOut,
    AffiliateProfile,
    AffiliateValidateIn,
    MagicLinkRequestIn,
    MagicLinkVerifyIn,
    ValidateOut,
    VerifyOut,
)
from affiliate_api.settings import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")
link_rate_limiter = RateLimiter(
    RateLimitConfig(
        max_requests=settings.rate_limit_link_requests,
        window_seconds=settings.rate_limit_link_window_seconds,
    )
)


@router.post("/magic-link-request", response_model=AckOut)
async def magic_link_request(
    payload: MagicLinkRequestIn,
    request: Request,
    lifecycle: AuthLifecycle = Depends(get_lifecycle),
):
    if payload.email:
        ip = request.client.host if request.client else "unknown"
        key = f"{payload.email.strip().lower()}:{ip}"
        if not link_rate_limiter.allow(key):
            logger.warning("link request rate limited")
            ack = LinkRequestResult()
            return AckOut(success=ack.success, message=ack.message)

    result = await lifecycle.request_link(payload.email)
    return AckOut(success=result.success, message=result.message)


@router.post("/magic-link-verify", response_model=VerifyOut, response_model_exclude_none=True)
async def magic_link_verify(
    payload: MagicLinkVerifyIn,
    lifecycle: AuthLifecycle = Depends(get_lifecycle),
):
    result = await lifecycle.verify_link(payload.token)
    if not result.success:
        return VerifyOut(success=False, message=result.message)
    return VerifyOut(
        success=True,
        session_token=result.session_token,
        email=result.email,
        user=AffiliateProfile.model_validate(result.profile),
    )


@router.post("/affiliate-validate", response_model=ValidateOut, response_model_exclude_none=True)
async def affiliate_validate(
    payload: AffiliateValidateIn,
    lifecycle: AuthLifecycle = Depends(get_lifecycle),
):
    result = await lifecycle.validate_session(payload.token, payload.email)
    if not result.success:
        return ValidateOut(success=False, message=result.message)
    return ValidateOut(success=True, affiliate=AffiliateProfile.model_validate(result.profile))
