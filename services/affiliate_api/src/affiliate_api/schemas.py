from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MagicLinkRequestIn(CamelModel):
    email: str | None = None


class MagicLinkVerifyIn(CamelModel):
    token: str | None = None


class AffiliateValidateIn(CamelModel):
    token: str | None = None
    email: str | None = None


class AffiliateProfile(CamelModel):
    name: str = ""
    email: str = ""
    affiliate_code: str = ""
    total_referrals: str = ""
    active_referrals: str = ""
    total_earned: str = ""
    pending_payout: str = ""
    paypal_email: str = ""
    tier: str = ""
    last_payout_date: str = ""
    last_payout_amount: str = ""


class AckOut(CamelModel):
    success: bool
    message: str


class VerifyOut(CamelModel):
    success: bool
    message: str | None = None
    session_token: str | None = None
    email: str | None = None
    user: AffiliateProfile | None = None


class ValidateOut(CamelModel):
    success: bool
    message: str | None = None
    affiliate: AffiliateProfile | None = None


class HealthOut(CamelModel):
    status: str
    timestamp: str
    active_tokens: int | None
