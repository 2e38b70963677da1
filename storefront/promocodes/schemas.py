from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PromoType = Literal["discount", "referral_access"]


class CamelModel(BaseModel):
    """JSON наружу в camelCase, внутри snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PromoValidateRequest(CamelModel):
    code: str = ""
    course_id: str | None = None


class PromoCodeInfo(CamelModel):
    id: str
    code: str
    discount_percent: float = 0
    discount_amount: int = 0
    description: str | None = None
    promo_type: PromoType = "discount"
    course_id: str | None = None


class PromoValidateResponse(CamelModel):
    success: bool = True
    promocode: PromoCodeInfo


class AppliedPromoCodeInfo(CamelModel):
    id: str
    code: str
    promo_type: PromoType = "discount"
    discount_percent: float | None = None
    discount_amount: int | None = None
    description: str | None = None
    referral_commission: float | None = None


class PromoApplyResponse(CamelModel):
    success: bool = True
    message: str
    promo_type: PromoType
    promocode: AppliedPromoCodeInfo


class UserPromoCode(CamelModel):
    id: str
    promocode_id: str
    code: str
    discount_percent: float = 0
    discount_amount: int = 0
    promo_type: PromoType = "discount"
    description: str | None = None
    course_id: str | None = None
    valid_until: datetime | None = None
    discount_applied: int = 0
    created_at: datetime | None = None


class UserPromoCodesResponse(CamelModel):
    success: bool = True
    promocodes: list[UserPromoCode]


class PromoConfirmRequest(CamelModel):
    promocode_id: str
    discount_applied: int = Field(0, ge=0)
    order_id: str | None = None


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class PromoCodeCreate(CamelModel):
    code: str = Field(min_length=1)
    discount_percent: float = Field(0, ge=0, le=100)
    discount_amount: int = Field(0, ge=0)
    max_activations: int = Field(20, ge=1)
    description: str | None = None
    course_id: str | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True
    promo_type: PromoType = "discount"


class PromoCodeUpdate(CamelModel):
    id: str | None = None
    code: str | None = Field(None, min_length=1)
    discount_percent: float | None = Field(None, ge=0, le=100)
    discount_amount: int | None = Field(None, ge=0)
    max_activations: int | None = Field(None, ge=1)
    description: str | None = None
    course_id: str | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool | None = None
    promo_type: PromoType | None = None


class PromoCodeAdmin(CamelModel):
    id: str
    code: str
    discount_percent: float = 0
    discount_amount: int = 0
    max_activations: int = 20
    current_activations: int = 0
    description: str | None = None
    course_id: str | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True
    promo_type: PromoType = "discount"
    created_at: datetime | None = None


class PromoCodeAdminResponse(CamelModel):
    success: bool = True
    promocode: PromoCodeAdmin


class PromoCodeListResponse(CamelModel):
    promocodes: list[PromoCodeAdmin]
