from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from storefront.phone import normalize_phone

PaymentMethod = Literal["sbp", "card", "sber_pay", "tinkoff_pay", "yoomoney"]
PaymentType = Literal["course_purchase", "balance_topup", "promotion", "final_modules"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReceiptContact(CamelModel):
    email: str | None = None
    phone: str | None = None

    def is_empty(self) -> bool:
        return not (self.email or "").strip() and not normalize_phone(self.phone or "")


class AppliedPromo(CamelModel):
    """Промокод, применённый на странице оплаты (для аудита на сервере)."""

    id: str
    code: str
    discount_percent: float | None = 0
    discount_amount: int | None = 0


class CreatePaymentRequest(CamelModel):
    course_id: str | None = None
    payment_method: PaymentMethod = "card"
    amount: int = Field(gt=0, description="Сумма к оплате, копейки")
    type: PaymentType = "course_purchase"
    return_url: str | None = None
    receipt: ReceiptContact = Field(default_factory=ReceiptContact)
    promocode: AppliedPromo | None = None
    original_amount: int | None = Field(None, ge=0, description="Сумма до скидки, копейки")
    promotion_id: str | None = None
    referral_code: str | None = None


class CreatePaymentResponse(CamelModel):
    success: bool = True
    payment_id: str
    confirmation_url: str
    status: str


class PaymentVerification(CamelModel):
    verified: bool
    status: str
    message: str
    payment_id: str | None = None
    course_id: str | None = None
    amount: int | None = None
    completed_at: datetime | None = None


class YooKassaAmount(BaseModel):
    value: str
    currency: str = "RUB"


class YooKassaPaymentObject(BaseModel):
    id: str | None = None
    status: str | None = None
    amount: YooKassaAmount | None = None
    description: str | None = None
    metadata: dict = Field(default_factory=dict)
    payment_method: dict | None = None
    paid: bool = False


class YooKassaEvent(BaseModel):
    type: str = "notification"
    event: str
    payment: YooKassaPaymentObject | None = Field(None, alias="object")


class WebhookAck(BaseModel):
    success: bool = True
