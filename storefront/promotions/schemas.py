from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PromotionStatus(BaseModel):
    """Снимок доступности акции. Счётчики есть только у акций с лимитом мест."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    promotion_id: str | None = None
    available: bool
    used_slots: int | None = None
    total_slots: int | None = None
    available_slots: int | None = None
