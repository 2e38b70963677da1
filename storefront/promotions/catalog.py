from dataclasses import dataclass

FIRST_100 = "first_100"
TWO_COURSES = "two_courses"


@dataclass(frozen=True)
class Promotion:
    id: str
    price: int  # копейки
    title: str
    total_slots: int | None = None  # None - без ограничения


PROMOTIONS: dict[str, Promotion] = {
    FIRST_100: Promotion(
        id=FIRST_100,
        price=109900,
        title="Первым 100 студентам",
        total_slots=100,
    ),
    TWO_COURSES: Promotion(
        id=TWO_COURSES,
        price=219900,
        title="2 курса по акции",
    ),
}


class UnknownPromotionError(Exception):
    pass


def get_promotion(promotion_id: str) -> Promotion:
    try:
        return PROMOTIONS[promotion_id]
    except KeyError:
        raise UnknownPromotionError(promotion_id) from None
