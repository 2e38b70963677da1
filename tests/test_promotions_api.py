import pytest

from storefront.promotions.catalog import FIRST_100, TWO_COURSES, UnknownPromotionError, get_promotion


def add_payments(db, count, **fields):
    row = {"status": "completed", "type": "promotion", "promotion_id": FIRST_100}
    row.update(fields)
    for _ in range(count):
        db.add("payments", user_id="someone", amount=109900, **row)


def test_catalog():
    assert get_promotion(FIRST_100).price == 109900
    assert get_promotion(FIRST_100).total_slots == 100
    assert get_promotion(TWO_COURSES).total_slots is None
    with pytest.raises(UnknownPromotionError):
        get_promotion("black_friday")


def test_check_requires_id(api):
    response = api.get("/api/promotions/check")
    assert response.status_code == 400
    assert response.json() == {"error": "Promotion ID required"}


def test_check_unknown_promotion(api):
    response = api.get("/api/promotions/check", params={"id": "black_friday"})
    assert response.status_code == 400
    assert response.json() == {"error": "Unknown promotion"}


def test_counts_only_completed_promotion_payments(api, db):
    add_payments(db, 3)
    add_payments(db, 2, status="pending")
    add_payments(db, 1, type="course_purchase", promotion_id=None)
    add_payments(db, 4, promotion_id=TWO_COURSES)

    response = api.get("/api/promotions/check", params={"id": FIRST_100})

    assert response.status_code == 200
    assert response.json() == {
        "promotionId": FIRST_100,
        "available": True,
        "usedSlots": 3,
        "totalSlots": 100,
        "availableSlots": 97,
    }


def test_sold_out(api, db):
    add_payments(db, 100)
    body = api.get("/api/promotions/check", params={"id": FIRST_100}).json()
    assert body["available"] is False
    assert body["availableSlots"] == 0


def test_oversold_never_reports_negative_slots(api, db):
    add_payments(db, 105)
    body = api.get("/api/promotions/check", params={"id": FIRST_100}).json()
    assert body["available"] is False
    assert body["usedSlots"] == 105
    assert body["availableSlots"] == 0


def test_unlimited_promotion_has_no_counters(api, db):
    response = api.get("/api/promotions/check", params={"id": TWO_COURSES})
    assert response.status_code == 200
    assert response.json() == {"promotionId": TWO_COURSES, "available": True}
