import httpx
import pytest

from storefront.auth.schemas import VkLogin
from storefront.auth.service import create_access_token
from storefront.checkout import CheckoutSession, CheckoutState, Contact, MemoryStore, RejectedByServer, StorefrontClient
from conftest import add_promocode


@pytest.fixture
def shop_client(app, user):
    token = create_access_token(user["id"], VkLogin(vk_id=777))
    return StorefrontClient("http://testserver", token=token, transport=httpx.ASGITransport(app=app))


async def test_promocode_checkout_end_to_end(api, db, user, shop_client, yookassa):
    promo = add_promocode(db, code="SPRING15", discount_percent=15, current_activations=0)
    store = MemoryStore()

    async with shop_client:
        session = CheckoutSession.from_query(
            shop_client, {"course": "keto", "price": "1699", "ref": "REF-ABC123"}, store=store
        )
        await session.start()
        await session.apply_code("spring15")
        assert session.final_amount == 144415

        url = await session.submit(Contact(email="student@example.com"))

    assert url == "https://yoomoney.test/checkout/1"
    assert session.state is CheckoutState.REDIRECTED
    metadata = yookassa[0]["payload"]["metadata"]
    assert metadata["promocode_discount_applied"] == "25485"
    assert metadata["referral_code"] == "REF-ABC123"
    [pending] = db.rows("payments")
    assert pending["amount"] == 144415

    db.add("user_referral_codes", user_id="referrer-1", referral_code="REF-ABC123", is_active=True)
    event = {
        "type": "notification",
        "event": "payment.succeeded",
        "object": {
            "id": "yk-1",
            "status": "succeeded",
            "paid": True,
            "amount": {"value": "1444.15", "currency": "RUB"},
            "metadata": metadata,
        },
    }
    assert api.post("/api/payments/webhook", json=event).status_code == 200

    assert db.rows("payments")[0]["status"] == "completed"
    assert db.rows("promocodes", id=promo["id"])[0]["current_activations"] == 1
    assert db.rows("referrals")[0]["referrer_id"] == "referrer-1"

    # после оплаты промокод больше не проходит проверку
    async with shop_client:
        again = CheckoutSession.from_query(shop_client, {"course": "keto", "price": "1699"})
        with pytest.raises(RejectedByServer) as exc:
            await again.apply_code("SPRING15")
    assert exc.value.message == "Вы уже использовали этот промокод"


async def test_sold_out_promotion_end_to_end(db, user, shop_client, yookassa):
    for _ in range(100):
        db.add("payments", status="completed", type="promotion", promotion_id="first_100")

    async with shop_client:
        session = CheckoutSession.from_query(
            shop_client, {"course": "keto", "type": "promotion", "promotion": "first_100"}
        )
        await session.start()

    assert session.gate.status.available_slots == 0
    assert not session.can_submit
    assert yookassa == []
