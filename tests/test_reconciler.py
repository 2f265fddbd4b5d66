from giftshop.models import GiftStatus
from giftshop.reconciler import ReconcileOutcome

from .conftest import ADMIN_ID, FRONTEND_URL


def tbank_event(gift_id, tg_user_id, status="success"):
    return {
        "status": status,
        "payment_id": "TBANK_1",
        "metadata": {"gift_id": str(gift_id), "tg_user_id": str(tg_user_id)},
    }


async def _waiting_gift(services, seed, code="PAYS0001", requester=101):
    [gift] = await seed(code)
    await services.reservations.reserve(requester)
    await services.reservations.initiate_payment(gift.id, requester)
    return gift


async def test_success_marks_paid_and_notifies_once(services, seed, bot):
    gift = await _waiting_gift(services, seed)

    outcome = await services.reconciler.on_payment_event(tbank_event(gift.id, 101))
    await services.notifier.drain()

    assert outcome == ReconcileOutcome.PAID
    stored = await services.store.get(gift.id)
    assert stored.status == GiftStatus.PAID.value
    assert stored.reserved is False
    assert stored.paid_at is not None

    [buyer_msg] = bot.messages_to(101)
    assert "PAYS0001" in buyer_msg.text
    assert FRONTEND_URL in buyer_msg.text
    [admin_msg] = bot.messages_to(ADMIN_ID)
    assert "PAYS0001" in admin_msg.text


async def test_duplicate_success_sends_nothing(services, seed, bot):
    gift = await _waiting_gift(services, seed)
    await services.reconciler.on_payment_event(tbank_event(gift.id, 101))
    await services.notifier.drain()
    sent_before = len(bot.sent)

    for _ in range(3):
        outcome = await services.reconciler.on_payment_event(tbank_event(gift.id, 101))
        assert outcome == ReconcileOutcome.DUPLICATE
    await services.notifier.drain()

    assert len(bot.sent) == sent_before


async def test_success_from_reserved_state_is_accepted(services, seed, bot):
    [gift] = await seed("RSRV0001")
    await services.reservations.reserve(101)

    outcome = await services.reconciler.on_payment_event(tbank_event(gift.id, 101))

    assert outcome == ReconcileOutcome.PAID


async def test_missing_code_is_generated_on_payment(services, store, bot):
    [gift] = await store.create_gifts([None])
    await services.reservations.reserve(101)

    await services.reconciler.on_payment_event(tbank_event(gift.id, 101))
    await services.notifier.drain()

    stored = await store.get(gift.id)
    assert stored.code is not None
    assert len(stored.code) == 8
    assert stored.code == stored.code.upper()
    assert stored.code in bot.messages_to(101)[0].text


async def test_malformed_callback_is_dropped(services, seed, bot):
    gift = await _waiting_gift(services, seed)

    assert await services.reconciler.on_payment_event({"status": "success"}) == ReconcileOutcome.MALFORMED
    assert await services.reconciler.on_payment_event(
        {"status": "success", "metadata": {"gift_id": "abc", "tg_user_id": "101"}}
    ) == ReconcileOutcome.MALFORMED
    assert await services.reconciler.on_payment_event(["not", "a", "dict"]) == ReconcileOutcome.MALFORMED

    assert (await services.store.get(gift.id)).status == GiftStatus.WAITING_PAYMENT.value
    await services.notifier.drain()
    assert bot.sent == []


async def test_failed_payment_leaves_gift_as_is(services, seed, bot):
    gift = await _waiting_gift(services, seed)

    outcome = await services.reconciler.on_payment_event(tbank_event(gift.id, 101, status="rejected"))
    await services.notifier.drain()

    assert outcome == ReconcileOutcome.IGNORED
    stored = await services.store.get(gift.id)
    assert stored.status == GiftStatus.WAITING_PAYMENT.value
    assert stored.tg_user_id == 101
    assert bot.sent == []


async def test_payment_for_released_gift_alerts_admin(services, seed, bot):
    gift = await _waiting_gift(services, seed)
    await services.reservations.cancel(gift.id)

    outcome = await services.reconciler.on_payment_event(tbank_event(gift.id, 101))
    await services.notifier.drain()

    assert outcome == ReconcileOutcome.CONFLICT
    assert (await services.store.get(gift.id)).status == GiftStatus.FREE.value
    assert bot.messages_to(101) == []
    assert len(bot.messages_to(ADMIN_ID)) == 1


async def test_payment_from_other_requester_does_not_steal_gift(services, seed, bot):
    gift = await _waiting_gift(services, seed, requester=101)

    outcome = await services.reconciler.on_payment_event(tbank_event(gift.id, 202))

    assert outcome == ReconcileOutcome.CONFLICT
    stored = await services.store.get(gift.id)
    assert stored.status == GiftStatus.WAITING_PAYMENT.value
    assert stored.tg_user_id == 101


async def test_yookassa_shaped_event(services, seed, bot):
    gift = await _waiting_gift(services, seed)
    payload = {
        "type": "notification",
        "event": "payment.succeeded",
        "object": {"id": "2d1a-yk", "metadata": {"order_id": gift.id, "tg_id": 101}},
    }

    assert await services.reconciler.on_payment_event(payload) == ReconcileOutcome.PAID
