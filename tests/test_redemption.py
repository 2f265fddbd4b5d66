import asyncio

from giftshop.models import GiftStatus, GiftType
from giftshop.redemption import normalize_code

from .conftest import ADMIN_ID


async def _paid_gift(services, seed, code="AB12CD34", requester=101, gift_type=GiftType.NORMAL):
    [gift] = await seed(code, gift_type=gift_type)
    await services.store.claim_free(requester, gift_type)
    await services.store.mark_paid(gift.id, requester, "UNUSED00")
    return gift


def test_normalize_code():
    assert normalize_code("  ab12cd34 ") == "AB12CD34"
    assert normalize_code("") == ""


async def test_check_code_is_case_insensitive(services, seed):
    gift = await _paid_gift(services, seed)

    lower = await services.redemption.check_code("ab12cd34")
    upper = await services.redemption.check_code("AB12CD34")

    assert lower == upper
    assert lower.id == gift.id
    assert lower.code == "AB12CD34"
    assert lower.type == "normal"


async def test_check_code_notifies_admin_without_mutation(services, seed, bot):
    gift = await _paid_gift(services, seed)

    await services.redemption.check_code("ab12cd34")
    await services.notifier.drain()

    assert len(bot.messages_to(ADMIN_ID)) == 1
    stored = await services.store.get(gift.id)
    assert stored.status == GiftStatus.PAID.value
    assert stored.is_used is False


async def test_check_code_rejects_unpaid_and_unknown(services, seed, bot):
    await seed("FREECODE")

    assert await services.redemption.check_code("FREECODE") is None
    assert await services.redemption.check_code("NOPE0000") is None
    assert await services.redemption.check_code("   ") is None
    await services.notifier.drain()
    assert bot.sent == []


async def test_use_code_twice_rejects_second(services, seed):
    gift = await _paid_gift(services, seed)

    assert await services.redemption.use_code("ab12cd34") is True
    assert await services.redemption.use_code("AB12CD34") is False

    stored = await services.store.get(gift.id)
    assert stored.is_used is True
    assert stored.used_at is not None
    assert stored.status == GiftStatus.USED.value
    assert await services.redemption.check_code("AB12CD34") is None


async def test_concurrent_use_has_single_winner(services, seed):
    await _paid_gift(services, seed)

    results = await asyncio.gather(*(services.redemption.use_code("ab12cd34") for _ in range(8)))

    assert results.count(True) == 1


async def test_use_code_rejects_unpaid_and_unknown_alike(services, seed):
    [gift] = await seed("NOTPAID1")
    await services.reservations.reserve(101)

    assert await services.redemption.use_code("NOTPAID1") is False
    assert await services.redemption.use_code("UNKNOWN1") is False
    assert (await services.store.get(gift.id)).status == GiftStatus.RESERVED.value


async def test_stats(services, seed):
    await seed("FREE0001", "FREE0002", "FREE0003")
    await _paid_gift(services, seed, code="VIPCODE1", gift_type=GiftType.VIP)

    stats = await services.redemption.stats()
    assert stats.normal_left == 3
    assert stats.vip_found is False
    assert stats.total_used == 0

    await services.redemption.use_code("vipcode1")

    stats = await services.redemption.stats()
    assert stats.vip_found is True
    assert stats.total_used == 1
