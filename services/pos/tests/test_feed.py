import asyncio

from app.feed import filter_purchases
from app.models import Purchase

from conftest import OTHER_STUDENT, STUDENT, purchase_json


def sample():
    return [
        Purchase.model_validate(purchase_json("t-1", student=STUDENT)),
        Purchase.model_validate(purchase_json("t-2", student=OTHER_STUDENT)),
    ]


def test_filter_by_name_or_registration_number():
    purchases = sample()

    assert [p.id for p in filter_purchases(purchases, "asha")] == ["t-1"]
    assert [p.id for p in filter_purchases(purchases, "stu002")] == ["t-2"]
    assert [p.id for p in filter_purchases(purchases, "STU")] == ["t-1", "t-2"]
    assert filter_purchases(purchases, "nobody") == []


def test_blank_filter_returns_everything():
    purchases = sample()

    assert filter_purchases(purchases, "  ") == purchases


async def test_refresh_token_triggers_fetch(session, backend):
    assert session.feed.refresh_token == 0

    token = session.feed.request_refresh()
    await session.feed.settle()

    assert token == 1
    assert [p.id for p in session.feed.purchases] == ["t-1", "t-2"]
    assert len(backend.calls("GET", "/purchases")) == 1


async def test_filtering_never_hits_network(session, backend):
    await session.feed.refresh()
    calls = len(backend.requests)

    assert [p.id for p in session.feed.set_filter("ben")] == ["t-2"]
    assert [p.id for p in session.feed.set_filter("")] == ["t-1", "t-2"]
    assert len(backend.requests) == calls


async def test_only_latest_refresh_is_applied(session, backend):
    gate = backend.hold("/purchases")
    session.feed.request_refresh()
    await asyncio.sleep(0.01)
    session.feed.request_refresh()
    gate.set()
    await session.feed.settle()

    assert session.feed.refresh_token == 2
    assert [p.id for p in session.feed.purchases] == ["t-1", "t-2"]


async def test_failed_refresh_keeps_previous_snapshot(session, backend):
    await session.feed.refresh()
    backend.fail("/purchases", status=500, message="db offline")

    await session.feed.refresh()

    assert [p.id for p in session.feed.purchases] == ["t-1", "t-2"]
    assert session.feed.last_error.message == "db offline"
    assert session.notices.latest().message == "Error loading purchases: db offline"


async def test_reversed_flag_never_reverts(session, backend):
    await session.feed.refresh()
    await session.reverse("t-1")
    backend.purchases[0]["is_reversed"] = False  # 古いレプリカからの応答

    await session.feed.refresh()

    assert session.feed.get("t-1").reversed is True
