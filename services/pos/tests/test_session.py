import pytest

from app.notices import NoticeVariant
from app.session import PosSession


@pytest.mark.parametrize("status", [500, 404])
async def test_catalog_loads_when_locations_fail(http, config, backend, status):
    backend.fail("/locations", status=status, message="locations offline")
    session = PosSession(http, config)

    await session.start()
    await session.feed.settle()

    assert [p.id for p in session.catalog.items()] == ["p-a", "p-b", "p-c"]
    assert session.scan("p-a").name == "Samosa"
    assert session.location.location_id() is None
    assert [p.id for p in session.feed.purchases] == ["t-1", "t-2"]
    errors = [n.message for n in session.notices.recent() if n.variant == NoticeVariant.ERROR]
    assert errors == ["Failed to load locations: locations offline"]
    await session.close()


async def test_locations_load_when_catalog_fails(http, config, backend):
    backend.fail("/items", status=503, message="catalog offline")
    session = PosSession(http, config)

    await session.start()

    assert session.catalog.items() == []
    assert session.location.location_id() == "loc-1"
    errors = [n.message for n in session.notices.recent() if n.variant == NoticeVariant.ERROR]
    assert errors == ["Failed to load items: catalog offline"]
    await session.close()
