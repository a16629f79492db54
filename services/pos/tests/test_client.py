import json

import httpx
import pytest

from app.client import PosApiClient
from app.errors import ConflictError, NotFoundError, TransientServiceError
from app.models import CartLine

from conftest import BASE_URL


@pytest.fixture
def client(http):
    return PosApiClient(http)


async def test_exact_search_unwraps_envelope(client, backend):
    customers = await client.search_customers_exact("STU001")

    assert [c.id for c in customers] == ["c-1"]
    request = backend.calls("GET", "/customers")[0]
    assert request.url.params["exactData"] == "STU001"


async def test_exact_search_without_match_is_empty(client):
    assert await client.search_customers_exact("NOPE") == []


async def test_face_not_found_raises_not_found(client, backend):
    backend.face_customer = None

    with pytest.raises(NotFoundError) as exc:
        await client.fetch_customer_by_face([0.1, 0.2])

    assert exc.value.message == "Student not found"


async def test_create_purchase_sends_aggregated_products(client, backend):
    purchase = await client.create_purchase(
        "c-1", [CartLine(product_id="p-a", quantity=2), CartLine(product_id="p-b", quantity=1)]
    )

    assert purchase.total_amount == 55
    sent = backend.calls("POST", "/purchases")[0]
    assert json.loads(sent.content) == {
        "customerId": "c-1",
        "products": [
            {"productId": "p-a", "quantity": 2},
            {"productId": "p-b", "quantity": 1},
        ],
    }


@pytest.mark.parametrize(
    "status, error",
    [(404, NotFoundError), (409, ConflictError), (500, TransientServiceError), (400, TransientServiceError)],
)
async def test_status_codes_map_to_error_taxonomy(client, backend, status, error):
    backend.fail("/purchases/t-1/reverse", status=status, message="nope")

    with pytest.raises(error) as exc:
        await client.reverse_purchase("t-1")

    assert exc.value.message == "nope"


async def test_unsuccessful_envelope_is_transient(client, backend):
    backend.fail("/items", status=200, message="catalog offline")

    with pytest.raises(TransientServiceError, match="catalog offline"):
        await client.list_items()


async def test_transport_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(handler)
    ) as http:
        with pytest.raises(TransientServiceError):
            await PosApiClient(http).list_purchases()


async def test_invalid_json_is_transient():
    async with httpx.AsyncClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>")),
    ) as http:
        with pytest.raises(TransientServiceError):
            await PosApiClient(http).list_items()


async def test_unencodable_body_is_transient(client, backend):
    with pytest.raises(TransientServiceError, match="could not encode request"):
        await client.fetch_customer_by_face([0.1, float("nan")])

    assert backend.calls("POST", "/customers/fetch-by-face") == []


async def test_selected_location_header(http, backend):
    client = PosApiClient(http, location_id=lambda: "loc-2")

    await client.list_items()

    assert backend.requests[-1].headers["X-Location-Id"] == "loc-2"


async def test_no_location_header_without_selection(client, backend):
    await client.list_items()

    assert "X-Location-Id" not in backend.requests[-1].headers
