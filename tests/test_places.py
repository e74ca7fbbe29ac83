import httpx
import pytest

from dinner.errors import ConfigurationError, ProviderError
from dinner.models import Coordinate
from dinner.places import PlacesClient

from .conftest import ORIGIN, R1, R2, FakePlaces, place


@pytest.mark.asyncio
async def test_fetch_nearby_normalizes_results() -> None:
    fake = FakePlaces([R1, R2])
    entries = await fake.client().fetch_nearby(ORIGIN, 1600)

    by_id = {e.id: e for e in entries}
    assert set(by_id) == {"r1", "r2"}
    r1 = by_id["r1"]
    assert r1.name == "Bistro One"
    assert r1.rating == 4.5
    assert r1.price_level == 2
    assert r1.location == Coordinate(lat=40.7608, lng=-111.8910)
    assert r1.photo_ref == "photo-r1"
    assert r1.external_link == "https://maps.google.com/?cid=r1"
    assert by_id["r2"].photo_ref is None


@pytest.mark.asyncio
async def test_fetch_nearby_asks_broadly() -> None:
    fake = FakePlaces([R1])
    await fake.client().fetch_nearby(ORIGIN, 3218)

    (nearby,) = fake.nearby_requests
    assert dict(nearby.url.params) == {
        "key": "test-key",
        "location": "40.7596,-111.8867",
        "radius": "3218",
        "type": "restaurant",
    }
    assert all(r.url.params["key"] == "test-key" for r in fake.requests)


@pytest.mark.asyncio
async def test_missing_price_and_rating_stay_unknown() -> None:
    fake = FakePlaces(
        [
            place("free", "Free Lunch", lat=1, lng=1, price_level=0),
            place("plain", "Plain", lat=1, lng=1),
        ]
    )
    entries = await fake.client().fetch_nearby(ORIGIN)
    assert [(e.price_level, e.rating) for e in entries] == [(None, None), (None, None)]


@pytest.mark.asyncio
async def test_failed_detail_lookup_only_drops_that_link() -> None:
    fake = FakePlaces(
        [R1, R2],
        details={
            "r1": {"status": "NOT_FOUND"},
            "r2": httpx.Response(500),
        },
    )
    fake.places.append(place("r3", "Third", lat=1, lng=1))
    entries = await fake.client().fetch_nearby(ORIGIN)

    links = {e.id: e.external_link for e in entries}
    assert links == {"r1": None, "r2": None, "r3": "https://maps.google.com/?cid=r3"}


@pytest.mark.asyncio
async def test_zero_results_is_empty_not_an_error() -> None:
    fake = FakePlaces([R1], status="ZERO_RESULTS")
    assert await fake.client().fetch_nearby(ORIGIN) == []
    assert len(fake.requests) == 1


@pytest.mark.asyncio
async def test_other_status_is_a_provider_error() -> None:
    fake = FakePlaces([R1], status="REQUEST_DENIED")
    with pytest.raises(ProviderError) as exc_info:
        await fake.client().fetch_nearby(ORIGIN)
    assert exc_info.value.status == "REQUEST_DENIED"


@pytest.mark.asyncio
async def test_http_error_is_a_provider_error() -> None:
    client = PlacesClient(
        "test-key",
        http_client=httpx.AsyncClient(
            base_url="https://places.test/",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        ),
    )
    with pytest.raises(ProviderError) as exc_info:
        await client.fetch_nearby(ORIGIN)
    assert exc_info.value.status == 503


@pytest.mark.asyncio
async def test_transport_failure_is_a_provider_error() -> None:
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = PlacesClient(
        "test-key",
        http_client=httpx.AsyncClient(
            base_url="https://places.test/",
            transport=httpx.MockTransport(unreachable),
        ),
    )
    with pytest.raises(ProviderError):
        await client.fetch_nearby(ORIGIN)


class Settings:
    google_places_api_key = None


def test_missing_api_key_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError):
        PlacesClient(None)
    with pytest.raises(ConfigurationError):
        PlacesClient.from_config(Settings())


@pytest.mark.asyncio
async def test_fetch_photo_streams_the_image() -> None:
    fake = FakePlaces([])
    resp = await fake.client().fetch_photo("photo-r1")
    try:
        assert await resp.aread() == b"jpeg-bytes"
    finally:
        await resp.aclose()

    (request,) = fake.requests
    assert request.url.params["photoreference"] == "photo-r1"
    assert request.url.params["maxwidth"] == "400"


@pytest.mark.asyncio
async def test_fetch_photo_failure_keeps_upstream_status() -> None:
    client = PlacesClient(
        "test-key",
        http_client=httpx.AsyncClient(
            base_url="https://places.test/",
            transport=httpx.MockTransport(lambda request: httpx.Response(404)),
        ),
    )
    with pytest.raises(ProviderError) as exc_info:
        await client.fetch_photo("missing")
    assert exc_info.value.status == 404
