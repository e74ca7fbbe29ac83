from pathlib import Path
from typing import Any, AsyncIterator

from databases import Database
import httpx
import pytest
import pytest_asyncio

from dinner.cache import LRUCache
from dinner.catalog import Catalog
from dinner.membership import MembershipManager
from dinner.models import Coordinate
from dinner.places import PlacesClient, places_client_factory
from dinner.repository import MembershipRepository, RestaurantRepository, create_tables


ORIGIN = Coordinate(lat=40.7596, lng=-111.8867)


def place(
    place_id: str,
    name: str,
    *,
    lat: float,
    lng: float,
    rating: float | None = None,
    price_level: int | None = None,
    photo: str | None = None,
) -> dict[str, Any]:
    """A nearby-search result as the provider sends it."""
    result: dict[str, Any] = {
        "place_id": place_id,
        "name": name,
        "geometry": {"location": {"lat": lat, "lng": lng}},
    }
    if rating is not None:
        result["rating"] = rating
    if price_level is not None:
        result["price_level"] = price_level
    if photo is not None:
        result["photos"] = [
            {"photo_reference": photo, "height": 1, "width": 1, "html_attributions": []}
        ]
    return result


R1 = place("r1", "Bistro One", lat=40.7608, lng=-111.8910, rating=4.5, price_level=2, photo="photo-r1")
R2 = place("r2", "Cafe Two", lat=40.7650, lng=-111.8900, rating=3.0, price_level=1)


class FakePlaces:
    """Stands in for the Google Places endpoints."""

    def __init__(
        self,
        places: list[dict[str, Any]],
        *,
        status: str = "OK",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.places = places
        self.status = status
        self.details = {} if details is None else details
        self.requests: list[httpx.Request] = []

    @property
    def nearby_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("nearbysearch/json")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("nearbysearch/json"):
            results = self.places if self.status == "OK" else []
            return httpx.Response(200, json={"status": self.status, "results": results})
        if path.endswith("details/json"):
            place_id = request.url.params["place_id"]
            detail = self.details.get(
                place_id,
                {"status": "OK", "result": {"url": f"https://maps.google.com/?cid={place_id}"}},
            )
            if isinstance(detail, httpx.Response):
                return detail
            return httpx.Response(200, json=detail)
        if path.endswith("photo"):
            return httpx.Response(
                200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg"}
            )
        return httpx.Response(404)

    def http_client(self) -> httpx.AsyncClient:
        return places_client_factory("test-key", transport=httpx.MockTransport(self.handler))

    def client(self) -> PlacesClient:
        return PlacesClient("test-key", http_client=self.http_client())


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "codinner.db"


@pytest_asyncio.fixture
async def database(db_path: Path) -> AsyncIterator[Database]:
    db = Database(f"sqlite+aiosqlite:///{db_path}")
    await db.connect()
    await create_tables(db)
    yield db
    await db.disconnect()


@pytest.fixture
def fake_places() -> FakePlaces:
    return FakePlaces([R1, R2])


@pytest.fixture
def restaurants(database: Database) -> RestaurantRepository:
    return RestaurantRepository(database)


@pytest.fixture
def catalog(fake_places: FakePlaces, restaurants: RestaurantRepository) -> Catalog:
    return Catalog(places=fake_places.client(), repository=restaurants, cache=LRUCache())


@pytest.fixture
def membership(database: Database, restaurants: RestaurantRepository) -> MembershipManager:
    return MembershipManager(
        repository=MembershipRepository(database),
        restaurants=restaurants,
    )


async def count_rows(db: Database, query: str, **values: Any) -> int:
    return int(await db.fetch_val(query, values=values or None))
