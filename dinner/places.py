"""Google Places, restricted to what the catalog needs.

The nearby search is deliberately broad, restaurants within a radius and
nothing else, so one cached response serves every rating, price and distance
filter applied further up.
"""

import asyncio
import logging
from typing import Any, Protocol, Self

import httpx

from dinner.errors import ConfigurationError, ProviderError
from dinner.models import CatalogEntry, Coordinate


logger = logging.getLogger(__name__)


BASE_URL = "https://maps.googleapis.com/maps/api/place/"
TIMEOUT = 20
DEFAULT_RADIUS = 1600
PHOTO_MAX_WIDTH = 400
PRICE_LEVELS = range(1, 5)


class PlacesSettings(Protocol):
    google_places_api_key: str | None


def places_client_factory(
    api_key: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    # The key rides on every request as a query parameter and never leaves here.
    return httpx.AsyncClient(
        base_url=BASE_URL,
        params={"key": api_key},
        timeout=TIMEOUT,
        transport=transport,
    )


def _to_entry(place: dict[str, Any], details: dict[str, Any]) -> CatalogEntry:
    location = place["geometry"]["location"]
    price_level = place.get("price_level")
    photos = place.get("photos") or [{}]
    return CatalogEntry(
        id=place["place_id"],
        name=place["name"],
        location=Coordinate(lat=location["lat"], lng=location["lng"]),
        price_level=price_level if price_level in PRICE_LEVELS else None,
        rating=place.get("rating"),
        photo_ref=photos[0].get("photo_reference"),
        external_link=details.get("url"),
    )


class PlacesClient:
    @classmethod
    def from_config(cls, config: PlacesSettings) -> Self:
        return cls(config.google_places_api_key)

    def __init__(
        self,
        api_key: str | None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("GOOGLE_PLACES_API_KEY must be set.")
        self.http_client = (
            places_client_factory(api_key) if http_client is None else http_client
        )

    async def fetch_nearby(
        self,
        origin: Coordinate,
        radius: int = DEFAULT_RADIUS,
    ) -> list[CatalogEntry]:
        """Restaurants within `radius` meters of `origin`, with their map links.

        Details are looked up in parallel. A failed lookup costs that one
        restaurant its link, not the whole batch.
        """
        places = await self._nearby_search(origin, radius)
        details = await asyncio.gather(
            *(self._details_or_empty(place["place_id"]) for place in places)
        )
        logger.info(
            "Fetched %d restaurants within %dm of %s", len(places), radius, origin
        )
        return [_to_entry(place, detail) for place, detail in zip(places, details)]

    async def fetch_photo(
        self,
        photo_ref: str,
        *,
        max_width: int = PHOTO_MAX_WIDTH,
    ) -> httpx.Response:
        """Open a streamed response for a photo. The caller must close it."""
        request = self.http_client.build_request(
            "GET",
            "photo",
            params={"maxwidth": max_width, "photoreference": photo_ref},
        )
        try:
            resp = await self.http_client.send(
                request, stream=True, follow_redirects=True
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Place provider unreachable: {e!r}") from e
        if resp.is_error:
            await resp.aclose()
            raise ProviderError("Failed to fetch photo.", status=resp.status_code)
        return resp

    async def close(self) -> None:
        await self.http_client.aclose()

    async def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self.http_client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Place provider error: {e.response.reason_phrase}",
                status=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Place provider unreachable: {e!r}") from e
        except ValueError as e:
            raise ProviderError("Place provider sent malformed JSON.") from e

    async def _nearby_search(
        self, origin: Coordinate, radius: int
    ) -> list[dict[str, Any]]:
        data = await self._get_json(
            "nearbysearch/json",
            {
                "location": f"{origin.lat},{origin.lng}",
                "radius": str(radius),
                "type": "restaurant",
            },
        )
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise ProviderError(f"Place provider error: {status}", status=status)
        return data.get("results") or []

    async def _place_details(self, place_id: str) -> dict[str, Any]:
        data = await self._get_json(
            "details/json", {"place_id": place_id, "fields": "url"}
        )
        status = data.get("status")
        if status != "OK":
            raise ProviderError(f"Place provider error: {status}", status=status)
        return data.get("result") or {}

    async def _details_or_empty(self, place_id: str) -> dict[str, Any]:
        try:
            return await self._place_details(place_id)
        except ProviderError as e:
            logger.warning("No details for %s: %s", place_id, e.message)
            return {}
