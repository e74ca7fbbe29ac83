import logging

from dinner.cache import DEFAULT_TTL, LRU_CACHE, LRUCache, cachified
from dinner.models import CatalogEntry, Coordinate
from dinner.places import DEFAULT_RADIUS, PlacesClient
from dinner.repository import RestaurantRepository


logger = logging.getLogger(__name__)


# ~110m of latitude. Requests this close together share one provider call.
CACHE_KEY_PRECISION = 3


def cache_key(origin: Coordinate, radius: int) -> str:
    lat, lng = (round(c, CACHE_KEY_PRECISION) for c in origin)
    return f"restaurants-{lat}-{lng}-{round(radius)}"


class Catalog:
    """Restaurant facts, cached for a day and kept in the store."""

    def __init__(
        self,
        *,
        places: PlacesClient,
        repository: RestaurantRepository,
        cache: LRUCache | None = None,
        ttl: float = DEFAULT_TTL,
    ) -> None:
        self.places = places
        self.repository = repository
        self.cache = LRU_CACHE if cache is None else cache
        self.ttl = ttl

    async def get_or_fetch(
        self,
        origin: Coordinate,
        radius: int = DEFAULT_RADIUS,
    ) -> list[CatalogEntry]:
        origin = Coordinate(*origin)
        return await cachified(
            key=cache_key(origin, radius),
            cache=self.cache,
            ttl=self.ttl,
            get_fresh_value=lambda: self.fetch_and_store(origin, radius),
            check_value=lambda value: isinstance(value, list),
        )

    async def fetch_and_store(
        self,
        origin: Coordinate,
        radius: int = DEFAULT_RADIUS,
    ) -> list[CatalogEntry]:
        """Fetch from the provider and upsert every entry.

        Returns the stored rows rather than the provider payload so that what
        gets cached is exactly what the store holds.
        """
        fetched = await self.places.fetch_nearby(origin, radius)
        stored = [await self.repository.upsert(entry) for entry in fetched]
        logger.info("Upserted %d restaurants", len(stored))
        return stored

    async def list_all(self) -> list[CatalogEntry]:
        # Never cached, has to see every upsert straight away.
        return await self.repository.list()
