"""How the restaurant page slices the details.

Two lists. Dinner plans are the restaurants someone is going to, busiest
first. Nearby is everything else, filtered, best rated first, closest first
on a tie, top 15.
"""

from typing import Any, Iterable, Mapping, Self

from pydantic import BaseModel, Field, field_validator
import pydantic

from dinner.models import RestaurantDetail


METERS_PER_MILE = 1609
NEARBY_LIMIT = 15


class ListingFilters(BaseModel):
    distance: int | None = Field(default=None, ge=1)
    rating: int | None = Field(default=None, ge=1, le=4)
    price: int | None = Field(default=None, ge=1, le=4)

    @field_validator("distance", "rating", "price", mode="before")
    @classmethod
    def whole_number(cls, v: object) -> object:
        """Query strings must be plain digits, the links only ever carry those."""
        if isinstance(v, str) and not v.isdecimal():
            raise ValueError("must be a whole number")
        return v

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> Self:
        """Read filters from query params. Anything unusable counts as unset."""
        values: dict[str, int] = {}
        for name in cls.model_fields:
            raw = params.get(name)
            if not raw:
                continue
            try:
                parsed = cls.model_validate({name: raw})
            except pydantic.ValidationError:
                continue
            values[name] = getattr(parsed, name)
        return cls(**values)

    def to_query(self) -> dict[str, int]:
        return self.model_dump(exclude_none=True)


def radius_for(filters: ListingFilters, default: int) -> int:
    if filters.distance is None:
        return default
    return filters.distance * METERS_PER_MILE


def dinner_plans(details: Iterable[RestaurantDetail]) -> list[RestaurantDetail]:
    attended = [d for d in details if d.attendee_count > 0]
    return sorted(attended, key=lambda d: d.attendee_count, reverse=True)


def nearby(
    details: Iterable[RestaurantDetail],
    filters: ListingFilters,
    *,
    limit: int = NEARBY_LIMIT,
) -> list[RestaurantDetail]:
    rows = [d for d in details if d.attendee_count == 0]
    if filters.distance is not None:
        rows = [d for d in rows if d.distance <= filters.distance]
    if filters.rating is not None:
        rows = [d for d in rows if (d.rating or 0) >= filters.rating]
    if filters.price is not None:
        rows = [d for d in rows if d.price_level == filters.price]
    rows.sort(key=lambda d: (-(d.rating or 0), d.distance))
    return rows[:limit]
