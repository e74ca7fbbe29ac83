from datetime import datetime
from typing import Any, NamedTuple


class Coordinate(NamedTuple):
    lat: float
    lng: float


class CatalogEntry:
    """A restaurant as cached from the place provider."""

    def __init__(
        self,
        *,
        id: str,
        name: str,
        location: Coordinate,
        price_level: int | None = None,
        rating: float | None = None,
        photo_ref: str | None = None,
        external_link: str | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        self.id = id
        self.name = name
        self.location = location
        self.price_level = price_level
        self.rating = rating
        self.photo_ref = photo_ref
        self.external_link = external_link
        self.created_at = created_at
        self.updated_at = updated_at

    def __repr__(self) -> str:
        return f"<CatalogEntry(id={self.id}, name={self.name})>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price_level": self.price_level,
            "rating": self.rating,
            "lat": self.location.lat,
            "lng": self.location.lng,
            "photo_ref": self.photo_ref,
            "external_link": self.external_link,
        }


class DinnerGroup:
    def __init__(
        self,
        *,
        id: str,
        restaurant_id: str,
        created_at: datetime,
        notes: str | None = None,
        restaurant: CatalogEntry | None = None,
    ) -> None:
        self.id = id
        self.restaurant_id = restaurant_id
        self.created_at = created_at
        self.notes = notes
        self.restaurant = restaurant

    def __repr__(self) -> str:
        return f"<DinnerGroup(id={self.id}, restaurant_id={self.restaurant_id})>"


class Attendee:
    def __init__(
        self,
        *,
        id: str,
        user_id: str,
        dinner_group_id: str,
        created_at: datetime,
        restaurant_id: str | None = None,
    ) -> None:
        self.id = id
        self.user_id = user_id
        self.dinner_group_id = dinner_group_id
        self.created_at = created_at
        # Set when the attendee was read together with its group.
        self.restaurant_id = restaurant_id

    def __repr__(self) -> str:
        return f"<Attendee(user_id={self.user_id}, dinner_group_id={self.dinner_group_id})>"


class RestaurantDetail:
    """A catalog entry merged with distance and live attendance."""

    def __init__(
        self,
        entry: CatalogEntry,
        *,
        distance: float,
        attendee_count: int,
        is_user_attending: bool,
    ) -> None:
        self.entry = entry
        self.distance = distance
        self.attendee_count = attendee_count
        self.is_user_attending = is_user_attending

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def rating(self) -> float | None:
        return self.entry.rating

    @property
    def price_level(self) -> int | None:
        return self.entry.price_level

    @property
    def photo_ref(self) -> str | None:
        return self.entry.photo_ref

    @property
    def external_link(self) -> str | None:
        return self.entry.external_link

    def __repr__(self) -> str:
        return (
            f"<RestaurantDetail(id={self.id}, distance={self.distance}, "
            f"attendee_count={self.attendee_count})>"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.entry.to_dict(),
            "distance": self.distance,
            "attendee_count": self.attendee_count,
            "is_user_attending": self.is_user_attending,
        }
