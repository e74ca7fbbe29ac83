"""Tables behind the catalog and the dinner groups.

The one-group-per-user and one-group-per-restaurant rules live here as UNIQUE
constraints. Writers that race past the application checks fail on them.
"""

import contextlib
from datetime import datetime, timezone
import logging
import sqlite3
from typing import AsyncIterator, Callable
from uuid import uuid4

from databases import Database
from databases.interfaces import Record

from dinner.errors import ConflictError
from dinner.models import Attendee, CatalogEntry, Coordinate, DinnerGroup


logger = logging.getLogger(__name__)


CREATE_RESTAURANTS_TABLE = """
CREATE TABLE IF NOT EXISTS restaurants (
    id VARCHAR(256) PRIMARY KEY,
    name VARCHAR(512) NOT NULL,
    price_level INTEGER,
    rating REAL,
    lat REAL NOT NULL,
    lng REAL NOT NULL,
    photo_ref VARCHAR(1024),
    maps_url VARCHAR(1024),
    created_at VARCHAR(64) NOT NULL,
    updated_at VARCHAR(64) NOT NULL
)
"""


CREATE_DINNER_GROUPS_TABLE = """
CREATE TABLE IF NOT EXISTS dinner_groups (
    id VARCHAR(64) PRIMARY KEY,
    restaurant_id VARCHAR(256) NOT NULL UNIQUE REFERENCES restaurants (id),
    notes VARCHAR(3000),
    created_at VARCHAR(64) NOT NULL
)
"""


CREATE_ATTENDEES_TABLE = """
CREATE TABLE IF NOT EXISTS attendees (
    id VARCHAR(64) PRIMARY KEY,
    user_id VARCHAR(256) NOT NULL UNIQUE,
    dinner_group_id VARCHAR(64) NOT NULL REFERENCES dinner_groups (id),
    created_at VARCHAR(64) NOT NULL
)
"""


CREATE_ATTENDEES_GROUP_INDEX = """
CREATE INDEX IF NOT EXISTS ix_attendees_dinner_group_id ON attendees (dinner_group_id)
"""


# Location is left out of the update branch, it never changes once written.
UPSERT_RESTAURANT = """
INSERT INTO restaurants
    (id, name, price_level, rating, lat, lng, photo_ref, maps_url, created_at, updated_at)
VALUES
    (:id, :name, :price_level, :rating, :lat, :lng, :photo_ref, :maps_url, :now, :now)
ON CONFLICT (id) DO UPDATE SET
    name = excluded.name,
    price_level = excluded.price_level,
    rating = excluded.rating,
    photo_ref = excluded.photo_ref,
    maps_url = excluded.maps_url,
    updated_at = excluded.updated_at
"""


GET_RESTAURANT = "SELECT * FROM restaurants WHERE id = :id"


LIST_RESTAURANTS = "SELECT * FROM restaurants"


GET_ATTENDEE_BY_USER = """
SELECT a.id, a.user_id, a.dinner_group_id, a.created_at, g.restaurant_id
FROM attendees a JOIN dinner_groups g ON g.id = a.dinner_group_id
WHERE a.user_id = :user_id
"""


CREATE_ATTENDEE = """
INSERT INTO attendees (id, user_id, dinner_group_id, created_at)
VALUES (:id, :user_id, :dinner_group_id, :created_at)
"""


DELETE_ATTENDEE = "DELETE FROM attendees WHERE id = :id RETURNING id"


COUNT_GROUP_ATTENDEES = (
    "SELECT COUNT(*) FROM attendees WHERE dinner_group_id = :dinner_group_id"
)


CREATE_DINNER_GROUP = """
INSERT INTO dinner_groups (id, restaurant_id, created_at)
VALUES (:id, :restaurant_id, :created_at)
ON CONFLICT (restaurant_id) DO NOTHING
"""


GET_DINNER_GROUP_BY_RESTAURANT = (
    "SELECT * FROM dinner_groups WHERE restaurant_id = :restaurant_id"
)


DELETE_EMPTY_DINNER_GROUP = """
DELETE FROM dinner_groups
WHERE id = :id
AND NOT EXISTS (SELECT 1 FROM attendees WHERE dinner_group_id = :id)
"""


COUNT_ATTENDANCE = """
SELECT g.restaurant_id, COUNT(a.id) AS attendee_count
FROM dinner_groups g JOIN attendees a ON a.dinner_group_id = g.id
GROUP BY g.restaurant_id
"""


GET_CURRENT_GROUP = """
SELECT
    g.id AS group_id,
    g.notes AS group_notes,
    g.created_at AS group_created_at,
    r.*
FROM attendees a
JOIN dinner_groups g ON g.id = a.dinner_group_id
JOIN restaurants r ON r.id = g.restaurant_id
WHERE a.user_id = :user_id
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_unique_violation(e: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(e)


def is_lock_contention(e: sqlite3.OperationalError) -> bool:
    # "database is locked" or "database table is locked"
    return "locked" in str(e)


async def create_tables(db: Database) -> None:
    for query in (
        CREATE_RESTAURANTS_TABLE,
        CREATE_DINNER_GROUPS_TABLE,
        CREATE_ATTENDEES_TABLE,
        CREATE_ATTENDEES_GROUP_INDEX,
    ):
        await db.execute(query=query)  # pyright: ignore[reportUnknownMemberType]


def _row_to_restaurant(row: Record) -> CatalogEntry:
    return CatalogEntry(
        id=row["id"],
        name=row["name"],
        location=Coordinate(lat=row["lat"], lng=row["lng"]),
        price_level=row["price_level"],
        rating=row["rating"],
        photo_ref=row["photo_ref"],
        external_link=row["maps_url"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_attendee(row: Record) -> Attendee:
    return Attendee(
        id=row["id"],
        user_id=row["user_id"],
        dinner_group_id=row["dinner_group_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        restaurant_id=row["restaurant_id"],
    )


def _row_to_group(row: Record) -> DinnerGroup:
    return DinnerGroup(
        id=row["id"],
        restaurant_id=row["restaurant_id"],
        notes=row["notes"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class RestaurantRepository:
    """Catalog store. Entries are upserted by provider id and never deleted."""

    def __init__(
        self,
        db: Database,
        *,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.now = now

    async def upsert(self, entry: CatalogEntry) -> CatalogEntry:
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            UPSERT_RESTAURANT,
            values={
                "id": entry.id,
                "name": entry.name,
                "price_level": entry.price_level,
                "rating": entry.rating,
                "lat": entry.location.lat,
                "lng": entry.location.lng,
                "photo_ref": entry.photo_ref,
                "maps_url": entry.external_link,
                "now": self.now().isoformat(),
            },
        )
        stored = await self.get(entry.id)
        if stored is None:
            raise RuntimeError(f"Restaurant {entry.id} missing after upsert.")
        return stored

    async def get(self, id: str) -> CatalogEntry | None:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            GET_RESTAURANT, values={"id": id}
        )
        return None if row is None else _row_to_restaurant(row)

    async def list(self) -> list[CatalogEntry]:
        rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
            LIST_RESTAURANTS
        )
        return [_row_to_restaurant(r) for r in rows]


class MembershipRepository:
    """Dinner group and attendee rows. Only the membership manager writes here."""

    def __init__(
        self,
        db: Database,
        *,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.now = now

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """A write transaction. Losing the write lock is a ConflictError."""
        try:
            async with self.db.transaction():
                yield
        except sqlite3.OperationalError as e:
            if not is_lock_contention(e):
                raise
            logger.warning("Dinner groups busy: %s", e)
            raise ConflictError("Dinner groups are busy, try again.") from e

    async def get_attendee(self, user_id: str) -> Attendee | None:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            GET_ATTENDEE_BY_USER, values={"user_id": user_id}
        )
        return None if row is None else _row_to_attendee(row)

    async def create_attendee(self, user_id: str, group: DinnerGroup) -> Attendee:
        attendee = Attendee(
            id=uuid4().hex,
            user_id=user_id,
            dinner_group_id=group.id,
            created_at=self.now(),
            restaurant_id=group.restaurant_id,
        )
        try:
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                CREATE_ATTENDEE,
                values={
                    "id": attendee.id,
                    "user_id": attendee.user_id,
                    "dinner_group_id": attendee.dinner_group_id,
                    "created_at": attendee.created_at.isoformat(),
                },
            )
        except sqlite3.IntegrityError as e:
            if not is_unique_violation(e):
                raise
            raise ConflictError(
                f"User {user_id} has already joined another dinner group."
            ) from e
        return attendee

    async def delete_attendee(self, id: str) -> bool:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            DELETE_ATTENDEE, values={"id": id}
        )
        return row is not None

    async def count_attendees(self, dinner_group_id: str) -> int:
        count = await self.db.fetch_val(  # pyright: ignore[reportUnknownMemberType]
            COUNT_GROUP_ATTENDEES, values={"dinner_group_id": dinner_group_id}
        )
        return int(count or 0)

    async def get_or_create_group(self, restaurant_id: str) -> DinnerGroup:
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            CREATE_DINNER_GROUP,
            values={
                "id": uuid4().hex,
                "restaurant_id": restaurant_id,
                "created_at": self.now().isoformat(),
            },
        )
        group = await self.get_group(restaurant_id)
        if group is None:
            raise RuntimeError(f"Dinner group for {restaurant_id} missing after upsert.")
        return group

    async def get_group(self, restaurant_id: str) -> DinnerGroup | None:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            GET_DINNER_GROUP_BY_RESTAURANT, values={"restaurant_id": restaurant_id}
        )
        return None if row is None else _row_to_group(row)

    async def delete_group_if_empty(self, id: str) -> None:
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            DELETE_EMPTY_DINNER_GROUP, values={"id": id}
        )

    async def attendance(self) -> dict[str, int]:
        rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
            COUNT_ATTENDANCE
        )
        return {r["restaurant_id"]: r["attendee_count"] for r in rows}

    async def current_group(self, user_id: str) -> DinnerGroup | None:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            GET_CURRENT_GROUP, values={"user_id": user_id}
        )
        if row is None:
            return None
        return DinnerGroup(
            id=row["group_id"],
            restaurant_id=row["id"],
            notes=row["group_notes"],
            created_at=datetime.fromisoformat(row["group_created_at"]),
            restaurant=_row_to_restaurant(row),
        )
