from databases import Database
import pytest

from dinner.cache import LRUCache
from dinner.catalog import Catalog
from dinner.errors import ProviderError, ValidationError
from dinner.membership import MembershipManager
from dinner.repository import RestaurantRepository
from dinner.services import get_all_details, join_dinner, leave_dinner

from .conftest import ORIGIN, R1, R2, FakePlaces, count_rows


async def details_by_id(user_id: str, catalog: Catalog, membership: MembershipManager):
    details = await get_all_details(
        user_id=user_id, origin=ORIGIN, catalog=catalog, membership=membership
    )
    return {d.id: d for d in details}


@pytest.mark.asyncio
async def test_joined_restaurant_shows_its_attendee(
    catalog: Catalog, membership: MembershipManager
) -> None:
    await get_all_details(
        user_id="U1", origin=ORIGIN, catalog=catalog, membership=membership
    )
    await join_dinner("U1", "r1", membership=membership)

    details = await details_by_id("U1", catalog, membership)

    r1, r2 = details["r1"], details["r2"]
    assert (r1.attendee_count, r1.is_user_attending) == (1, True)
    assert (r2.attendee_count, r2.is_user_attending) == (0, False)
    assert r1.rating == 4.5 and r1.price_level == 2
    assert r2.rating == 3.0 and r2.price_level == 1
    assert r1.distance == 0.2


@pytest.mark.asyncio
async def test_leaving_clears_count_and_group(
    catalog: Catalog, membership: MembershipManager, database: Database
) -> None:
    await details_by_id("U1", catalog, membership)
    await join_dinner("U1", "r1", membership=membership)

    await leave_dinner("U1", membership=membership)
    details = await details_by_id("U1", catalog, membership)

    assert details["r1"].attendee_count == 0
    assert not details["r1"].is_user_attending
    assert await count_rows(
        database,
        "SELECT COUNT(*) FROM dinner_groups WHERE restaurant_id = :restaurant_id",
        restaurant_id="r1",
    ) == 0


@pytest.mark.asyncio
async def test_attendance_is_live_while_catalog_is_cached(
    catalog: Catalog, membership: MembershipManager, fake_places: FakePlaces
) -> None:
    await details_by_id("U1", catalog, membership)
    await join_dinner("U2", "r2", membership=membership)
    details = await details_by_id("U1", catalog, membership)

    assert details["r2"].attendee_count == 1
    assert not details["r2"].is_user_attending
    assert len(fake_places.nearby_requests) == 1


@pytest.mark.asyncio
async def test_default_radius(
    catalog: Catalog, membership: MembershipManager, fake_places: FakePlaces
) -> None:
    await details_by_id("U1", catalog, membership)
    (request,) = fake_places.nearby_requests
    assert request.url.params["radius"] == "1600"


@pytest.mark.asyncio
async def test_details_span_the_whole_catalog(
    catalog: Catalog, membership: MembershipManager, fake_places: FakePlaces
) -> None:
    await details_by_id("U1", catalog, membership)
    fake_places.places = [R1]
    details = await get_all_details(
        user_id="U1",
        origin=ORIGIN,
        radius=800,
        catalog=catalog,
        membership=membership,
    )
    assert {d.id for d in details} == {"r1", "r2"}


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id, restaurant_id, field", [
    ("", "r1", "user_id"),
    ("  ", "r1", "user_id"),
    ("U1", "", "restaurant_id"),
])
async def test_join_rejects_blank_ids(
    membership: MembershipManager, user_id: str, restaurant_id: str, field: str
) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await join_dinner(user_id, restaurant_id, membership=membership)
    assert field in exc_info.value.fields


@pytest.mark.asyncio
async def test_leave_rejects_blank_user(membership: MembershipManager) -> None:
    with pytest.raises(ValidationError) as exc_info:
        await leave_dinner("", membership=membership)
    assert "user_id" in exc_info.value.fields


@pytest.mark.asyncio
async def test_double_leave_succeeds(
    catalog: Catalog, membership: MembershipManager
) -> None:
    await details_by_id("U1", catalog, membership)
    await join_dinner("U1", "r1", membership=membership)

    assert await leave_dinner("U1", membership=membership) is not None
    assert await leave_dinner("U1", membership=membership) is None


@pytest.mark.asyncio
async def test_provider_failure_surfaces(
    restaurants: RestaurantRepository, membership: MembershipManager
) -> None:
    fake = FakePlaces([R1, R2], status="REQUEST_DENIED")
    catalog = Catalog(places=fake.client(), repository=restaurants, cache=LRUCache())

    with pytest.raises(ProviderError):
        await details_by_id("U1", catalog, membership)
