"""What the routes call. Merges the catalog with live attendance."""

from dinner.catalog import Catalog
from dinner.geo import distance
from dinner.membership import MembershipManager
from dinner.models import Attendee, Coordinate, RestaurantDetail
from dinner.places import DEFAULT_RADIUS
from dinner.schemas import parse_join, parse_leave


async def get_all_details(
    *,
    user_id: str,
    origin: Coordinate,
    catalog: Catalog,
    membership: MembershipManager,
    radius: int | None = None,
) -> list[RestaurantDetail]:
    """Every known restaurant with its distance from `origin` and attendance.

    Unsorted and unfiltered, presentation is up to the caller. Attendance is
    read fresh on every call.
    """
    origin = Coordinate(*origin)
    radius = DEFAULT_RADIUS if radius is None else radius
    await catalog.get_or_fetch(origin, radius)

    entries = await catalog.list_all()
    attendance = await membership.attendance_by_restaurant()
    group = await membership.current_group(user_id)
    attending = None if group is None else group.restaurant_id

    return [
        RestaurantDetail(
            entry,
            distance=distance(origin, entry.location),
            attendee_count=attendance.get(entry.id, 0),
            is_user_attending=entry.id == attending,
        )
        for entry in entries
    ]


async def join_dinner(
    user_id: str,
    restaurant_id: str,
    *,
    membership: MembershipManager,
) -> Attendee:
    action = parse_join(user_id, restaurant_id)
    return await membership.join(action.user_id, action.restaurant_id)


async def leave_dinner(
    user_id: str,
    *,
    membership: MembershipManager,
) -> Attendee | None:
    action = parse_leave(user_id)
    return await membership.leave(action.user_id)
