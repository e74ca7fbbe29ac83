"""Who is going where.

Per user there are two states, not attending and attending one restaurant.
Switching restaurants is a leave followed by a join, never a move.
"""

import logging

from dinner.errors import NotFoundError, ValidationError
from dinner.models import Attendee, DinnerGroup
from dinner.repository import MembershipRepository, RestaurantRepository


logger = logging.getLogger(__name__)


class MembershipManager:
    def __init__(
        self,
        *,
        repository: MembershipRepository,
        restaurants: RestaurantRepository,
    ) -> None:
        self.repository = repository
        self.restaurants = restaurants

    async def current_group(self, user_id: str) -> DinnerGroup | None:
        """The user's group, with its restaurant, read live."""
        return await self.repository.current_group(user_id)

    async def attendance_by_restaurant(self) -> dict[str, int]:
        return await self.repository.attendance()

    async def is_attending(self, user_id: str, restaurant_id: str) -> bool:
        attendee = await self.repository.get_attendee(user_id)
        return attendee is not None and attendee.restaurant_id == restaurant_id

    async def join(self, user_id: str, restaurant_id: str) -> Attendee:
        """Put `user_id` in the dinner group for `restaurant_id`.

        Leaves any current group first, dissolving it if it empties. Raises
        ConflictError when another writer got an attendance in for the same
        user in between.
        """
        if await self.restaurants.get(restaurant_id) is None:
            raise ValidationError({"restaurant_id": [f"Unknown restaurant {restaurant_id}."]})

        try:
            await self.leave(user_id)
        except NotFoundError:
            logger.info("%s already left before joining %s", user_id, restaurant_id)

        async with self.repository.transaction():
            # Starts with a write, same as leave.
            group = await self.repository.get_or_create_group(restaurant_id)
            attendee = await self.repository.create_attendee(user_id, group)

        logger.info("%s joined dinner group %s at %s", user_id, group.id, restaurant_id)
        return attendee

    async def leave(self, user_id: str) -> Attendee | None:
        """Take `user_id` out of their group. No-op when they are not in one.

        The group goes with its last attendee, inside the same transaction, so
        an empty group is never visible. Raises NotFoundError when the row was
        removed by someone else between the lookup and the delete.
        """
        attendee = await self.repository.get_attendee(user_id)
        if attendee is None:
            return None

        async with self.repository.transaction():
            # The delete is the first statement so the write lock is taken up
            # front and concurrent leaves queue behind it.
            if not await self.repository.delete_attendee(attendee.id):
                raise NotFoundError(f"User {user_id} is no longer attending.")

            remaining = await self.repository.count_attendees(attendee.dinner_group_id)
            if remaining == 0:
                await self.repository.delete_group_if_empty(attendee.dinner_group_id)
                logger.info(
                    "Dissolved dinner group %s at %s",
                    attendee.dinner_group_id,
                    attendee.restaurant_id,
                )

        logger.info("%s left dinner group %s", user_id, attendee.dinner_group_id)
        return attendee
