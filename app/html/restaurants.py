from urllib.parse import urlencode

from jinja2 import Environment

from dinner.listing import ListingFilters, dinner_plans, nearby
from dinner.models import RestaurantDetail


DISTANCE_CHOICES = (1, 2, 5, 10)
RATING_CHOICES = (1, 2, 3, 4)
PRICE_CHOICES = (1, 2, 3, 4)


class RestaurantsPage:
    def __init__(
        self,
        details: list[RestaurantDetail],
        *,
        filters: ListingFilters,
        environment: Environment,
        template_name: str = "restaurants.html",
    ) -> None:
        self.details = details
        self.filters = filters
        self.env = environment
        self.name = template_name

    @property
    def dinner_plans(self) -> list[RestaurantDetail]:
        return dinner_plans(self.details)

    @property
    def nearby(self) -> list[RestaurantDetail]:
        return nearby(self.details, self.filters)

    def toggle_url(self, name: str, value: int) -> str:
        """Link that switches one filter on, or off when it is already on."""
        query = self.filters.to_query()
        if query.get(name) == value:
            del query[name]
        else:
            query[name] = value
        return f"/?{urlencode(query)}" if query else "/"

    def render(self) -> str:
        return self.env.get_template(self.name).render(
            page=self,
            distances=DISTANCE_CHOICES,
            ratings=RATING_CHOICES,
            prices=PRICE_CHOICES,
        )
