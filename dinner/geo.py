import math

from dinner.models import Coordinate


EARTH_RADIUS_MILES = 3958.8


def distance(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in miles between `a` and `b`, to one decimal place."""
    lat1, lng1 = a
    lat2, lng2 = b
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return round(EARTH_RADIUS_MILES * c, 1)
