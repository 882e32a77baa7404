from roombook.models.room import Room
from roombook.models.booking import Booking

__all__ = ["Room", "Booking"]
