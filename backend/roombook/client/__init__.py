"""
Client-side booking sync: keeps a local view of bookings and the schedule
current from the server's event stream, with polling as a fallback.
"""

from .state import BookingView
from .sync import ConnectionStatus, RealtimeBookings

__all__ = ["BookingView", "ConnectionStatus", "RealtimeBookings"]
