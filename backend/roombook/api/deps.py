"""
Request-scoped access to the process-wide real-time components.
Both are created in the application lifespan and live on app.state.
"""

from fastapi import Request

from roombook.services.broadcaster import EventBroadcaster
from roombook.services.change_source import ChangeSource


def get_broadcaster(request: Request) -> EventBroadcaster:
    return request.app.state.broadcaster


def get_change_source(request: Request) -> ChangeSource:
    return request.app.state.change_source
