"""
Route window resolution: which coarse time-of-day / day-of-week bucket a
moment falls into.

Bucket boundaries (local time, hours inclusive):
    Saturday, Sunday     -> weekend
    00-10                -> morning
    11-14                -> lunch
    15-18                -> after_work
    19-21                -> evening
    22-23                -> weekend on Friday night, otherwise morning
"""
from datetime import datetime
from typing import Optional

from recommendations.exceptions import UnknownRouteWindow
from recommendations.models import RouteWindow


def _is_weekend(day_of_week: int) -> bool:
    """day_of_week follows datetime.weekday(): Monday=0 .. Sunday=6"""
    return day_of_week >= 5


def parse_route_window(value) -> RouteWindow:
    """
    Raises:
        UnknownRouteWindow: if the value is not a known window
    """
    if isinstance(value, RouteWindow):
        return value
    if not isinstance(value, str):
        raise UnknownRouteWindow(value)
    try:
        return RouteWindow(value.strip().lower())
    except ValueError:
        raise UnknownRouteWindow(value)


def window_from_day_hour(day_of_week: int, hour: int) -> RouteWindow:
    day_of_week = max(0, min(6, day_of_week))
    hour = max(0, min(23, hour))
    if _is_weekend(day_of_week):
        return RouteWindow.WEEKEND
    if hour <= 10:
        return RouteWindow.MORNING
    if hour <= 14:
        return RouteWindow.LUNCH
    if hour <= 18:
        return RouteWindow.AFTER_WORK
    if hour <= 21:
        return RouteWindow.EVENING
    # Late night points at the next window
    return RouteWindow.WEEKEND if day_of_week == 4 else RouteWindow.MORNING


def resolve_route_window(now: datetime, override=None) -> RouteWindow:
    """
    An explicit override wins outright. Otherwise the window is derived
    from now, which must already be in the town's local time.
    """
    if override:
        return parse_route_window(override)
    return window_from_day_hour(now.weekday(), now.hour)


def window_label(window) -> str:
    return parse_route_window(window).label


def optional_route_window(value) -> Optional[RouteWindow]:
    """Like parse_route_window, but blank values mean no override."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_route_window(value)
