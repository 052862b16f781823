"""
Errors raised by the flow graph, season resolver and daily composer.
"""
from towns.exceptions import TownError, UnknownTown  # noqa: F401


class InvalidTransition(TownError):
    """Raised for a transition the flow graph refuses to record (self-loops)."""

    def __init__(self, from_category, to_category):
        self.from_category = from_category
        self.to_category = to_category
        super().__init__(f"Transition {from_category} -> {to_category} is not allowed: self-loops are rejected")


class UnknownCategory(TownError):
    """Raised when a value is not part of the category vocabulary."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown category '{value}'")


class UnknownSeasonKey(TownError):
    """Raised when a value is not a known season key."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown season key '{value}'")


class UnknownRouteWindow(TownError):
    """Raised when a value is not a known route window."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown route window '{value}'")


class OverrideConflict(TownError):
    """
    Raised when a season override cannot be stored as requested,
    e.g. an inverted window or a real window on the disable sentinel date.
    """
