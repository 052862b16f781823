"""
Error taxonomy shared by the town-level engine.
"""


class TownError(Exception):
    """Base class for every error raised by the town flow engine."""


class UnknownTown(TownError):
    """Raised when a town id does not resolve to a stored town."""

    def __init__(self, town_id):
        self.town_id = town_id
        super().__init__(f"Town '{town_id}' was not found")
