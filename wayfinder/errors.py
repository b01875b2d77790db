"""Error types raised by Wayfinder operations."""


class WayfinderError(Exception):
    """Base class for recoverable Wayfinder errors"""


class PreconditionError(WayfinderError):
    """An operation was attempted in a state that does not allow it"""


class PathTooShortError(WayfinderError):
    """A recorded or drawn path has too few points to be committed"""

    def __init__(self, point_count: int, minimum: int):
        super().__init__(f"Path has {point_count} points, at least {minimum} required")
        self.point_count = point_count
        self.minimum = minimum


class MalformedSnapshotError(WayfinderError):
    """Persisted network data could not be decoded"""


class LocationUnavailableError(WayfinderError):
    """The position source was denied or timed out"""
