"""Road capture: live path recording and manual point-by-point drawing."""

from enum import Enum
from typing import Optional

from .config import CONFIG
from .errors import PathTooShortError, PreconditionError
from .geo import planar_distance
from .gps import GeoSampler, LocationWatch
from .logger import Logger, NULL_LOGGER
from .models import House, Location, NetworkSnapshot, Road, make_id
from .store import NetworkStore


class RecorderState(Enum):
    IDLE = "idle"
    RECORDING = "recording"


class PathRecorder:
    """Records the walk/drive from reception to a new house.

    Samples closer than `epsilon` to the last accepted point are dropped.
    stop() commits the new house and its road together, or nothing.
    """

    def __init__(self, store: NetworkStore, sampler: Optional[GeoSampler] = None,
                 epsilon: Optional[float] = None, min_points: Optional[int] = None,
                 logger: Optional[Logger] = None):
        self.store = store
        self.sampler = sampler
        self.epsilon = epsilon if epsilon is not None else CONFIG["sample_epsilon"]
        self.min_points = min_points if min_points is not None else CONFIG["min_recording_points"]
        self.logger = logger or NULL_LOGGER
        self.state = RecorderState.IDLE
        self.label: Optional[str] = None
        self._points: list[Location] = []
        self._watch: Optional[LocationWatch] = None
        self.dropped = 0

    @property
    def is_recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    @property
    def points(self) -> tuple[Location, ...]:
        return tuple(self._points)

    def start(self, label: str):
        """Begin recording a path from reception to the house `label`"""
        if self.is_recording:
            raise PreconditionError("A recording is already in progress")
        label = label.strip()
        if not label:
            raise PreconditionError("House number is required")
        snapshot = self.store.load()
        if snapshot.reception is None:
            raise PreconditionError("Set the reception location before recording")

        self.label = label
        self._points = [snapshot.reception]
        self.dropped = 0
        self.state = RecorderState.RECORDING
        self.logger.log("Recording started", {"label": label})

        if self.sampler is not None:
            self._watch = self.sampler.watch(self.on_sample)

    def on_sample(self, location: Location) -> bool:
        """Offer a live fix. Returns True if it was added to the path."""
        if not self.is_recording:
            return False
        if planar_distance(location, self._points[-1]) <= self.epsilon:
            self.dropped += 1
            return False
        self._points.append(location)
        return True

    def stop(self) -> tuple[House, Road]:
        """Finish recording and commit the house and its road"""
        if not self.is_recording:
            raise PreconditionError("No recording in progress")

        if len(self._points) < self.min_points:
            count = len(self._points)
            self.logger.log("Recording discarded, path too short", {
                "points": count,
                "minimum": self.min_points,
            })
            self._reset()
            raise PathTooShortError(count, self.min_points)

        points = tuple(self._points)
        label = self.label
        created = []

        def mutate(snapshot: NetworkSnapshot) -> NetworkSnapshot:
            house = House(id=make_id(h.id for h in snapshot.houses), number=label,
                          location=points[-1])
            road = Road(id=make_id(r.id for r in snapshot.roads), points=points)
            created.append((house, road))
            return snapshot.with_house_and_road(house, road)

        snapshot = self.store.commit(mutate)
        house, road = created[-1]
        self.logger.log("Recording committed", {
            "house": house.number,
            "points": len(points),
            "dropped": self.dropped,
            "version": snapshot.version,
        })
        self._reset()
        return house, road

    def cancel(self):
        """Discard the path in progress"""
        if self.is_recording:
            self.logger.log("Recording cancelled", {"points": len(self._points)})
        self._reset()

    def _reset(self):
        if self._watch is not None:
            self._watch.cancel()
            self._watch = None
        self._points = []
        self.label = None
        self.state = RecorderState.IDLE


class RoadDrawer:
    """Manual road digitization from tapped points, no filtering"""

    def __init__(self, store: NetworkStore, min_points: Optional[int] = None,
                 logger: Optional[Logger] = None):
        self.store = store
        self.min_points = min_points if min_points is not None else CONFIG["min_road_points"]
        self.logger = logger or NULL_LOGGER
        self._points: list[Location] = []

    @property
    def points(self) -> tuple[Location, ...]:
        return tuple(self._points)

    def add_point(self, location: Location):
        self._points.append(location)

    def finish(self) -> Road:
        """Commit the drawn road. A too-short draft is kept for more points."""
        if len(self._points) < self.min_points:
            raise PathTooShortError(len(self._points), self.min_points)
        road = self.store.add_road(self._points)
        self.logger.log("Road drawn", {"road": road.id, "points": len(road.points)})
        self._points = []
        return road

    def cancel(self):
        self._points = []
