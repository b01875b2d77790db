"""Data classes for Wayfinder."""

import re
import time
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from .errors import MalformedSnapshotError, PreconditionError


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    accuracy: Optional[float] = field(default=None, compare=False)
    timestamp: Optional[float] = field(default=None, compare=False)

    @property
    def key(self) -> tuple[float, float]:
        return (self.lat, self.lng)

    def to_dict(self) -> dict:
        d = {"lat": self.lat, "lng": self.lng}
        if self.accuracy is not None:
            d["accuracy"] = self.accuracy
        if self.timestamp is not None:
            d["timestamp"] = self.timestamp
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Location":
        return cls(
            lat=float(d["lat"]),
            lng=float(d["lng"]),
            accuracy=d.get("accuracy"),
            timestamp=d.get("timestamp"),
        )


@dataclass(frozen=True)
class House:
    id: str
    number: str  # display label, not unique
    location: Location

    def to_dict(self) -> dict:
        return {"id": self.id, "number": self.number, "location": self.location.to_dict()}

    @classmethod
    def from_dict(cls, d: dict) -> "House":
        return cls(id=str(d["id"]), number=str(d["number"]),
                   location=Location.from_dict(d["location"]))


@dataclass(frozen=True)
class Road:
    """One recorded or hand-drawn polyline"""
    id: str
    points: tuple[Location, ...]

    def to_dict(self) -> dict:
        return {"id": self.id, "points": [p.to_dict() for p in self.points]}

    @classmethod
    def from_dict(cls, d: dict) -> "Road":
        return cls(id=str(d["id"]),
                   points=tuple(Location.from_dict(p) for p in d["points"]))


def make_id(taken: Iterable[str], now: Optional[float] = None) -> str:
    """Millisecond creation timestamp, bumped until it is free in `taken`"""
    taken = set(taken)
    candidate = int((now if now is not None else time.time()) * 1000)
    while str(candidate) in taken:
        candidate += 1
    return str(candidate)


def natural_sort_key(label: str) -> list:
    """Sort key treating digit runs as numbers, so "2" sorts before "10"."""
    return [int(part) if part.isdigit() else part.lower()
            for part in re.split(r"(\d+)", label.strip())]


@dataclass(frozen=True)
class NetworkSnapshot:
    """The full recorded network at one committed version"""
    reception: Optional[Location] = None
    houses: tuple[House, ...] = ()
    roads: tuple[Road, ...] = ()
    version: int = 0

    @classmethod
    def empty(cls, version: int = 0) -> "NetworkSnapshot":
        return cls(version=version)

    @property
    def is_navigable(self) -> bool:
        return self.reception is not None

    @property
    def is_empty(self) -> bool:
        return self.reception is None and not self.houses and not self.roads

    def get_house(self, house_id: str) -> Optional[House]:
        return next((h for h in self.houses if h.id == house_id), None)

    def find_houses(self, number: str) -> list[House]:
        """Houses whose label matches `number` (trimmed, case-insensitive)"""
        wanted = number.strip().lower()
        return [h for h in self.houses if h.number.strip().lower() == wanted]

    def sorted_houses(self) -> list[House]:
        return sorted(self.houses, key=lambda h: natural_sort_key(h.number))

    def with_reception(self, location: Location) -> "NetworkSnapshot":
        return replace(self, reception=location)

    def with_house(self, house: House) -> "NetworkSnapshot":
        return replace(self, houses=self.houses + (house,))

    def with_road(self, road: Road) -> "NetworkSnapshot":
        return replace(self, roads=self.roads + (road,))

    def with_house_and_road(self, house: House, road: Road) -> "NetworkSnapshot":
        return replace(self, houses=self.houses + (house,), roads=self.roads + (road,))

    def validate(self, min_road_points: int = 2):
        """Raise PreconditionError if the snapshot breaks a network invariant"""
        house_ids = [h.id for h in self.houses]
        if len(set(house_ids)) != len(house_ids):
            raise PreconditionError("Duplicate house id")
        road_ids = [r.id for r in self.roads]
        if len(set(road_ids)) != len(road_ids):
            raise PreconditionError("Duplicate road id")
        for road in self.roads:
            if len(road.points) < min_road_points:
                raise PreconditionError(
                    f"Road {road.id} has {len(road.points)} points, at least {min_road_points} required"
                )

    def to_dict(self) -> dict:
        return {
            "reception": self.reception.to_dict() if self.reception else None,
            "houses": [h.to_dict() for h in self.houses],
            "roads": [r.to_dict() for r in self.roads],
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "NetworkSnapshot":
        try:
            reception = d.get("reception")
            return cls(
                reception=Location.from_dict(reception) if reception else None,
                houses=tuple(House.from_dict(h) for h in d.get("houses") or []),
                roads=tuple(Road.from_dict(r) for r in d.get("roads") or []),
                version=int(d.get("version") or 0),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedSnapshotError(f"Unreadable network data: {e}") from e
