"""Wayfinder - Property navigation from recorded roads."""

from .config import CONFIG
from .errors import (
    WayfinderError,
    PreconditionError,
    PathTooShortError,
    MalformedSnapshotError,
    LocationUnavailableError,
)
from .models import Location, House, Road, NetworkSnapshot
from .logger import Logger
from .geo import (
    planar_distance,
    nearest_point,
    haversine_distance,
    polyline_length,
    retry_with_backoff,
)
from .gps import GPS, HTTPLocationSource, GPSRecorder, GPSPlayback, GeoSampler
from .store import NetworkStore, StoreWatcher
from .router import RouteSynthesizer, find_route
from .recorder import PathRecorder, RecorderState, RoadDrawer
from .network import build_road_graph, network_report
from .presentation import PresentationAdapter, FoliumMap, WebMap, MarkerStyle, LineStyle
from .views import AdminGate, AdminView, EditMode, GuestView
from .__main__ import main

__all__ = [
    "CONFIG",
    "WayfinderError",
    "PreconditionError",
    "PathTooShortError",
    "MalformedSnapshotError",
    "LocationUnavailableError",
    "Location",
    "House",
    "Road",
    "NetworkSnapshot",
    "Logger",
    "planar_distance",
    "nearest_point",
    "haversine_distance",
    "polyline_length",
    "retry_with_backoff",
    "GPS",
    "HTTPLocationSource",
    "GPSRecorder",
    "GPSPlayback",
    "GeoSampler",
    "NetworkStore",
    "StoreWatcher",
    "RouteSynthesizer",
    "find_route",
    "PathRecorder",
    "RecorderState",
    "RoadDrawer",
    "build_road_graph",
    "network_report",
    "PresentationAdapter",
    "FoliumMap",
    "WebMap",
    "MarkerStyle",
    "LineStyle",
    "AdminGate",
    "AdminView",
    "EditMode",
    "GuestView",
    "main",
]
