"""Admin and guest views over a NetworkStore and a PresentationAdapter."""

import hmac
import os
from enum import Enum
from typing import Callable, Optional

from .config import CONFIG
from .errors import LocationUnavailableError, PreconditionError
from .geo import polyline_length
from .gps import GeoSampler
from .logger import Logger, NULL_LOGGER
from .models import House, Location, NetworkSnapshot, Road
from .network import network_report
from .presentation import (
    ADMIN_ROAD_LINE,
    DRAFT_POINT_MARKER,
    DRAFT_ROAD_LINE,
    GUEST_ROAD_LINE,
    HOUSE_MARKER,
    RECEPTION_MARKER,
    ROUTE_LINE,
    SELECTED_HOUSE_MARKER,
    CancelHandle,
    PresentationAdapter,
)
from .recorder import PathRecorder, RoadDrawer
from .router import RouteSynthesizer
from .store import NetworkStore, StoreWatcher, Subscription


class AdminGate:
    """Shared-secret check guarding the admin view"""

    def __init__(self, secret: Optional[str]):
        self.secret = secret or None
        self.authenticated = False

    @classmethod
    def from_env(cls) -> "AdminGate":
        return cls(os.environ.get(CONFIG["admin_secret_env"]))

    @property
    def configured(self) -> bool:
        return self.secret is not None

    def login(self, attempt: str) -> bool:
        if self.secret is None:
            self.authenticated = False
        else:
            self.authenticated = hmac.compare_digest(attempt.encode(), self.secret.encode())
        return self.authenticated

    def logout(self):
        self.authenticated = False


class EditMode(Enum):
    VIEW = "view"
    RECEPTION = "reception"
    HOUSE = "house"
    ROAD = "road"
    RECORDING = "recording"


INSTRUCTIONS = {
    EditMode.VIEW: "Choose an action",
    EditMode.RECEPTION: "Tap the map to set the reception location",
    EditMode.HOUSE: "Tap the map to place the house, then enter its number",
    EditMode.ROAD: "Tap the map to add road points, then finish the road",
    EditMode.RECORDING: "Recording: walk or drive to the house, then stop",
}


class AdminView:
    """Editing surface: reception, houses, drawn roads and recorded paths"""

    def __init__(self, store: NetworkStore, adapter: PresentationAdapter,
                 sampler: Optional[GeoSampler] = None, logger: Optional[Logger] = None):
        self.store = store
        self.adapter = adapter
        self.logger = logger or NULL_LOGGER
        self.recorder = PathRecorder(store, sampler=sampler, logger=self.logger)
        self.drawer = RoadDrawer(store, logger=self.logger)
        self.mode = EditMode.VIEW
        self.pending_house_location: Optional[Location] = None
        self._live: Optional[CancelHandle] = None
        self._render_callbacks: list[Callable[[], None]] = []
        self.snapshot = store.load()
        self._subscription: Optional[Subscription] = store.subscribe(self._on_change)
        adapter.on_user_tap(self.handle_tap)

    def on_render(self, callback: Callable[[], None]):
        """Call callback after every redraw"""
        self._render_callbacks.append(callback)

    @property
    def instructions(self) -> str:
        if self.mode is EditMode.HOUSE and self.pending_house_location is not None:
            return "Enter the house number to save it"
        return INSTRUCTIONS[self.mode]

    def set_mode(self, mode: EditMode):
        if self.recorder.is_recording:
            raise PreconditionError("Stop or cancel the recording first")
        if mode is EditMode.RECORDING:
            raise PreconditionError("Use start_recording to begin recording")
        if self.mode is EditMode.ROAD and mode is not EditMode.ROAD:
            self.drawer.cancel()
        if mode is not EditMode.HOUSE:
            self.pending_house_location = None
        self.mode = mode
        self.render()

    def handle_tap(self, location: Location):
        if self.mode is EditMode.RECEPTION:
            self.store.set_reception(location)
            self.mode = EditMode.VIEW
            self.render()
        elif self.mode is EditMode.HOUSE:
            self.pending_house_location = location
            self.render()
        elif self.mode is EditMode.ROAD:
            self.drawer.add_point(location)
            self.render()
        elif self.mode is EditMode.RECORDING:
            # Manual sample, for adapters without a position source
            if self.recorder.on_sample(location):
                self.render()

    def save_house(self, number: str) -> House:
        if self.mode is not EditMode.HOUSE or self.pending_house_location is None:
            raise PreconditionError("Tap the map to place the house first")
        house = self.store.add_house(number, self.pending_house_location)
        self.pending_house_location = None
        self.mode = EditMode.VIEW
        self.render()
        return house

    def finish_road(self) -> Road:
        if self.mode is not EditMode.ROAD:
            raise PreconditionError("Not drawing a road")
        road = self.drawer.finish()
        self.mode = EditMode.VIEW
        self.render()
        return road

    def cancel_road(self):
        self.drawer.cancel()
        if self.mode is EditMode.ROAD:
            self.mode = EditMode.VIEW
        self.render()

    def start_recording(self, label: str):
        self.drawer.cancel()
        self.pending_house_location = None
        self.recorder.start(label)
        self.mode = EditMode.RECORDING
        if self.recorder.sampler is None:
            self._watch_adapter_location()
        self.render()

    def _watch_adapter_location(self):
        """Feed the adapter's live location into the recorder; taps still work without it"""
        try:
            self._live = self.adapter.watch_live_location(self._on_live_sample)
        except LocationUnavailableError as e:
            self.logger.log("Live location unavailable, recording from taps", {"error": str(e)})

    def _on_live_sample(self, location: Location):
        if self.recorder.on_sample(location):
            self.render()

    def _stop_live(self):
        if self._live is not None:
            self._live.cancel()
            self._live = None

    def stop_recording(self) -> tuple[House, Road]:
        """Commit the recorded path. On a too-short path nothing is stored.

        If the commit fails the recording, and its live location feed,
        carry on so the stop can be retried.
        """
        try:
            return self.recorder.stop()
        finally:
            if not self.recorder.is_recording:
                self._stop_live()
                self.mode = EditMode.VIEW
            self.render()

    def cancel_recording(self):
        self._stop_live()
        self.recorder.cancel()
        if self.mode is EditMode.RECORDING:
            self.mode = EditMode.VIEW
        self.render()

    def clear_all(self) -> NetworkSnapshot:
        self._stop_live()
        self.recorder.cancel()
        self.drawer.cancel()
        self.pending_house_location = None
        self.mode = EditMode.VIEW
        return self.store.clear()

    def status(self) -> dict:
        report = network_report(self.snapshot)
        report.update({
            "mode": self.mode.value,
            "draft_points": len(self.drawer.points),
            "recording_points": len(self.recorder.points),
        })
        return report

    def _on_change(self, snapshot: NetworkSnapshot):
        self.snapshot = snapshot
        self.render()

    def render(self):
        adapter = self.adapter
        adapter.clear()
        snapshot = self.snapshot
        for road in snapshot.roads:
            adapter.draw_polyline(road.points, ADMIN_ROAD_LINE)
        if snapshot.reception:
            adapter.draw_marker(snapshot.reception, RECEPTION_MARKER, "Reception")
        for house in snapshot.houses:
            adapter.draw_marker(house.location, HOUSE_MARKER, f"House {house.number}")

        draft = self.recorder.points if self.recorder.is_recording else self.drawer.points
        if draft:
            if len(draft) > 1:
                adapter.draw_polyline(draft, DRAFT_ROAD_LINE)
            if not self.recorder.is_recording:
                for point in draft:
                    adapter.draw_marker(point, DRAFT_POINT_MARKER)
        if self.pending_house_location is not None:
            adapter.draw_marker(self.pending_house_location, HOUSE_MARKER, "New house")
        for callback in list(self._render_callbacks):
            callback()

    def close(self):
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._stop_live()
        self.recorder.cancel()


class GuestView:
    """Read-only view: pick a house, see the route from reception.

    Changes arrive both by push from this store instance and by polling,
    so edits made through another store instance show up too.
    """

    def __init__(self, store: NetworkStore, adapter: PresentationAdapter,
                 poll_interval: Optional[float] = None,
                 synthesizer: Optional[RouteSynthesizer] = None,
                 logger: Optional[Logger] = None):
        self.store = store
        self.adapter = adapter
        self.poll_interval = poll_interval if poll_interval is not None else CONFIG["store_poll_interval"]
        self.logger = logger or NULL_LOGGER
        self.synthesizer = synthesizer or RouteSynthesizer(logger=self.logger)
        self.snapshot = NetworkSnapshot.empty()
        self.selected_house_id: Optional[str] = None
        self.route: list[Location] = []
        self._subscription: Optional[Subscription] = None
        self._watcher: Optional[StoreWatcher] = None

    def start(self, poll: bool = True) -> "GuestView":
        self.snapshot = self.store.load()
        self._subscription = self.store.subscribe(self.refresh)
        self._watcher = StoreWatcher(self.store, self.refresh, interval=self.poll_interval,
                                     logger=self.logger)
        if poll:
            self._watcher.start()
        self.render()
        return self

    def poll(self) -> bool:
        """Check for changes from other store instances now"""
        if self._watcher is None:
            return False
        return self._watcher.poll_once()

    @property
    def is_ready(self) -> bool:
        return self.snapshot.reception is not None and bool(self.snapshot.houses)

    def houses(self) -> list[House]:
        return self.snapshot.sorted_houses()

    @property
    def selected_house(self) -> Optional[House]:
        if self.selected_house_id is None:
            return None
        return self.snapshot.get_house(self.selected_house_id)

    def select_house(self, house_id: str) -> list[Location]:
        house = self.snapshot.get_house(house_id)
        if house is None:
            raise PreconditionError(f"Unknown house {house_id}")
        if self.snapshot.reception is None:
            raise PreconditionError("Reception location is not set")
        self.selected_house_id = house.id
        self.route = self._route_to(house)
        self.logger.log("House selected", {
            "house": house.number,
            "waypoints": len(self.route),
            "length_m": round(self.route_length()),
        })
        self.render()
        return self.route

    def clear_selection(self):
        self.selected_house_id = None
        self.route = []
        self.render()

    def _route_to(self, house: House) -> list[Location]:
        return self.synthesizer.synthesize(self.snapshot.reception, house.location,
                                           self.snapshot.roads)

    def route_length(self) -> float:
        """Length of the current route in meters"""
        return polyline_length(self.route)

    def refresh(self, snapshot: NetworkSnapshot):
        if snapshot.version == self.snapshot.version:
            return
        self.snapshot = snapshot
        house = self.selected_house
        if house is None or snapshot.reception is None:
            self.selected_house_id = None
            self.route = []
        else:
            self.route = self._route_to(house)
        self.logger.log("Guest view updated", {"version": snapshot.version})
        self.render()

    def render(self):
        adapter = self.adapter
        adapter.clear()
        snapshot = self.snapshot
        for road in snapshot.roads:
            adapter.draw_polyline(road.points, GUEST_ROAD_LINE)
        if self.route:
            adapter.draw_polyline(self.route, ROUTE_LINE)
        if snapshot.reception:
            adapter.draw_marker(snapshot.reception, RECEPTION_MARKER, "Reception")
        selected = self.selected_house
        for house in snapshot.houses:
            style = SELECTED_HOUSE_MARKER if selected and house.id == selected.id else HOUSE_MARKER
            adapter.draw_marker(house.location, style, f"House {house.number}")
        if selected and snapshot.reception:
            adapter.fit_bounds([snapshot.reception, selected.location])

    def close(self):
        if self._watcher is not None:
            self._watcher.cancel()
            self._watcher = None
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
