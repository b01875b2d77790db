from wayfinder.models import Location


# ---- test doubles ----
class FakeAdapter:
    """Records draw calls; taps and locations are injected by the test"""

    def __init__(self, location=None):
        self.tap_callbacks = []
        self.markers = []
        self.polylines = []
        self.bounds = None
        self.clears = 0
        self.location = location
        self.live_callbacks = []

    def on_user_tap(self, callback):
        self.tap_callbacks.append(callback)

    def tap(self, location):
        for callback in list(self.tap_callbacks):
            callback(location)

    def draw_marker(self, location, style, label=None):
        self.markers.append((location, style, label))

    def draw_polyline(self, points, style):
        self.polylines.append((list(points), style))

    def fit_bounds(self, points):
        self.bounds = list(points)

    def clear(self):
        self.clears += 1
        self.markers = []
        self.polylines = []
        self.bounds = None

    def watch_live_location(self, callback):
        self.live_callbacks.append(callback)
        adapter = self

        class Handle:
            def cancel(self):
                if callback in adapter.live_callbacks:
                    adapter.live_callbacks.remove(callback)

        return Handle()

    def get_one_shot_location(self):
        return self.location


class ListSource:
    """Location source returning queued fixes, then None"""

    def __init__(self, locations):
        self.locations = list(locations)
        self.calls = 0

    def get_location(self, timeout=30):
        self.calls += 1
        if self.locations:
            return self.locations.pop(0)
        return None

    def get_status(self):
        return f"{len(self.locations)} queued"


def loc(lat, lng):
    return Location(lat, lng)
