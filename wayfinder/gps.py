"""Position sources, live location watches and one-shot fixes."""

import json
import subprocess
import threading
import time
from datetime import datetime
from typing import Callable, Optional, Protocol

import requests

from .config import CONFIG
from .errors import LocationUnavailableError
from .geo import retry_with_backoff
from .logger import Logger, NULL_LOGGER
from .models import Location

LocationCallback = Callable[[Location], None]


class LocationSource(Protocol):
    def get_location(self, timeout: int = 30) -> Optional[Location]: ...

    def get_status(self) -> str: ...


def location_from_payload(data: dict) -> Location:
    """Fix from a position payload.

    Accepts {"latitude", "longitude"} (termux, most phone apps) or
    {"lat", "lng"/"lon"}. Raises KeyError, TypeError or ValueError.
    """
    lat = data["latitude"] if "latitude" in data else data["lat"]
    if "longitude" in data:
        lng = data["longitude"]
    else:
        lng = data["lng"] if "lng" in data else data["lon"]
    return Location(lat=float(lat), lng=float(lng), accuracy=data.get("accuracy"),
                    timestamp=time.time())


class _TrackedSource:
    """Remembers the last fix and counts consecutive failures"""

    name = "Position"

    def __init__(self):
        self.last_location: Optional[Location] = None
        self.consecutive_failures = 0

    def _fixed(self, location: Location) -> Location:
        self.last_location = location
        self.consecutive_failures = 0
        return location

    def _failed(self) -> None:
        self.consecutive_failures += 1
        return None

    def _detail(self) -> str:
        return ""

    def get_status(self) -> str:
        detail = self._detail()
        if self.consecutive_failures == 0:
            state = "OK"
            if self.last_location and self.last_location.accuracy:
                state += f", accuracy {self.last_location.accuracy:.0f}m"
        else:
            state = f"{self.consecutive_failures} consecutive failures"
        return f"{self.name}: {state}" + (f" ({detail})" if detail else "")


class GPS(_TrackedSource):
    """GPS access via Termux API"""

    name = "GPS"

    def __init__(self, provider: Optional[str] = None):
        super().__init__()
        self.provider = provider or CONFIG["termux_provider"]

    def get_location(self, timeout: int = 30) -> Optional[Location]:
        """Get current location using termux-location"""
        try:
            result = subprocess.run(
                ["termux-location", "-p", self.provider, "-r", "once"],
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except (subprocess.TimeoutExpired, OSError):
            return self._failed()

        if result.returncode != 0 or not result.stdout.strip():
            return self._failed()
        try:
            return self._fixed(location_from_payload(json.loads(result.stdout)))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            return self._failed()


class HTTPLocationSource(_TrackedSource):
    """Position from a JSON endpoint, e.g. a phone location-sharing app"""

    name = "HTTP position"

    def __init__(self, url: str, session: Optional[requests.Session] = None):
        super().__init__()
        self.url = url
        self.session = session or requests.Session()

    def get_location(self, timeout: int = 30) -> Optional[Location]:
        try:
            response = self.session.get(self.url, timeout=timeout)
            response.raise_for_status()
            return self._fixed(location_from_payload(response.json()))
        except (requests.RequestException, ValueError, KeyError, TypeError):
            return self._failed()


class GPSRecorder:
    """Wraps a source and keeps every attempt, failed or not, as a trace"""

    def __init__(self, source: LocationSource, record_path: str, logger: Optional[Logger] = None):
        self.source = source
        self.record_path = record_path
        self.logger = logger or NULL_LOGGER
        self.trace: list[dict] = []
        self.start_time = time.time()
        self._lock = threading.Lock()

    def get_location(self, timeout: int = 30) -> Optional[Location]:
        location = self.source.get_location(timeout)
        now = time.time()
        with self._lock:
            self.trace.append({
                "elapsed": now - self.start_time,
                "timestamp": now,
                "location": location.to_dict() if location else None,
                "status": self.source.get_status(),
            })
        return location

    def get_status(self) -> str:
        return self.source.get_status()

    def save(self) -> int:
        """Write the trace file; returns the number of entries"""
        with self._lock:
            trace = list(self.trace)
        with open(self.record_path, "w") as f:
            json.dump({"recorded_at": datetime.now().isoformat(), "trace": trace}, f, indent=2)
        self.logger.log("GPS trace saved", {"path": self.record_path, "entries": len(trace)})
        return len(trace)


def load_trace(trace_path: str) -> list[dict]:
    """Load the entries of a recorded trace file"""
    with open(trace_path) as f:
        data = json.load(f)
    return data["trace"]


class GPSPlayback(_TrackedSource):
    """Replays a recorded trace one entry per call, ignoring its timing"""

    name = "Playback"

    def __init__(self, playback_path: str):
        super().__init__()
        self.playback_path = playback_path
        self.trace = load_trace(playback_path)
        self.index = 0

    def get_location(self, timeout: int = 30) -> Optional[Location]:
        if self.is_finished():
            return None
        entry = self.trace[self.index]
        self.index += 1
        if not entry.get("location"):
            return self._failed()
        return self._fixed(Location.from_dict(entry["location"]))

    def is_finished(self) -> bool:
        return self.index >= len(self.trace)

    def _detail(self) -> str:
        return f"{self.index}/{len(self.trace)}"


class LocationWatch:
    """Background subscription delivering fixes from a source to a callback.

    A failed fix is logged and the watch keeps listening. cancel() can be
    called any number of times.
    """

    def __init__(self, source: LocationSource, callback: LocationCallback,
                 interval: float, timeout: float, logger: Optional[Logger] = None):
        self.source = source
        self.callback = callback
        self.interval = interval
        self.timeout = timeout
        self.logger = logger or NULL_LOGGER
        self.failures = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._stop.is_set()

    def start(self) -> "LocationWatch":
        if self._thread is None:
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()
        return self

    def _run(self):
        while not self._stop.is_set():
            self.sample_once()
            if self._stop.wait(self.interval):
                break

    def sample_once(self) -> Optional[Location]:
        """Take one fix and deliver it unless the watch was cancelled.

        Errors from the source or the callback are logged and counted, never
        raised, so the background thread survives them.
        """
        try:
            location = self.source.get_location(timeout=self.timeout)
        except Exception as e:
            self.failures += 1
            self.logger.log("Live location source error", {
                "failures": self.failures,
                "error": f"{type(e).__name__}: {e}",
            })
            return None
        if self._stop.is_set():
            return None
        if location is None:
            self.failures += 1
            self.logger.log("Live location sample failed", {
                "failures": self.failures,
                "status": self.source.get_status(),
            })
            return None
        try:
            self.callback(location)
        except Exception as e:
            self.logger.log("Live location callback failed", {
                "error": f"{type(e).__name__}: {e}",
            })
            return None
        return location

    def cancel(self):
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.timeout + 1)


class GeoSampler:
    """Live-position service shared by recording and live-tracking modes"""

    def __init__(self, source: LocationSource, interval: Optional[float] = None,
                 timeout: Optional[float] = None, logger: Optional[Logger] = None):
        self.source = source
        self.interval = interval if interval is not None else CONFIG["live_location_interval"]
        self.timeout = timeout if timeout is not None else CONFIG["location_timeout"]
        self.logger = logger or NULL_LOGGER

    def watch(self, callback: LocationCallback) -> LocationWatch:
        """Start delivering fixes to callback; cancel the returned handle to stop"""
        return LocationWatch(self.source, callback, self.interval, self.timeout,
                             logger=self.logger).start()

    def one_shot(self) -> Location:
        """Single fix within the timeout; raises LocationUnavailableError"""
        per_try = max(1, int(self.timeout / 2))
        location = retry_with_backoff(
            lambda: self.source.get_location(timeout=per_try),
            max_time=self.timeout,
            initial_delay=0.5,
            max_delay=2.0,
            description="location fix",
            logger=self.logger,
        )
        if location is None:
            raise LocationUnavailableError(
                f"No location within {self.timeout}s ({self.source.get_status()})"
            )
        return location

    def locate_or_default(self) -> tuple[Location, bool]:
        """(fix, True) or, when no fix is available, (default location, False)"""
        try:
            location = self.one_shot()
        except LocationUnavailableError as e:
            lat, lng = CONFIG["default_location"]
            self.logger.log("Location unavailable, using default", {"error": str(e)})
            return Location(lat=lat, lng=lng), False
        self.logger.log("Location fix", {"lat": location.lat, "lng": location.lng})
        return location, True
