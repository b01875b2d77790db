"""Map presentation backends.

Views talk to a map only through the PresentationAdapter protocol. Each
backend is a standalone class; swap one for another by passing a different
object to the view.
"""

import asyncio
import http.server
import json
import queue
import socketserver
import threading
import time
import webbrowser
from collections import deque
from dataclasses import asdict, dataclass
from functools import partial
from html import escape
from typing import Callable, Optional, Protocol, Sequence

import folium
import websockets

from .config import CONFIG
from .errors import LocationUnavailableError
from .geo import bounds
from .gps import GeoSampler
from .logger import Logger, NULL_LOGGER
from .models import Location

LocationCallback = Callable[[Location], None]


@dataclass(frozen=True)
class MarkerStyle:
    color: str
    size: int = 30
    shape: str = "pin"  # "pin" or "dot"


@dataclass(frozen=True)
class LineStyle:
    color: str
    weight: int = 4
    opacity: float = 1.0
    dash: Optional[str] = None


RECEPTION_MARKER = MarkerStyle("#1976D2", 35)
HOUSE_MARKER = MarkerStyle("#2E7D32", 30)
SELECTED_HOUSE_MARKER = MarkerStyle("#DC2626", 40)
DRAFT_POINT_MARKER = MarkerStyle("#FFA500", 12, shape="dot")
ADMIN_ROAD_LINE = LineStyle("#FF6B6B", 4)
GUEST_ROAD_LINE = LineStyle("#CCCCCC", 3)
DRAFT_ROAD_LINE = LineStyle("#FFA500", 4, dash="10, 5")
ROUTE_LINE = LineStyle("#2E7D32", 6, opacity=0.8)


class CancelHandle(Protocol):
    def cancel(self) -> None: ...


class PresentationAdapter(Protocol):
    def on_user_tap(self, callback: LocationCallback) -> None: ...

    def draw_marker(self, location: Location, style: MarkerStyle, label: Optional[str] = None) -> None: ...

    def draw_polyline(self, points: Sequence[Location], style: LineStyle) -> None: ...

    def fit_bounds(self, points: Sequence[Location]) -> None: ...

    def clear(self) -> None: ...

    def watch_live_location(self, callback: LocationCallback) -> CancelHandle: ...

    def get_one_shot_location(self) -> Location: ...


def pin_html(style: MarkerStyle) -> str:
    """Teardrop map pin"""
    return (
        f'<div style="background-color: {style.color}; width: {style.size}px; height: {style.size}px; '
        'border-radius: 50% 50% 50% 0; transform: rotate(-45deg); border: 3px solid white; '
        'box-shadow: 0 2px 5px rgba(0,0,0,0.3);"></div>'
    )


class FoliumMap:
    """Static HTML map rendered with folium.

    There is no live browser behind it, so taps are injected with tap() and
    location comes from an optional GeoSampler.
    """

    def __init__(self, sampler: Optional[GeoSampler] = None,
                 center: Optional[Location] = None, zoom: Optional[int] = None,
                 tiles: str = "OpenStreetMap"):
        self.sampler = sampler
        self.center = center or Location(*CONFIG["default_location"])
        self.zoom = zoom if zoom is not None else CONFIG["default_zoom"]
        self.tiles = tiles
        self._tap_callbacks: list[LocationCallback] = []
        self.map = self._new_map()

    def _new_map(self) -> folium.Map:
        return folium.Map(location=[self.center.lat, self.center.lng],
                          zoom_start=self.zoom, tiles=self.tiles)

    def on_user_tap(self, callback: LocationCallback):
        self._tap_callbacks.append(callback)

    def tap(self, location: Location):
        """Deliver a tap to every registered callback"""
        for callback in list(self._tap_callbacks):
            callback(location)

    def draw_marker(self, location: Location, style: MarkerStyle, label: Optional[str] = None):
        coords = [location.lat, location.lng]
        label = escape(label) if label else None
        if style.shape == "dot":
            folium.CircleMarker(
                coords,
                radius=style.size / 2,
                color=style.color,
                fill=True,
                fill_color=style.color,
                fill_opacity=1,
                popup=label,
            ).add_to(self.map)
            return
        folium.Marker(
            coords,
            popup=folium.Popup(f"<b>{label}</b>", max_width=200) if label else None,
            icon=folium.DivIcon(
                html=pin_html(style),
                icon_size=(style.size, style.size),
                icon_anchor=(style.size // 2, style.size),
                class_name="wayfinder-pin",
            ),
        ).add_to(self.map)

    def draw_polyline(self, points: Sequence[Location], style: LineStyle):
        if len(points) < 2:
            return
        folium.PolyLine(
            [[p.lat, p.lng] for p in points],
            color=style.color,
            weight=style.weight,
            opacity=style.opacity,
            dash_array=style.dash,
        ).add_to(self.map)

    def fit_bounds(self, points: Sequence[Location]):
        box = bounds(points)
        if box:
            self.map.fit_bounds([list(box[0]), list(box[1])], padding=(50, 50))

    def clear(self):
        self.map = self._new_map()

    def watch_live_location(self, callback: LocationCallback) -> CancelHandle:
        if self.sampler is None:
            raise LocationUnavailableError("No position source configured")
        return self.sampler.watch(callback)

    def get_one_shot_location(self) -> Location:
        if self.sampler is None:
            raise LocationUnavailableError("No position source configured")
        return self.sampler.one_shot()

    def html(self) -> str:
        return self.map.get_root().render()

    def save(self, path: str):
        self.map.save(path)


WEB_MAP_HTML = '''<!DOCTYPE html>
<html>
<head>
    <title>{{TITLE}}</title>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css" />
    <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
    <style>
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif; height: 100vh; display: flex; flex-direction: column; }
        header { background: #1e293b; color: white; padding: 12px 20px; display: flex; justify-content: space-between; align-items: center; }
        header h1 { font-size: 18px; font-weight: 600; }
        .status-badge { background: #22c55e; padding: 4px 12px; border-radius: 12px; font-size: 12px; }
        .status-badge.disconnected { background: #ef4444; }
        #map { flex: 1; min-height: 0; }
        footer { background: #f8fafc; border-top: 1px solid #e2e8f0; padding: 12px 20px; }
        #status { font-size: 13px; color: #334155; margin-bottom: 8px; min-height: 18px; }
        #actions { display: flex; flex-wrap: wrap; gap: 8px; }
        #actions button { border: 1px solid #cbd5e1; background: white; border-radius: 6px; padding: 8px 12px; font-size: 13px; cursor: pointer; }
        #actions button.active { background: #1e293b; color: white; }
        #actions button.danger { border-color: #fecaca; color: #b91c1c; }
        #log { max-height: 90px; overflow-y: auto; margin-top: 8px; font-family: "SF Mono", Monaco, monospace; font-size: 11px; color: #64748b; }
        #log:empty { display: none; }
    </style>
</head>
<body>
    <header>
        <h1>{{TITLE}}</h1>
        <span id="connection-status" class="status-badge disconnected">Disconnected</span>
    </header>
    <div id="map"></div>
    <footer>
        <div id="status"></div>
        <div id="actions"></div>
        <div id="log"></div>
    </footer>
    <script>
        var map = L.map('map').setView([{{CENTER_LAT}}, {{CENTER_LNG}}], {{ZOOM}});
        L.tileLayer('https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png', {
            attribution: '&copy; OpenStreetMap contributors',
            maxZoom: 19
        }).addTo(map);

        var ws = null;
        var layers = L.layerGroup().addTo(map);
        var geoWatch = null;

        function send(type, data) {
            if (ws && ws.readyState === WebSocket.OPEN) {
                ws.send(JSON.stringify({type: type, data: data}));
            }
        }

        function connect() {
            ws = new WebSocket('ws://' + window.location.hostname + ':{{WS_PORT}}');
            ws.onopen = function() {
                document.getElementById('connection-status').textContent = 'Connected';
                document.getElementById('connection-status').classList.remove('disconnected');
            };
            ws.onclose = function() {
                document.getElementById('connection-status').textContent = 'Disconnected';
                document.getElementById('connection-status').classList.add('disconnected');
                setTimeout(connect, 2000);
            };
            ws.onmessage = function(event) {
                handleMessage(JSON.parse(event.data));
            };
        }

        function pinIcon(style) {
            return L.divIcon({
                className: 'custom-icon',
                html: '<div style="background-color: ' + style.color + '; width: ' + style.size + 'px; height: ' + style.size + 'px; border-radius: 50% 50% 50% 0; transform: rotate(-45deg); border: 3px solid white; box-shadow: 0 2px 5px rgba(0,0,0,0.3);"></div>',
                iconSize: [style.size, style.size],
                iconAnchor: [style.size / 2, style.size]
            });
        }

        function handleMessage(msg) {
            switch(msg.type) {
                case 'scene':
                    layers.clearLayers();
                    msg.data.forEach(handleMessage);
                    break;
                case 'clear':
                    layers.clearLayers();
                    break;
                case 'marker':
                    var d = msg.data, layer;
                    if (d.style.shape === 'dot') {
                        layer = L.circleMarker([d.lat, d.lng], {radius: d.style.size / 2, color: d.style.color, fillColor: d.style.color, fillOpacity: 1});
                    } else {
                        layer = L.marker([d.lat, d.lng], {icon: pinIcon(d.style)});
                    }
                    if (d.label) {
                        var b = document.createElement('b');
                        b.textContent = d.label;
                        layer.bindPopup(b);
                    }
                    layer.addTo(layers);
                    break;
                case 'polyline':
                    var s = msg.data.style;
                    L.polyline(msg.data.points, {color: s.color, weight: s.weight, opacity: s.opacity, dashArray: s.dash}).addTo(layers);
                    break;
                case 'fit_bounds':
                    map.fitBounds(msg.data.bounds, {padding: [50, 50]});
                    break;
                case 'status':
                    document.getElementById('status').textContent = msg.data.text;
                    break;
                case 'actions':
                    renderActions(msg.data);
                    break;
                case 'log':
                    addLog(msg.data.message, msg.data.data);
                    break;
                case 'request_location':
                    navigator.geolocation.getCurrentPosition(function(pos) {
                        send('location', {lat: pos.coords.latitude, lng: pos.coords.longitude, accuracy: pos.coords.accuracy});
                    }, function() {}, {enableHighAccuracy: true, timeout: 10000});
                    break;
                case 'watch_location':
                    if (msg.data.enabled && geoWatch === null) {
                        geoWatch = navigator.geolocation.watchPosition(function(pos) {
                            send('location', {lat: pos.coords.latitude, lng: pos.coords.longitude, accuracy: pos.coords.accuracy});
                        }, function() {}, {enableHighAccuracy: true});
                    } else if (!msg.data.enabled && geoWatch !== null) {
                        navigator.geolocation.clearWatch(geoWatch);
                        geoWatch = null;
                    }
                    break;
            }
        }

        function addLog(message, data) {
            var logs = document.getElementById('log');
            var entry = document.createElement('div');
            entry.textContent = '[' + new Date().toLocaleTimeString() + '] ' + message + (data ? ' ' + JSON.stringify(data) : '');
            logs.appendChild(entry);
            logs.scrollTop = logs.scrollHeight;

            // Keep only the last 50 entries
            while (logs.children.length > 50) {
                logs.removeChild(logs.firstChild);
            }
        }

        function renderActions(actions) {
            var container = document.getElementById('actions');
            container.innerHTML = '';
            actions.forEach(function(action) {
                var button = document.createElement('button');
                button.textContent = action.label;
                if (action.active) button.classList.add('active');
                if (action.danger) button.classList.add('danger');
                button.onclick = function() {
                    var value = null;
                    if (action.prompt) {
                        value = window.prompt(action.prompt);
                        if (value === null) return;
                    }
                    if (action.confirm && !window.confirm(action.confirm)) return;
                    send('action', {name: action.name, value: value});
                };
                container.appendChild(button);
            });
        }

        map.on('click', function(e) {
            send('tap', {lat: e.latlng.lat, lng: e.latlng.lng});
        });

        connect();
    </script>
</body>
</html>'''


class _LiveWatch:
    """Browser geolocation subscription on a WebMap"""

    def __init__(self, web_map: "WebMap", callback: LocationCallback):
        self.web_map = web_map
        self.callback = callback
        self.active = True

    def cancel(self):
        if self.active:
            self.active = False
            self.web_map._remove_live_watch(self)


class WebMap:
    """Live Leaflet map in the browser, driven over a WebSocket.

    Browser clicks arrive as taps, browser geolocation as live location.
    Draw commands are broadcast to connected pages and replayed to pages
    that connect later.
    """

    def __init__(self, title: str = "Wayfinder", center: Optional[Location] = None,
                 zoom: Optional[int] = None, http_port: Optional[int] = None,
                 ws_port: Optional[int] = None, location_timeout: Optional[float] = None,
                 logger: Optional[Logger] = None):
        self.title = title
        self.center = center or Location(*CONFIG["default_location"])
        self.zoom = zoom if zoom is not None else CONFIG["default_zoom"]
        self.http_port = http_port or CONFIG["http_port"]
        self.ws_port = ws_port or CONFIG["ws_port"]
        self.location_timeout = location_timeout or CONFIG["location_timeout"]
        self.logger = logger or NULL_LOGGER
        self.connected_clients: set = set()
        self.ws_loop = None
        self._running = False
        self._lock = threading.Lock()
        self._scene: list[dict] = []
        self._status: Optional[dict] = None
        self._actions: Optional[dict] = None
        self._tap_callbacks: list[LocationCallback] = []
        self._action_callbacks: list[Callable[[str, Optional[str]], None]] = []
        self._live_watches: list[_LiveWatch] = []
        self._location_queue: queue.Queue = queue.Queue()
        self._pending_one_shots = 0
        self._log_lines: deque = deque(maxlen=50)

    def start(self, open_browser: bool = True):
        """Start HTTP and WebSocket servers in background threads"""
        self._running = True
        threading.Thread(target=self._run_http_server, daemon=True).start()
        threading.Thread(target=self._run_ws_server, daemon=True).start()
        time.sleep(0.5)

        url = f"http://localhost:{self.http_port}"
        print(f"Map available at: {url}")
        if open_browser:
            webbrowser.open(url)

    def stop(self):
        self._running = False

    def _run_http_server(self):
        handler = partial(_WebMapHTTPHandler, self._page_html())
        with socketserver.TCPServer(("", self.http_port), handler) as httpd:
            httpd.allow_reuse_address = True
            while self._running:
                httpd.handle_request()

    def _page_html(self) -> str:
        html = WEB_MAP_HTML
        html = html.replace('{{TITLE}}', self.title)
        html = html.replace('{{WS_PORT}}', str(self.ws_port))
        html = html.replace('{{CENTER_LAT}}', str(self.center.lat))
        html = html.replace('{{CENTER_LNG}}', str(self.center.lng))
        html = html.replace('{{ZOOM}}', str(self.zoom))
        return html

    def _run_ws_server(self):
        self.ws_loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.ws_loop)

        async def handler(websocket):
            self.connected_clients.add(websocket)
            try:
                for message in self._initial_messages():
                    await websocket.send(json.dumps(message, default=str))
                async for message in websocket:
                    try:
                        self.handle_client_message(json.loads(message))
                    except json.JSONDecodeError:
                        self.logger.log("Ignoring malformed client message")
            finally:
                self.connected_clients.discard(websocket)

        async def main():
            async with websockets.serve(handler, "", self.ws_port):
                while self._running:
                    await asyncio.sleep(0.1)

        try:
            self.ws_loop.run_until_complete(main())
        except OSError as e:
            self.logger.log("WebSocket server error", {"error": str(e)})

    def _initial_messages(self) -> list[dict]:
        with self._lock:
            messages = [{"type": "scene", "data": list(self._scene)}]
            if self._status:
                messages.append(self._status)
            if self._actions:
                messages.append(self._actions)
            if self._live_watches:
                messages.append({"type": "watch_location", "data": {"enabled": True}})
            messages.extend(self._log_lines)
        return messages

    def handle_client_message(self, msg: dict):
        """Dispatch one message received from a browser"""
        msg_type = msg.get("type")
        data = msg.get("data") or {}

        if msg_type == "tap":
            location = Location(lat=float(data["lat"]), lng=float(data["lng"]))
            for callback in list(self._tap_callbacks):
                callback(location)

        elif msg_type == "location":
            location = Location(lat=float(data["lat"]), lng=float(data["lng"]),
                                accuracy=data.get("accuracy"), timestamp=time.time())
            with self._lock:
                watches = list(self._live_watches)
                # Only fixes that answer an outstanding request are queued
                if self._pending_one_shots:
                    self._location_queue.put(location)
            for watch in watches:
                watch.callback(location)

        elif msg_type == "action":
            for callback in list(self._action_callbacks):
                callback(data.get("name"), data.get("value"))

    def _send_message(self, message: dict):
        """Send a message to all connected WebSocket clients"""
        if not self.connected_clients or not self.ws_loop:
            return
        payload = json.dumps(message, default=str)

        async def send_to_all():
            for client in list(self.connected_clients):
                try:
                    await client.send(payload)
                except websockets.ConnectionClosed:
                    self.connected_clients.discard(client)

        asyncio.run_coroutine_threadsafe(send_to_all(), self.ws_loop)

    def _draw(self, message: dict):
        with self._lock:
            self._scene.append(message)
        self._send_message(message)

    def on_user_tap(self, callback: LocationCallback):
        self._tap_callbacks.append(callback)

    def on_action(self, callback: Callable[[str, Optional[str]], None]):
        """Register a handler for toolbar button presses: callback(name, value)"""
        self._action_callbacks.append(callback)

    def draw_marker(self, location: Location, style: MarkerStyle, label: Optional[str] = None):
        self._draw({"type": "marker", "data": {
            "lat": location.lat, "lng": location.lng, "style": asdict(style), "label": label,
        }})

    def draw_polyline(self, points: Sequence[Location], style: LineStyle):
        if len(points) < 2:
            return
        self._draw({"type": "polyline", "data": {
            "points": [[p.lat, p.lng] for p in points], "style": asdict(style),
        }})

    def fit_bounds(self, points: Sequence[Location]):
        box = bounds(points)
        if box:
            self._draw({"type": "fit_bounds", "data": {"bounds": [list(box[0]), list(box[1])]}})

    def clear(self):
        with self._lock:
            self._scene = []
        self._send_message({"type": "clear", "data": {}})

    def set_status(self, text: str):
        message = {"type": "status", "data": {"text": text}}
        with self._lock:
            self._status = message
        self._send_message(message)

    def set_actions(self, actions: list[dict]):
        """Replace the toolbar. Each action: name, label and optional prompt/confirm/active/danger."""
        message = {"type": "actions", "data": actions}
        with self._lock:
            self._actions = message
        self._send_message(message)

    def send_log(self, message: str, data: Optional[dict] = None):
        """Send a log message to the browser; recent ones are replayed on connect"""
        entry = {"type": "log", "data": {"message": message, "data": data}}
        with self._lock:
            self._log_lines.append(entry)
        self._send_message(entry)

    def watch_live_location(self, callback: LocationCallback) -> CancelHandle:
        watch = _LiveWatch(self, callback)
        with self._lock:
            self._live_watches.append(watch)
            first = len(self._live_watches) == 1
        if first:
            self._send_message({"type": "watch_location", "data": {"enabled": True}})
        return watch

    def _remove_live_watch(self, watch: _LiveWatch):
        with self._lock:
            if watch in self._live_watches:
                self._live_watches.remove(watch)
            last = not self._live_watches
        if last:
            self._send_message({"type": "watch_location", "data": {"enabled": False}})

    def get_one_shot_location(self) -> Location:
        """Ask connected browsers for a fix and wait up to the location timeout.

        Only a fix that arrives after the request is returned.
        """
        with self._lock:
            if not self._pending_one_shots:
                self._drain_locations()
            self._pending_one_shots += 1
        self._send_message({"type": "request_location", "data": {}})
        try:
            return self._location_queue.get(timeout=self.location_timeout)
        except queue.Empty:
            raise LocationUnavailableError(
                f"No browser location within {self.location_timeout}s"
            ) from None
        finally:
            with self._lock:
                self._pending_one_shots -= 1
                if not self._pending_one_shots:
                    self._drain_locations()

    def _drain_locations(self):
        while True:
            try:
                self._location_queue.get_nowait()
            except queue.Empty:
                return


class _WebMapHTTPHandler(http.server.SimpleHTTPRequestHandler):
    """HTTP handler that serves the map page"""

    def __init__(self, page_html: str, *args, **kwargs):
        self.page_html = page_html
        super().__init__(*args, **kwargs)

    def do_GET(self):
        if self.path == '/' or self.path == '/index.html':
            self.send_response(200)
            self.send_header('Content-type', 'text/html')
            self.end_headers()
            self.wfile.write(self.page_html.encode())
        else:
            self.send_error(404)

    def log_message(self, format, *args):
        pass  # Suppress HTTP log messages
