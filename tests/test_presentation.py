# tests/test_presentation.py
import threading

import pytest

from wayfinder.errors import LocationUnavailableError
from wayfinder.gps import GeoSampler
from wayfinder.logger import Logger
from wayfinder.presentation import (
    ADMIN_ROAD_LINE,
    DRAFT_POINT_MARKER,
    HOUSE_MARKER,
    RECEPTION_MARKER,
    WEB_MAP_HTML,
    FoliumMap,
    WebMap,
)
from wayfinder.store import NetworkStore
from wayfinder.views import GuestView

from helpers import ListSource, loc


# ---- folium backend ----
def test_folium_map_renders_drawn_scene(tmp_path):
    adapter = FoliumMap()
    adapter.draw_marker(loc(-33.1, 151.2), RECEPTION_MARKER, "Reception")
    adapter.draw_marker(loc(-33.2, 151.3), DRAFT_POINT_MARKER)
    adapter.draw_polyline([loc(-33.1, 151.2), loc(-33.2, 151.3)], ADMIN_ROAD_LINE)
    adapter.fit_bounds([loc(-33.1, 151.2), loc(-33.2, 151.3)])

    path = tmp_path / "map.html"
    adapter.save(str(path))
    html = path.read_text()

    assert RECEPTION_MARKER.color in html
    assert ADMIN_ROAD_LINE.color in html
    assert "151.3" in html


def test_folium_clear_starts_a_new_map():
    adapter = FoliumMap()
    adapter.draw_polyline([loc(0, 0), loc(1, 1)], ADMIN_ROAD_LINE)
    adapter.clear()
    assert ADMIN_ROAD_LINE.color not in adapter.html()


def test_folium_labels_are_escaped():
    adapter = FoliumMap()
    adapter.draw_marker(loc(0, 0), HOUSE_MARKER, "House <img src=x onerror=alert(1)>")
    adapter.draw_marker(loc(0, 1), DRAFT_POINT_MARKER, "<script>x()</script>")

    html = adapter.html()
    assert "<img src=x" not in html
    assert "<script>x()" not in html
    assert "&lt;img src=x" in html


def test_folium_taps_are_injected():
    adapter = FoliumMap()
    seen = []
    adapter.on_user_tap(seen.append)
    adapter.tap(loc(1, 1))
    assert seen == [loc(1, 1)]


def test_folium_location_needs_a_sampler():
    with pytest.raises(LocationUnavailableError):
        FoliumMap().get_one_shot_location()
    with pytest.raises(LocationUnavailableError):
        FoliumMap().watch_live_location(lambda location: None)

    adapter = FoliumMap(sampler=GeoSampler(ListSource([loc(3, 4)]), timeout=1))
    assert adapter.get_one_shot_location() == loc(3, 4)


def test_guest_route_saved_as_html(tmp_path):
    store = NetworkStore(str(tmp_path / "wayfinder.db"))
    store.set_reception(loc(0, 0))
    store.add_road([loc(0, 0), loc(0, 0.0005), loc(0, 0.001)])
    house = store.add_house("3", loc(0, 0.001))

    adapter = FoliumMap()
    view = GuestView(store, adapter).start(poll=False)
    view.select_house(house.id)
    view.close()
    store.close()

    html = adapter.html()
    assert "#2E7D32" in html
    assert "#DC2626" in html


# ---- live browser backend ----
def test_web_map_dispatches_taps_and_actions():
    web = WebMap()
    taps = []
    actions = []
    web.on_user_tap(taps.append)
    web.on_action(lambda name, value: actions.append((name, value)))

    web.handle_client_message({"type": "tap", "data": {"lat": 1.5, "lng": 2.5}})
    web.handle_client_message({"type": "action", "data": {"name": "save_house", "value": "12"}})
    web.handle_client_message({"type": "unknown"})

    assert taps == [loc(1.5, 2.5)]
    assert actions == [("save_house", "12")]


def test_web_map_replays_scene_to_new_clients():
    web = WebMap()
    web.draw_marker(loc(0, 0), RECEPTION_MARKER, "Reception")
    web.draw_polyline([loc(0, 0)], ADMIN_ROAD_LINE)
    web.draw_polyline([loc(0, 0), loc(1, 1)], ADMIN_ROAD_LINE)
    web.set_status("Choose an action")

    messages = web._initial_messages()

    scene = messages[0]
    assert scene["type"] == "scene"
    assert [m["type"] for m in scene["data"]] == ["marker", "polyline"]
    assert scene["data"][0]["data"]["style"]["color"] == RECEPTION_MARKER.color
    assert {"type": "status", "data": {"text": "Choose an action"}} in messages

    web.clear()
    assert web._initial_messages()[0]["data"] == []


def test_web_map_live_location_handles():
    web = WebMap()
    seen = []
    handle = web.watch_live_location(seen.append)

    web.handle_client_message({"type": "location", "data": {"lat": 1, "lng": 2, "accuracy": 8}})
    handle.cancel()
    handle.cancel()
    web.handle_client_message({"type": "location", "data": {"lat": 3, "lng": 4}})

    assert seen == [loc(1, 2)]
    assert seen[0].accuracy == 8


def test_web_map_one_shot_location():
    web = WebMap(location_timeout=0.05)
    with pytest.raises(LocationUnavailableError):
        web.get_one_shot_location()

    web.location_timeout = 5
    reply = threading.Timer(0.05, web.handle_client_message,
                            args=({"type": "location", "data": {"lat": 5, "lng": 6}},))
    reply.start()
    assert web.get_one_shot_location() == loc(5, 6)
    reply.join()


def test_web_map_one_shot_ignores_earlier_fixes():
    web = WebMap(location_timeout=5)
    seen = []
    handle = web.watch_live_location(seen.append)
    for i in range(100):
        web.handle_client_message({"type": "location", "data": {"lat": 1, "lng": i}})

    assert len(seen) == 100
    assert web._location_queue.qsize() == 0

    reply = threading.Timer(0.05, web.handle_client_message,
                            args=({"type": "location", "data": {"lat": 1, "lng": 500}},))
    reply.start()
    assert web.get_one_shot_location() == loc(1, 500)
    reply.join()
    assert web._location_queue.qsize() == 0
    handle.cancel()


def test_web_map_labels_are_rendered_as_text():
    assert "b.textContent = d.label" in WEB_MAP_HTML
    assert "'<b>' + d.label" not in WEB_MAP_HTML
    assert "entry.textContent" in WEB_MAP_HTML


def test_web_map_streams_log_lines():
    web = WebMap()
    logger = Logger(callback=web.send_log, echo=False)
    logger.log("Committed network change", {"version": 3})

    messages = web._initial_messages()
    assert {"type": "log", "data": {"message": "Committed network change",
                                    "data": {"version": 3}}} in messages

    for i in range(60):
        logger.log(f"line {i}")
    logs = [m for m in web._initial_messages() if m["type"] == "log"]
    assert len(logs) == 50
    assert logs[-1]["data"]["message"] == "line 59"


def test_web_map_page_is_configured():
    web = WebMap(title="Farm Stay", center=loc(-33.5, 151.5), zoom=15, ws_port=9999)
    page = web._page_html()
    assert "<title>Farm Stay</title>" in page
    assert ":9999" in page
    assert "[-33.5, 151.5], 15" in page
