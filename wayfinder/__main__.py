#!/usr/bin/env python3
"""
Wayfinder - Property navigation from recorded roads

Usage:
    python -m wayfinder [options]

Options:
    --status                 Show the stored network and its connectivity
    --set-reception LAT LNG  Set the reception location (admin)
    --add-house NUMBER       Place a house at --lat/--lng (admin)
    --add-road POINTS        Store a road given as "lat,lng;lat,lng;..." (admin)
    --record LABEL           Record the path from reception to a new house (admin)
    --playback FILE          Record from a GPS trace instead of live GPS
    --gps-url URL            Record from an HTTP JSON position endpoint
    --trace FILE             Also save every GPS fix to a trace file
    --route NUMBER           Print the route from reception to a house
    --html FILE              Write the route map to an HTML file (with --route)
    --admin                  Open the live admin map in the browser (admin)
    --guest                  Open the live guest map in the browser
    --clear                  Remove reception, houses and roads (admin)
    --db PATH                Database file (default: wayfinder.db)
    --log FILE               Log file path

Admin actions ask for the secret in $WAYFINDER_ADMIN_SECRET.
"""

import argparse
import getpass
import sys
import time
from pathlib import Path
from typing import Optional

from .config import CONFIG
from .errors import WayfinderError
from .gps import GPS, GPSPlayback, GPSRecorder, GeoSampler, HTTPLocationSource
from .logger import Logger
from .models import Location
from .network import network_report
from .presentation import FoliumMap, WebMap
from .store import NetworkStore
from .views import AdminGate, AdminView, EditMode, GuestView


def _parse_points(text: str) -> list[Location]:
    points = []
    for pair in text.split(";"):
        pair = pair.strip()
        if not pair:
            continue
        lat, lng = pair.split(",")
        points.append(Location(lat=float(lat), lng=float(lng)))
    return points


def _require_admin():
    """Exit unless the admin secret is entered correctly"""
    gate = AdminGate.from_env()
    if not gate.configured:
        print(f"Admin actions are disabled: set {CONFIG['admin_secret_env']}")
        sys.exit(1)
    if not gate.login(getpass.getpass("Admin secret: ")):
        print("Wrong admin secret")
        sys.exit(1)


def _print_status(store: NetworkStore):
    snapshot = store.load()
    report = network_report(snapshot)
    print(f"Network version {report['version']}")
    if snapshot.reception:
        print(f"  Reception: {snapshot.reception.lat:.6f}, {snapshot.reception.lng:.6f}")
    else:
        print("  Reception: not set")
    print(f"  Houses: {report['houses']}")
    for house in snapshot.sorted_houses():
        print(f"    {house.number:>8}  {house.location.lat:.6f}, {house.location.lng:.6f}")
    print(f"  Roads: {report['roads']} ({report['road_points']} points, {report['clusters']} clusters)")
    if report["isolated_houses"]:
        print(f"  Not reachable by road from reception: {', '.join(report['isolated_houses'])}")


def _make_source(args, logger: Logger):
    if args.playback:
        if not Path(args.playback).exists():
            print(f"Playback file not found: {args.playback}")
            sys.exit(1)
        source = GPSPlayback(args.playback)
    elif args.gps_url:
        source = HTTPLocationSource(args.gps_url)
    else:
        source = GPS()
    if args.trace:
        source = GPSRecorder(source, args.trace, logger=logger)
    return source


def _playback_of(source) -> Optional[GPSPlayback]:
    """The trace being played back, looking through a trace recorder"""
    if isinstance(source, GPSRecorder):
        source = source.source
    return source if isinstance(source, GPSPlayback) else None


def _record(store: NetworkStore, args, logger: Logger) -> int:
    source = _make_source(args, logger)
    playback = _playback_of(source)
    sampler = GeoSampler(source, interval=0 if playback else None, logger=logger)
    view = AdminView(store, FoliumMap(sampler=sampler), sampler=sampler, logger=logger)

    try:
        view.start_recording(args.record)
    except WayfinderError as e:
        print(f"Cannot start recording: {e}")
        return 1

    print("Recording... press Ctrl+C to stop")
    try:
        while not (playback and playback.is_finished()):
            time.sleep(0.5)
            print(f"\r  {len(view.recorder.points)} points ({source.get_status()})", end="", flush=True)
    except KeyboardInterrupt:
        pass
    print()

    try:
        house, road = view.stop_recording()
    except WayfinderError as e:
        print(f"Recording discarded: {e}")
        return 1
    finally:
        view.close()
        if isinstance(source, GPSRecorder):
            print(f"GPS trace saved to {source.record_path} ({source.save()} entries)")

    print(f"Saved house {house.number} with a {len(road.points)}-point road")
    return 0


def _route(store: NetworkStore, number: str, html: Optional[str], logger: Logger) -> int:
    adapter = FoliumMap(zoom=CONFIG["guest_zoom"])
    view = GuestView(store, adapter, logger=logger).start(poll=False)
    try:
        matches = view.snapshot.find_houses(number)
        if not matches:
            print(f"No house numbered {number}")
            return 1
        if len(matches) > 1:
            print(f"{len(matches)} houses numbered {number}, using the first")
        try:
            route = view.select_house(matches[0].id)
        except WayfinderError as e:
            print(f"Cannot route: {e}")
            return 1
    finally:
        view.close()

    print(f"Route to house {number}: {len(route)} waypoints, {view.route_length():.0f}m")
    for point in route:
        print(f"  {point.lat:.6f}, {point.lng:.6f}")
    if html:
        adapter.save(html)
        print(f"Route map saved to: {html}")
    return 0


def _map_center(store: NetworkStore, sampler: Optional[GeoSampler], zoom: int) -> tuple[Location, int]:
    """Reception if set, else a live fix, else the world view"""
    snapshot = store.load()
    if snapshot.reception:
        return snapshot.reception, zoom
    if sampler is not None:
        location, located = sampler.locate_or_default()
        if located:
            return location, CONFIG["located_zoom"]
    return Location(*CONFIG["default_location"]), CONFIG["default_zoom"]


def _admin_actions(view: AdminView) -> list[dict]:
    mode = view.mode
    if mode is EditMode.RECORDING:
        return [
            {"name": "stop_recording", "label": f"Stop recording ({len(view.recorder.points)} points)"},
            {"name": "cancel_recording", "label": "Cancel recording", "danger": True},
        ]
    actions = [
        {"name": "mode_reception", "label": "Set reception", "active": mode is EditMode.RECEPTION},
        {"name": "mode_house", "label": "Add house", "active": mode is EditMode.HOUSE},
        {"name": "mode_road", "label": "Draw road", "active": mode is EditMode.ROAD},
        {"name": "start_recording", "label": "Record path", "prompt": "House number"},
    ]
    if mode is EditMode.HOUSE and view.pending_house_location is not None:
        actions.append({"name": "save_house", "label": "Save house", "prompt": "House number"})
    if mode is EditMode.ROAD:
        actions.append({"name": "finish_road", "label": f"Finish road ({len(view.drawer.points)} points)"})
        actions.append({"name": "cancel_road", "label": "Cancel road"})
    actions.append({"name": "clear_all", "label": "Clear all", "danger": True,
                    "confirm": "Remove reception, all houses and all roads?"})
    return actions


def _serve_admin(store: NetworkStore, sampler: Optional[GeoSampler], logger: Logger):
    center, zoom = _map_center(store, sampler, CONFIG["located_zoom"])
    web = WebMap(title="Wayfinder Admin", center=center, zoom=zoom, logger=logger)
    logger.callback = web.send_log
    view = AdminView(store, web, logger=logger)

    def update_toolbar(text: Optional[str] = None):
        web.set_actions(_admin_actions(view))
        web.set_status(text or view.instructions)

    def on_action(name: str, value: Optional[str]):
        message = None
        try:
            if name == "mode_reception":
                view.set_mode(EditMode.RECEPTION)
            elif name == "mode_house":
                view.set_mode(EditMode.HOUSE)
            elif name == "mode_road":
                view.set_mode(EditMode.ROAD)
            elif name == "save_house":
                house = view.save_house(value or "")
                message = f"Saved house {house.number}"
            elif name == "finish_road":
                road = view.finish_road()
                message = f"Saved road with {len(road.points)} points"
            elif name == "cancel_road":
                view.cancel_road()
            elif name == "start_recording":
                view.start_recording(value or "")
            elif name == "stop_recording":
                house, _ = view.stop_recording()
                message = f"Recorded path to house {house.number}"
            elif name == "cancel_recording":
                view.cancel_recording()
            elif name == "clear_all":
                view.clear_all()
                message = "Cleared all data"
        except WayfinderError as e:
            logger.log("Admin action failed", {"action": name, "error": str(e)})
            message = str(e)
        update_toolbar(message)

    web.on_action(on_action)
    web.on_user_tap(lambda location: update_toolbar())
    view.on_render(update_toolbar)
    view.render()
    web.start()
    _wait_forever()
    view.close()
    web.stop()


def _serve_guest(store: NetworkStore, logger: Logger):
    center, zoom = _map_center(store, None, CONFIG["guest_zoom"])
    web = WebMap(title="Wayfinder", center=center, zoom=zoom, logger=logger)
    view = GuestView(store, web, logger=logger)

    def update_toolbar():
        selected = view.selected_house
        web.set_actions([
            {"name": f"house:{house.id}", "label": house.number,
             "active": selected is not None and house.id == selected.id}
            for house in view.houses()
        ])
        if not view.is_ready:
            web.set_status("The property map has not been set up yet")
        elif selected:
            web.set_status(f"Route to house {selected.number}: {view.route_length():.0f}m")
        else:
            web.set_status("Select your house")

    def on_action(name: str, value: Optional[str]):
        if name.startswith("house:"):
            try:
                view.select_house(name.split(":", 1)[1])
            except WayfinderError as e:
                logger.log("Route failed", {"error": str(e)})
        update_toolbar()

    web.on_action(on_action)
    view.start()
    view.store.subscribe(lambda snapshot: update_toolbar())
    update_toolbar()
    web.start()

    # Refresh the toolbar when another process changes the network
    version = view.snapshot.version
    try:
        while True:
            time.sleep(view.poll_interval)
            if view.snapshot.version != version:
                version = view.snapshot.version
                update_toolbar()
    except KeyboardInterrupt:
        print("\nShutting down...")
    view.close()
    web.stop()


def _wait_forever():
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nShutting down...")


def main():
    parser = argparse.ArgumentParser(
        description="Wayfinder - Property navigation from recorded roads"
    )
    parser.add_argument("--status", action="store_true",
                        help="Show the stored network and its connectivity")
    parser.add_argument("--set-reception", nargs=2, type=float, metavar=("LAT", "LNG"),
                        help="Set the reception location")
    parser.add_argument("--add-house", metavar="NUMBER",
                        help="Place a house at --lat/--lng")
    parser.add_argument("--lat", type=float, metavar="LAT",
                        help="House latitude (with --add-house)")
    parser.add_argument("--lng", type=float, metavar="LNG",
                        help="House longitude (with --add-house)")
    parser.add_argument("--add-road", metavar="POINTS",
                        help='Store a road given as "lat,lng;lat,lng;..."')
    parser.add_argument("--record", metavar="LABEL",
                        help="Record the path from reception to a new house")
    parser.add_argument("--playback", metavar="FILE",
                        help="Record from a GPS trace file")
    parser.add_argument("--gps-url", metavar="URL",
                        help="Record from an HTTP JSON position endpoint")
    parser.add_argument("--trace", metavar="FILE",
                        help="Save every GPS fix to a trace file while recording")
    parser.add_argument("--route", metavar="NUMBER",
                        help="Print the route from reception to a house")
    parser.add_argument("--html", metavar="FILE",
                        help="Write the route map to an HTML file (with --route)")
    parser.add_argument("--admin", action="store_true",
                        help="Open the live admin map in the browser")
    parser.add_argument("--guest", action="store_true",
                        help="Open the live guest map in the browser")
    parser.add_argument("--clear", action="store_true",
                        help="Remove reception, houses and roads and exit")
    parser.add_argument("--db", metavar="PATH",
                        help="Database file (default: wayfinder.db)")
    parser.add_argument("--log", metavar="FILE",
                        help="Log file path")

    args = parser.parse_args()

    if args.add_house is not None and (args.lat is None or args.lng is None):
        parser.error("--add-house requires --lat and --lng")
    if args.html and not args.route:
        parser.error("--html requires --route")
    if args.playback and args.gps_url:
        parser.error("--playback and --gps-url cannot be used together")

    with Logger(log_path=args.log, echo=False) as logger:
        store = NetworkStore(args.db, logger=logger)
        try:
            sys.exit(_run(args, store, logger))
        finally:
            store.close()


def _run(args, store: NetworkStore, logger: Logger) -> int:
    # Read-only actions: early exit
    if args.status:
        _print_status(store)
        return 0

    if args.route:
        return _route(store, args.route, args.html, logger)

    if args.guest:
        _serve_guest(store, logger)
        return 0

    if not (args.set_reception or args.add_house is not None or args.add_road
            or args.record or args.admin or args.clear):
        _print_status(store)
        return 0

    _require_admin()

    try:
        if args.clear:
            snapshot = store.load()
            store.clear()
            print(f"Cleared {len(snapshot.houses)} houses and {len(snapshot.roads)} roads.")
            return 0

        if args.set_reception:
            lat, lng = args.set_reception
            store.set_reception(Location(lat=lat, lng=lng))
            print(f"Reception set to {lat:.6f}, {lng:.6f}")
            return 0

        if args.add_house is not None:
            house = store.add_house(args.add_house, Location(lat=args.lat, lng=args.lng))
            print(f"Added house {house.number}")
            return 0

        if args.add_road:
            try:
                points = _parse_points(args.add_road)
            except ValueError:
                print(f"Cannot parse road points: {args.add_road}")
                return 1
            road = store.add_road(points)
            print(f"Added road with {len(road.points)} points")
            return 0
    except WayfinderError as e:
        print(f"Error: {e}")
        return 1

    if args.record:
        return _record(store, args, logger)

    sampler = GeoSampler(HTTPLocationSource(args.gps_url), logger=logger) if args.gps_url else None
    _serve_admin(store, sampler, logger)
    return 0


if __name__ == "__main__":
    main()
