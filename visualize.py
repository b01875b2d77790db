#!/usr/bin/env python3
"""
Visualize the stored property network on an interactive map.

Usage:
    python visualize.py [--db PATH] [--output PATH]

Examples:
    python visualize.py
    python visualize.py --db wayfinder.db --output property_map.html
"""

import argparse
from pathlib import Path

import folium
from folium import plugins

from wayfinder import FoliumMap, NetworkStore, network_report
from wayfinder.presentation import ADMIN_ROAD_LINE, HOUSE_MARKER, RECEPTION_MARKER, LineStyle, MarkerStyle

ISOLATED_HOUSE_MARKER = MarkerStyle("#F59E0B", 30)
JUNCTION_LINE = LineStyle("#6366F1", 2, opacity=0.6, dash="4, 4")


def create_map(db_path: str) -> folium.Map:
    """Create a map of reception, houses and roads with connectivity highlights."""
    store = NetworkStore(db_path)
    snapshot = store.load()
    store.close()

    if snapshot.is_empty:
        raise ValueError("The network is empty")

    report = network_report(snapshot)
    isolated = set(report["isolated_houses"])

    adapter = FoliumMap(center=snapshot.reception, zoom=16)
    for road in snapshot.roads:
        adapter.draw_polyline(road.points, ADMIN_ROAD_LINE)
    if snapshot.reception:
        adapter.draw_marker(snapshot.reception, RECEPTION_MARKER, "Reception")
    for house in snapshot.houses:
        style = ISOLATED_HOUSE_MARKER if house.number in isolated else HOUSE_MARKER
        adapter.draw_marker(house.location, style, f"House {house.number}")

    points = [p for road in snapshot.roads for p in road.points]
    points += [h.location for h in snapshot.houses]
    if snapshot.reception:
        points.append(snapshot.reception)
    adapter.fit_bounds(points)

    m = adapter.map
    folium.TileLayer("CartoDB positron", name="Light").add_to(m)
    folium.LayerControl().add_to(m)

    legend_html = f"""
    <div style="
        position: fixed;
        bottom: 50px;
        left: 50px;
        z-index: 1000;
        background-color: white;
        padding: 10px;
        border-radius: 5px;
        border: 2px solid grey;
        font-family: Arial;
        font-size: 12px;
    ">
        <b>Property Network</b><br>
        <hr style="margin: 5px 0">
        <div style="display: flex; align-items: center; margin: 3px 0;">
            <div style="width: 12px; height: 12px; background: {RECEPTION_MARKER.color}; border-radius: 50%; margin-right: 5px;"></div>
            Reception
        </div>
        <div style="display: flex; align-items: center; margin: 3px 0;">
            <div style="width: 12px; height: 12px; background: {HOUSE_MARKER.color}; border-radius: 50%; margin-right: 5px;"></div>
            House reachable by road
        </div>
        <div style="display: flex; align-items: center; margin: 3px 0;">
            <div style="width: 12px; height: 12px; background: {ISOLATED_HOUSE_MARKER.color}; border-radius: 50%; margin-right: 5px;"></div>
            House off the reception's road cluster
        </div>
        <div style="display: flex; align-items: center; margin: 3px 0;">
            <div style="width: 30px; height: 4px; background: {ADMIN_ROAD_LINE.color}; margin-right: 5px;"></div>
            Road
        </div>
        <hr style="margin: 5px 0">
        <b>Stats:</b><br>
        Version: {report['version']}<br>
        Houses: {report['houses']}<br>
        Roads: {report['roads']} ({report['road_points']} points)<br>
        Road clusters: {report['clusters']}
    </div>
    """
    m.get_root().html.add_child(folium.Element(legend_html))

    plugins.Fullscreen().add_to(m)
    plugins.LocateControl().add_to(m)

    print(f"Map created: {report['houses']} houses, {report['roads']} roads, "
          f"{len(isolated)} houses off the reception cluster")

    return m


def main():
    parser = argparse.ArgumentParser(
        description="Visualize the property network on a map"
    )
    parser.add_argument("--db", default="wayfinder.db",
                        help="Database path (default: wayfinder.db)")
    parser.add_argument("--output", "-o", default="wayfinder_map.html",
                        help="Output HTML file (default: wayfinder_map.html)")

    args = parser.parse_args()

    if not Path(args.db).exists():
        print(f"Database not found: {args.db}")
        print("Record or draw some roads with `python -m wayfinder` first.")
        return 1

    try:
        m = create_map(args.db)
        m.save(args.output)
        print(f"\nMap saved to: {args.output}")
        print(f"Open in browser: file://{Path(args.output).absolute()}")
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
