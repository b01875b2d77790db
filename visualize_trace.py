#!/usr/bin/env python3
"""
Visualize a recorded GPS trace and which fixes the recording filter keeps.

Usage:
    python visualize_trace.py trace.json [--output map.html] [--epsilon 1e-5]
"""

import argparse
from pathlib import Path

import folium
from folium import plugins

from wayfinder import CONFIG, Location, planar_distance, polyline_length
from wayfinder.gps import load_trace


def filter_samples(locations: list[Location], epsilon: float) -> tuple[list[Location], list[Location]]:
    """Split fixes into (kept, dropped) the way a recording does"""
    kept: list[Location] = []
    dropped: list[Location] = []
    for loc in locations:
        if kept and planar_distance(loc, kept[-1]) <= epsilon:
            dropped.append(loc)
        else:
            kept.append(loc)
    return kept, dropped


def create_trace_map(trace: list[dict], output_path: str, epsilon: float):
    """Create map visualization of GPS trace"""
    locations = [Location.from_dict(e["location"]) for e in trace if e.get("location")]

    if not locations:
        print("No valid GPS locations in trace")
        return

    kept, dropped = filter_samples(locations, epsilon)

    center_lat = sum(p.lat for p in locations) / len(locations)
    center_lng = sum(p.lng for p in locations) / len(locations)

    m = folium.Map(location=[center_lat, center_lng], zoom_start=17)
    folium.TileLayer("CartoDB positron", name="Light").add_to(m)

    folium.PolyLine(
        [[p.lat, p.lng] for p in kept],
        weight=4,
        color="#FFA500",
        opacity=0.8,
        popup="Recorded path"
    ).add_to(m)

    kept_group = folium.FeatureGroup(name="Kept fixes", show=True)
    for i, loc in enumerate(kept):
        accuracy = f"{loc.accuracy:.0f}m" if loc.accuracy is not None else "unknown"
        folium.CircleMarker(
            location=[loc.lat, loc.lng],
            radius=5,
            color="green",
            fill=True,
            popup=folium.Popup(f"<b>Point {i + 1}</b><br>Accuracy: {accuracy}", max_width=200)
        ).add_to(kept_group)
    kept_group.add_to(m)

    dropped_group = folium.FeatureGroup(name="Dropped fixes", show=True)
    for loc in dropped:
        folium.CircleMarker(
            location=[loc.lat, loc.lng],
            radius=8,
            color="red",
            fill=False,
            weight=2,
            popup="Within filter distance of the previous kept fix"
        ).add_to(dropped_group)
    dropped_group.add_to(m)

    folium.Marker([kept[0].lat, kept[0].lng], popup="Start",
                  icon=folium.Icon(color="green", icon="play")).add_to(m)
    folium.Marker([kept[-1].lat, kept[-1].lng], popup="End",
                  icon=folium.Icon(color="red", icon="stop")).add_to(m)

    folium.LayerControl().add_to(m)

    failed = len(trace) - len(locations)
    enough = len(kept) + 1 >= CONFIG["min_recording_points"]
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
        <b>GPS Trace</b><br>
        <hr style="margin: 5px 0">
        Total entries: {len(trace)}<br>
        Failed fixes: {failed}<br>
        Kept: {len(kept)}<br>
        Dropped: {len(dropped)}<br>
        Path length: {polyline_length(kept):.0f}m<br>
        {'Long enough to save' if enough else 'Too short to save'}
    </div>
    """
    m.get_root().html.add_child(folium.Element(legend_html))

    plugins.Fullscreen().add_to(m)

    m.save(output_path)
    print(f"Trace map saved to {output_path}")
    print(f"  {len(kept)} kept, {len(dropped)} dropped, {failed} failures")


def main():
    parser = argparse.ArgumentParser(description="Visualize GPS trace on map")
    parser.add_argument("trace", help="GPS trace JSON file")
    parser.add_argument("-o", "--output", default="trace_map.html",
                        help="Output HTML file (default: trace_map.html)")
    parser.add_argument("--epsilon", type=float, default=CONFIG["sample_epsilon"],
                        help="Recording filter distance in degrees (default: 1e-5)")

    args = parser.parse_args()

    if not Path(args.trace).exists():
        print(f"Trace file not found: {args.trace}")
        return 1

    trace = load_trace(args.trace)
    create_trace_map(trace, args.output, args.epsilon)
    return 0


if __name__ == "__main__":
    exit(main())
