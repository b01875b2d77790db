"""Connectivity diagnostics for the recorded road network."""

import math
from typing import Optional, Sequence

import networkx as nx

from .config import CONFIG
from .geo import nearest_point, planar_distance
from .models import NetworkSnapshot, Road


def build_road_graph(roads: Sequence[Road], adjacency_threshold: Optional[float] = None) -> nx.Graph:
    """Graph of road points, joined along each road and across nearby roads.

    Nodes are (lat, lng) tuples. Points of different roads closer than the
    adjacency threshold get a junction edge.
    """
    threshold = adjacency_threshold if adjacency_threshold is not None else CONFIG["route_adjacency_threshold"]
    graph = nx.Graph()

    for road in roads:
        points = road.points
        for p in points:
            graph.add_node(p.key)
        for a, b in zip(points, points[1:]):
            if a.key != b.key:
                graph.add_edge(a.key, b.key, road=road.id, length=planar_distance(a, b))

    # Grid index with threshold-sized cells; only neighbouring cells can hold close pairs
    grid: dict[tuple[int, int], list[tuple[float, float]]] = {}
    for key in graph.nodes:
        cell = (math.floor(key[0] / threshold), math.floor(key[1] / threshold))
        grid.setdefault(cell, []).append(key)

    for (cx, cy), keys in grid.items():
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for other in grid.get((cx + dx, cy + dy), []):
                    for key in keys:
                        if key >= other or graph.has_edge(key, other):
                            continue
                        if math.hypot(key[0] - other[0], key[1] - other[1]) < threshold:
                            graph.add_edge(key, other, junction=True)

    return graph


def network_report(snapshot: NetworkSnapshot, adjacency_threshold: Optional[float] = None) -> dict:
    """Summary of how well the recorded roads connect reception to the houses.

    A house counts as connected when its nearest road point lies in the same
    connected cluster as the road point nearest reception.
    """
    graph = build_road_graph(snapshot.roads, adjacency_threshold)
    report = {
        "version": snapshot.version,
        "reception": snapshot.reception is not None,
        "houses": len(snapshot.houses),
        "roads": len(snapshot.roads),
        "road_points": graph.number_of_nodes(),
        "clusters": nx.number_connected_components(graph),
        "connected_houses": [],
        "isolated_houses": [],
    }

    road_points = [p for road in snapshot.roads for p in road.points]
    reception_anchor = nearest_point(snapshot.reception, road_points) if snapshot.reception else None
    reception_cluster = nx.node_connected_component(graph, reception_anchor.key) if reception_anchor else set()

    for house in snapshot.sorted_houses():
        anchor = nearest_point(house.location, road_points)
        if anchor is not None and anchor.key in reception_cluster:
            report["connected_houses"].append(house.number)
        else:
            report["isolated_houses"].append(house.number)

    return report
