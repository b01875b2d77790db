# tests/test_network.py
import networkx as nx

from wayfinder.models import House, NetworkSnapshot, Road
from wayfinder.network import build_road_graph, network_report

from helpers import loc


def test_graph_joins_points_along_roads():
    road = Road(id="r", points=(loc(0, 0), loc(0, 1), loc(0, 2)))
    graph = build_road_graph([road])

    assert graph.number_of_nodes() == 3
    assert graph.has_edge((0, 0), (0, 1))
    assert graph.has_edge((0, 1), (0, 2))
    assert not graph.has_edge((0, 0), (0, 2))
    assert graph.edges[(0, 0), (0, 1)]["road"] == "r"


def test_graph_adds_junctions_between_nearby_roads():
    roads = [
        Road(id="a", points=(loc(0, 0), loc(0, 1))),
        Road(id="b", points=(loc(0, 1.0005), loc(1, 1.0005))),
        Road(id="c", points=(loc(5, 5), loc(6, 6))),
    ]
    graph = build_road_graph(roads)

    assert graph.edges[(0, 1), (0, 1.0005)]["junction"]
    assert nx.number_connected_components(graph) == 2


def test_report_flags_houses_off_the_reception_cluster():
    snapshot = NetworkSnapshot(
        reception=loc(0, 0),
        houses=(
            House(id="1", number="10", location=loc(0, 1)),
            House(id="2", number="2", location=loc(6, 6)),
        ),
        roads=(
            Road(id="a", points=(loc(0, 0), loc(0, 1))),
            Road(id="c", points=(loc(5, 5), loc(6, 6))),
        ),
        version=4,
    )
    report = network_report(snapshot)

    assert report["version"] == 4
    assert report["clusters"] == 2
    assert report["road_points"] == 4
    assert report["connected_houses"] == ["10"]
    assert report["isolated_houses"] == ["2"]


def test_report_on_empty_network():
    report = network_report(NetworkSnapshot.empty())
    assert report["clusters"] == 0
    assert report["reception"] is False
    assert report["connected_houses"] == []
