"""Route synthesis over recorded road geometry.

Recorded roads are not assumed to be connected, so there is no graph to
search. Instead the route walks greedily from the road point nearest the
start towards the road point nearest the destination, stepping only to
points that are directly reachable from the current one.
"""

from typing import Iterator, Optional, Sequence

from .config import CONFIG
from .geo import nearest_point, planar_distance
from .logger import Logger, NULL_LOGGER
from .models import Location, Road


class RouteSynthesizer:
    """Greedy nearest-anchor walk from a start to a destination"""

    def __init__(self, max_iterations: Optional[int] = None,
                 arrival_threshold: Optional[float] = None,
                 adjacency_threshold: Optional[float] = None,
                 logger: Optional[Logger] = None):
        self.max_iterations = max_iterations if max_iterations is not None else CONFIG["route_max_iterations"]
        self.arrival_threshold = (arrival_threshold if arrival_threshold is not None
                                  else CONFIG["route_arrival_threshold"])
        self.adjacency_threshold = (adjacency_threshold if adjacency_threshold is not None
                                    else CONFIG["route_adjacency_threshold"])
        self.logger = logger or NULL_LOGGER

    def synthesize(self, start: Location, destination: Location,
                   roads: Sequence[Road]) -> list[Location]:
        """Ordered waypoints from start to destination.

        The first waypoint is always `start` and the last always
        `destination`. The result depends only on the inputs. When no road
        has any points the route is the direct segment.
        """
        road_points = [p for road in roads for p in road.points]
        if not road_points:
            return [start, destination]

        start_anchor = nearest_point(start, road_points)
        end_anchor = nearest_point(destination, road_points)

        route = [start, start_anchor]
        visited = {start.key, start_anchor.key}
        current = start_anchor
        steps = 0

        for _ in range(self.max_iterations):
            if planar_distance(current, end_anchor) < self.arrival_threshold:
                break
            next_point = self._best_candidate(current, end_anchor, roads,
                                              (start, destination), visited)
            if next_point is None:
                # Dead end: stop here and jump to the end anchor
                break
            visited.add(next_point.key)
            route.append(next_point)
            current = next_point
            steps += 1

        reached = planar_distance(current, end_anchor) < self.arrival_threshold
        route.append(end_anchor)
        route.append(destination)

        self.logger.log("Route synthesized", {
            "waypoints": len(route),
            "steps": steps,
            "reached_anchor": reached,
        })
        return route

    def _best_candidate(self, current: Location, target: Location,
                        roads: Sequence[Road], endpoints: tuple[Location, Location],
                        visited: set) -> Optional[Location]:
        """Unvisited reachable point closest to target, first seen on a tie"""
        best = None
        best_dist = float("inf")
        for point in self._reachable(current, roads, endpoints):
            if point.key in visited:
                continue
            dist = planar_distance(point, target)
            if dist < best_dist:
                best_dist = dist
                best = point
        return best

    def _reachable(self, current: Location, roads: Sequence[Road],
                   endpoints: tuple[Location, Location]) -> Iterator[Location]:
        """Pool points reachable from current, in pool order.

        A point is reachable when it lies within the adjacency threshold of
        current, or when it neighbours (along its road) a vertex that does.
        """
        for road in roads:
            points = road.points
            near = [planar_distance(p, current) < self.adjacency_threshold for p in points]
            for i, point in enumerate(points):
                if near[i] or (i > 0 and near[i - 1]) or (i + 1 < len(points) and near[i + 1]):
                    yield point
        for point in endpoints:
            if planar_distance(point, current) < self.adjacency_threshold:
                yield point


def find_route(start: Location, destination: Location, roads: Sequence[Road]) -> list[Location]:
    """Route with the default thresholds"""
    return RouteSynthesizer().synthesize(start, destination, roads)
