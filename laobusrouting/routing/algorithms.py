import itertools
import math
from heapq import heappop, heappush
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import networkx as nx

from ..graph.graph_builder import iter_graph_edges
from ..models.route_segments import (
    GraphEdge,
    PathSegment,
    Point,
    StopNode,
)
from ..utils.geo_utils import point_distance

# === Trip planning rules (minutes / kilometers) ===
TRANSFER_PENALTY_MIN = 5.0       # cost of switching route or mode
SNAP_RADIUS_KM = 2.0             # max walk from a query point to its stop
SAME_LOCATION_KM = 0.01          # 10 m
MIN_TRIP_DISTANCE_KM = 0.5       # shorter trips are better walked
MAX_TRANSFERS = 4
MAX_WALKING_DISTANCE_KM = 1.5
MAX_WALKING_RATIO = 0.8          # share of the trip that may be walked
GEOMETRY_GAP_KM = 0.005          # 5 m, beyond this a stop is spliced onto a drawn path

# Vientiane service area: (min_lat, min_lng, max_lat, max_lng)
SERVICE_AREA_BOUNDS = (17.75, 102.35, 18.35, 103.00)

Predecessor = Tuple[str, Mapping]  # (from stop id, edge attrs)


def is_within_service_area(lat: float, lng: float, bounds: Sequence[float] = SERVICE_AREA_BOUNDS) -> bool:
    min_lat, min_lng, max_lat, max_lng = bounds
    return min_lat <= lat <= max_lat and min_lng <= lng <= max_lng


def find_nearest_stop(stops: Iterable[StopNode], lat: float, lng: float,
                      max_dist_km: float = SNAP_RADIUS_KM) -> Optional[StopNode]:
    """Closest stop within max_dist_km by linear scan; the first stop scanned wins exact ties."""
    nearest: Optional[StopNode] = None
    min_km = math.inf
    for stop in stops:
        d = point_distance((lat, lng), stop.point)
        if d < min_km and d <= max_dist_km:
            min_km = d
            nearest = stop
    return nearest


def transfer_penalty_for(incoming: Optional[Mapping], edge: Mapping, transfer_penalty_min: float) -> float:
    """Penalty for taking ``edge`` after arriving over ``incoming`` (None at the origin)"""
    if incoming is not None and incoming['route_id'] != edge['route_id']:
        return transfer_penalty_min
    return 0.0


def transfer_aware_dijkstra(graph: nx.MultiDiGraph, origin: str, dest: str,
                            transfer_penalty_min: float = TRANSFER_PENALTY_MIN
                            ) -> Tuple[Dict[str, float], Dict[str, Predecessor]]:
    """
    Label-setting search over travel time with a route-change penalty.

    The penalty depends on the edge that produced a node's current label,
    so each node remembers its predecessor edge. Ties in the frontier go to
    the entry pushed first. The search stops as soon as ``dest`` is popped.

    Returns:
        (scores, previous): best known time per reached stop and, per stop
        other than the origin, the (from stop, edge attrs) that produced it.
    """
    scores: Dict[str, float] = {origin: 0.0}
    previous: Dict[str, Predecessor] = {}
    visited = set()
    counter = itertools.count()
    frontier = [(0.0, next(counter), origin)]

    while frontier:
        score, _, node = heappop(frontier)
        if node == dest:
            break
        if node in visited:
            continue
        visited.add(node)

        incoming = previous[node][1] if node in previous else None
        for target, edge in iter_graph_edges(graph, node):
            if target in visited:
                continue
            candidate = score + edge['time'] + transfer_penalty_for(incoming, edge, transfer_penalty_min)
            if candidate < scores.get(target, math.inf):
                scores[target] = candidate
                previous[target] = (node, edge)
                heappush(frontier, (candidate, next(counter), target))

    return scores, previous


def stitch_geometry(path: Sequence[Point], from_point: Point, to_point: Point,
                    max_gap_km: float = GEOMETRY_GAP_KM) -> Tuple[Point, ...]:
    """Splice the stop coordinates onto either end of a drawn path that stops short of them"""
    points = list(path)
    if point_distance(points[0], from_point) > max_gap_km:
        points.insert(0, from_point)
    if point_distance(points[-1], to_point) > max_gap_km:
        points.append(to_point)
    return tuple(points)


def segment_geometry(edge: GraphEdge, from_stop: StopNode, to_stop: StopNode) -> Tuple[Point, ...]:
    if edge.path_coordinates:
        return stitch_geometry(edge.path_coordinates, from_stop.point, to_stop.point)
    return (from_stop.point, to_stop.point)


def reconstruct_core_path(graph: nx.MultiDiGraph, previous: Mapping[str, Predecessor], dest: str,
                          route_names: Mapping[str, str]) -> List[PathSegment]:
    """Walk predecessor links back from dest and return the bus/walk legs in travel order"""
    segments: List[PathSegment] = []
    curr = dest
    while curr in previous:
        from_id, data = previous[curr]
        edge = GraphEdge(
            source=from_id,
            target=curr,
            route_id=data['route_id'],
            distance_km=data['distance'],
            time_minutes=data['time'],
            path_coordinates=data.get('path_coordinates'),
        )
        from_stop = graph.nodes[from_id]['stop']
        to_stop = graph.nodes[curr]['stop']
        description = 'Walk' if edge.is_walk else route_names.get(edge.route_id, edge.route_id)
        segments.append(PathSegment(
            from_stop_id=from_id,
            to_stop_id=curr,
            route_id=edge.route_id,
            description=description,
            time_minutes=edge.time_minutes,
            distance_km=edge.distance_km,
            geometry=segment_geometry(edge, from_stop, to_stop),
        ))
        curr = from_id
    segments.reverse()
    return segments


def count_transfers(segments: Sequence[PathSegment]) -> int:
    """Number of adjacent leg pairs whose route ids differ (WALK counts as a route)"""
    return sum(1 for a, b in zip(segments, segments[1:]) if a.route_id != b.route_id)


def walking_dominates(walking_km: float, total_km: float,
                      max_walking_km: float = MAX_WALKING_DISTANCE_KM,
                      max_ratio: float = MAX_WALKING_RATIO) -> bool:
    return walking_km > max_walking_km and walking_km > max_ratio * total_km


