import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import networkx as nx
import numpy as np
from rtree import index

from ..models.route_segments import WALK_ROUTE_ID, StopNode
from ..utils.geo_utils import (
    estimate_time_minutes,
    haversine_distance,
    is_finite_coordinate,
    vectorized_haversine,
)

WALK_SPEED_KMH = 4.5
BUS_SPEED_KMH = 30.0  # average bus speed estimate
WALK_TRANSFER_DISTANCE_KM = 0.5
WALK_BOARDING_PENALTY_MIN = 1.0

KM_PER_DEGREE_LAT = 111.19
# Widen the R-tree query box so the exact haversine test decides membership
SEARCH_BOX_MARGIN = 1.05

module_logger = logging.getLogger(__name__)


def _stop_detail(entry) -> Optional[dict]:
    """Embedded stop record of a route-stop entry, or None when unusable"""
    if not isinstance(entry, Mapping):
        return None
    stop = entry.get('stops')
    if not isinstance(stop, Mapping) or not stop.get('id'):
        return None
    if not is_finite_coordinate(stop.get('lat')) or not is_finite_coordinate(stop.get('lng')):
        return None
    return stop


def _sequence(entry) -> Optional[float]:
    """sequence_order of a route-stop entry, or None when missing or not finite"""
    if not isinstance(entry, Mapping) or not is_finite_coordinate(entry.get('sequence_order')):
        return None
    return entry['sequence_order']


def _sequence_runs(entries: list) -> List[list]:
    """
    Split route-stop entries at every entry without a usable sequence_order
    and sort each run by sequence. Stops on either side of such an entry are
    never paired, since its true position on the route is unknown.
    """
    runs, run = [], []
    for entry in entries:
        if _sequence(entry) is None:
            runs.append(run)
            run = []
        else:
            run.append(entry)
    runs.append(run)
    # Stable: equal sequence numbers keep their input order
    return [sorted(r, key=_sequence) for r in runs if len(r) >= 2]


def _parse_path_coordinates(raw) -> Optional[Tuple[Tuple[float, float], ...]]:
    """Manual path geometry as (lat, lng) tuples; None when absent, empty or malformed"""
    if not raw or not isinstance(raw, (list, tuple)):
        return None
    points = []
    for point in raw:
        if not isinstance(point, Mapping):
            return None
        lat, lng = point.get('lat'), point.get('lng')
        if not is_finite_coordinate(lat) or not is_finite_coordinate(lng):
            return None
        points.append((float(lat), float(lng)))
    return tuple(points)


def register_stops(graph: nx.MultiDiGraph, route_stops_by_route: Mapping[str, list], logger) -> int:
    """Add one node per distinct stop id, first-seen record wins. Returns records skipped."""
    skipped = 0
    for entries in route_stops_by_route.values():
        for entry in entries or []:
            stop = _stop_detail(entry)
            if stop is None:
                skipped += 1
                continue
            stop_id = str(stop['id'])
            if stop_id in graph:
                continue
            graph.add_node(stop_id, stop=StopNode(
                id=stop_id,
                lat=float(stop['lat']),
                lng=float(stop['lng']),
                name=stop.get('stop_name') or '',
            ))
    if skipped:
        logger.debug(f"Skipped {skipped} route-stop records without a usable stop")
    return skipped


def build_transit_edges(graph: nx.MultiDiGraph, routes: Iterable[Mapping], route_stops_by_route: Mapping[str, list],
                        bus_speed_kmh: float, logger) -> int:
    """Add bus edges ONLY between consecutive stops of the same route"""
    transit_edges = 0
    for route in routes:
        route_id = route.get('id') if isinstance(route, Mapping) else None
        if not route_id:
            continue
        pairs = [
            pair
            for run in _sequence_runs(route_stops_by_route.get(route_id) or [])
            for pair in zip(run, run[1:])
        ]
        for current, following in pairs:
            from_stop = _stop_detail(current)
            to_stop = _stop_detail(following)
            if from_stop is None or to_stop is None:
                logger.debug(f"Route {route_id}: skipping pair at sequence {current['sequence_order']}")
                continue
            source, target = str(from_stop['id']), str(to_stop['id'])
            src_node = graph.nodes[source]['stop']
            dst_node = graph.nodes[target]['stop']
            distance = haversine_distance(src_node.lat, src_node.lng, dst_node.lat, dst_node.lng)
            graph.add_edge(
                source,
                target,
                route_id=route_id,
                distance=distance,
                time=estimate_time_minutes(distance, bus_speed_kmh),
                path_coordinates=_parse_path_coordinates(current.get('path_coordinates')),
                type='transit',
            )
            transit_edges += 1
    logger.info(f"Created {transit_edges} transit edges")
    return transit_edges


def build_walking_edges(graph: nx.MultiDiGraph, walk_speed_kmh: float, max_distance_km: float,
                        boarding_penalty_min: float, logger) -> int:
    """
    Add symmetric WALK edges for every pair of stops closer than max_distance_km.

    The pairwise test is exact; an R-tree only narrows which pairs get the
    haversine check. Pairs are visited in ascending registration order so
    the resulting adjacency is deterministic.
    """
    stop_nodes: List[StopNode] = [data['stop'] for _, data in graph.nodes(data=True)]
    if len(stop_nodes) < 2:
        return 0

    lats = np.array([s.lat for s in stop_nodes])
    lngs = np.array([s.lng for s in stop_nodes])

    # R-tree needs a bounding box: (min_lng, min_lat, max_lng, max_lat)
    idx = index.Index()
    for i, stop in enumerate(stop_nodes):
        idx.insert(i, (stop.lng, stop.lat, stop.lng, stop.lat))

    lat_pad = max_distance_km / KM_PER_DEGREE_LAT * SEARCH_BOX_MARGIN
    walking_edges = 0
    for i, stop in enumerate(stop_nodes):
        cos_lat = math.cos(math.radians(min(abs(stop.lat) + lat_pad, 90.0)))
        lng_pad = 180.0 if cos_lat < 1e-6 else min(lat_pad / cos_lat, 180.0)
        bounds = (stop.lng - lng_pad, stop.lat - lat_pad, stop.lng + lng_pad, stop.lat + lat_pad)

        candidates = sorted(j for j in idx.intersection(bounds) if j > i)
        if not candidates:
            continue
        distances = vectorized_haversine(stop.lat, stop.lng, lats[candidates], lngs[candidates])

        for j, dist in zip(candidates, distances):
            if dist >= max_distance_km:
                continue
            dist = float(dist)
            other = stop_nodes[j]
            attrs = {
                'route_id': WALK_ROUTE_ID,
                'distance': dist,
                'time': estimate_time_minutes(dist, walk_speed_kmh) + boarding_penalty_min,
                'path_coordinates': None,
                'type': 'transfer',
            }
            graph.add_edge(stop.id, other.id, **attrs)
            graph.add_edge(other.id, stop.id, **attrs)
            walking_edges += 2

    logger.info(f"Created {walking_edges} walking/transfer edges")
    return walking_edges


def build_network_graph(routes: Iterable[Mapping], route_stops_by_route: Mapping[str, list],
                        walk_speed_kmh: float = WALK_SPEED_KMH,
                        bus_speed_kmh: float = BUS_SPEED_KMH,
                        walk_transfer_distance_km: float = WALK_TRANSFER_DISTANCE_KM,
                        walk_boarding_penalty_min: float = WALK_BOARDING_PENALTY_MIN,
                        logger=None) -> nx.MultiDiGraph:
    """
    Build a fresh stop graph from route and route-stop records.

    Malformed records are skipped; this never raises for bad data. The
    route id -> route number lookup is stored in ``graph.graph['route_names']``.
    """
    logger = logger or module_logger
    routes = list(routes or [])
    route_stops_by_route = route_stops_by_route or {}

    graph = nx.MultiDiGraph()
    graph.graph['route_names'] = {
        r['id']: str(r.get('route_number') or r['id'])
        for r in routes if isinstance(r, Mapping) and r.get('id')
    }

    register_stops(graph, route_stops_by_route, logger)
    build_transit_edges(graph, routes, route_stops_by_route, bus_speed_kmh, logger)
    build_walking_edges(graph, walk_speed_kmh, walk_transfer_distance_km, walk_boarding_penalty_min, logger)

    logger.info(f"Graph built: {graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges")
    return graph


def iter_graph_edges(graph: nx.MultiDiGraph, source: str):
    """Outgoing edges of a stop as (target, attrs) in insertion order"""
    for target, keyed in graph.adj[source].items():
        for data in keyed.values():
            yield target, data


def edge_counts_by_type(graph: nx.MultiDiGraph) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for _, _, data in graph.edges(data=True):
        counts[data['type']] = counts.get(data['type'], 0) + 1
    return counts
