"""
Network graph service: builds the stop graph from route data and plans
walk + bus trips between arbitrary coordinates.

One instance owns one generation of map data. ``build_graph`` replaces
everything, so callers that refresh data while serving queries should build
a new instance and swap it in rather than rebuild a shared one.
"""

import logging
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Union

import networkx as nx

from .exceptions import InvalidCoordinatesError
from .graph.graph_builder import (
    BUS_SPEED_KMH,
    WALK_BOARDING_PENALTY_MIN,
    WALK_SPEED_KMH,
    WALK_TRANSFER_DISTANCE_KM,
    build_network_graph,
)
from .models.route_segments import (
    END_SENTINEL,
    END_TOO_FAR,
    NO_PATH_FOUND,
    OUT_OF_SERVICE_AREA,
    SAME_LOCATION,
    START_SENTINEL,
    START_TOO_FAR,
    SYSTEM_ERROR,
    TOO_CLOSE,
    TRANSFER_LIMIT_EXCEEDED,
    WALK_ROUTE_ID,
    WALKING_TOO_LONG,
    GraphEdge,
    PathResult,
    PathSegment,
    RouteError,
    StopNode,
)
from .routing.algorithms import (
    MAX_TRANSFERS,
    MAX_WALKING_DISTANCE_KM,
    MAX_WALKING_RATIO,
    MIN_TRIP_DISTANCE_KM,
    SAME_LOCATION_KM,
    SERVICE_AREA_BOUNDS,
    SNAP_RADIUS_KM,
    TRANSFER_PENALTY_MIN,
    count_transfers,
    find_nearest_stop,
    is_within_service_area,
    reconstruct_core_path,
    transfer_aware_dijkstra,
    walking_dominates,
)
from .utils.geo_utils import estimate_time_minutes, haversine_distance, is_finite_coordinate


class NetworkGraph:
    """
    Stop graph plus trip planner:
    1. Bus edges between consecutive stops of each route
    2. Symmetric walking edges between stops less than 500 m apart
    3. Transfer-penalised fastest path between the stops nearest to two coordinates
    4. Unroutable queries reported as RouteError codes, never raised
    """

    def __init__(self,
                 walk_speed_kmh: float = WALK_SPEED_KMH,
                 bus_speed_kmh: float = BUS_SPEED_KMH,
                 walk_transfer_distance_km: float = WALK_TRANSFER_DISTANCE_KM,
                 walk_boarding_penalty_min: float = WALK_BOARDING_PENALTY_MIN,
                 transfer_penalty_min: float = TRANSFER_PENALTY_MIN,
                 snap_radius_km: float = SNAP_RADIUS_KM,
                 max_transfers: int = MAX_TRANSFERS,
                 max_walking_distance_km: float = MAX_WALKING_DISTANCE_KM,
                 max_walking_ratio: float = MAX_WALKING_RATIO,
                 service_area: Sequence[float] = SERVICE_AREA_BOUNDS,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

        self.walk_speed_kmh = walk_speed_kmh
        self.bus_speed_kmh = bus_speed_kmh
        self.walk_transfer_distance_km = walk_transfer_distance_km
        self.walk_boarding_penalty_min = walk_boarding_penalty_min

        self.transfer_penalty_min = transfer_penalty_min
        self.snap_radius_km = snap_radius_km
        self.max_transfers = max_transfers
        self.max_walking_distance_km = max_walking_distance_km
        self.max_walking_ratio = max_walking_ratio
        self.service_area = tuple(service_area)

        self.graph = nx.MultiDiGraph()
        self.graph.graph['route_names'] = {}

    @classmethod
    def from_config(cls, cfg=None, logger: Optional[logging.Logger] = None) -> 'NetworkGraph':
        """Create an empty instance tuned by a Config object (the global one by default)"""
        if cfg is None:
            from .config import config as cfg
        return cls(**cfg.get_graph_builder_config(), **cfg.get_router_config(), logger=logger)

    # ------------------------------------------------------------------
    #  Graph building
    # ------------------------------------------------------------------
    def build_graph(self, routes: Sequence[Mapping], route_stops_by_route: Mapping[str, list]) -> None:
        """Discard the current graph and build a new one. Bad records are skipped, never raised."""
        self.graph = build_network_graph(
            routes,
            route_stops_by_route,
            walk_speed_kmh=self.walk_speed_kmh,
            bus_speed_kmh=self.bus_speed_kmh,
            walk_transfer_distance_km=self.walk_transfer_distance_km,
            walk_boarding_penalty_min=self.walk_boarding_penalty_min,
            logger=self.logger,
        )

    @property
    def route_names(self) -> Dict[str, str]:
        return self.graph.graph['route_names']

    @property
    def stops(self) -> List[StopNode]:
        """Registered stops in registration order"""
        return [data['stop'] for _, data in self.graph.nodes(data=True)]

    def get_stop(self, stop_id: str) -> Optional[StopNode]:
        if stop_id not in self.graph:
            return None
        return self.graph.nodes[stop_id]['stop']

    def number_of_stops(self) -> int:
        return self.graph.number_of_nodes()

    def number_of_edges(self) -> int:
        return self.graph.number_of_edges()

    def edges(self) -> Iterator[GraphEdge]:
        for source, target, data in self.graph.edges(data=True):
            yield GraphEdge(
                source=source,
                target=target,
                route_id=data['route_id'],
                distance_km=data['distance'],
                time_minutes=data['time'],
                path_coordinates=data['path_coordinates'],
            )

    # ------------------------------------------------------------------
    #  Queries
    # ------------------------------------------------------------------
    def find_nearest_stop(self, lat: float, lng: float, max_dist_km: Optional[float] = None) -> Optional[StopNode]:
        """Nearest registered stop within max_dist_km (snap radius by default), or None"""
        _require_finite(lat=lat, lng=lng)
        if max_dist_km is None:
            max_dist_km = self.snap_radius_km
        return find_nearest_stop(self.stops, lat, lng, max_dist_km)

    def find_shortest_path(self, start_lat: float, start_lng: float,
                           end_lat: float, end_lng: float) -> Union[PathResult, RouteError]:
        """
        Plan the fastest walk + bus trip between two coordinates.

        Raises InvalidCoordinatesError for non-finite input; every routing
        failure is returned as a RouteError instead.
        """
        _require_finite(start_lat=start_lat, start_lng=start_lng, end_lat=end_lat, end_lng=end_lng)

        # --- Validation gate: first failing rule wins ---
        if self.graph.number_of_nodes() == 0:
            return self._reject(SYSTEM_ERROR)

        direct_km = haversine_distance(start_lat, start_lng, end_lat, end_lng)
        if direct_km < SAME_LOCATION_KM:
            return self._reject(SAME_LOCATION)
        if direct_km < MIN_TRIP_DISTANCE_KM:
            return self._reject(TOO_CLOSE)

        if not (is_within_service_area(start_lat, start_lng, self.service_area) and
                is_within_service_area(end_lat, end_lng, self.service_area)):
            return self._reject(OUT_OF_SERVICE_AREA)

        stops = self.stops
        start_stop = find_nearest_stop(stops, start_lat, start_lng, self.snap_radius_km)
        if start_stop is None:
            return self._reject(START_TOO_FAR)
        end_stop = find_nearest_stop(stops, end_lat, end_lng, self.snap_radius_km)
        if end_stop is None:
            return self._reject(END_TOO_FAR)

        # --- Search ---
        scores, previous = transfer_aware_dijkstra(self.graph, start_stop.id, end_stop.id, self.transfer_penalty_min)
        if end_stop.id not in previous:
            self.logger.info(f"No path between {start_stop.id} and {end_stop.id}")
            return self._reject(NO_PATH_FOUND)

        core_path = reconstruct_core_path(self.graph, previous, end_stop.id, self.route_names)
        self.logger.debug(f"Core path {start_stop.id} -> {end_stop.id}: {len(core_path)} legs")

        # --- Post-validation ---
        transfers = count_transfers(core_path)
        if transfers > self.max_transfers:
            return self._reject(TRANSFER_LIMIT_EXCEEDED)

        walk_start_km = haversine_distance(start_lat, start_lng, start_stop.lat, start_stop.lng)
        walk_end_km = haversine_distance(end_stop.lat, end_stop.lng, end_lat, end_lng)
        walking_km = walk_start_km + walk_end_km
        total_km = sum(seg.distance_km for seg in core_path) + walking_km
        if walking_dominates(walking_km, total_km, self.max_walking_distance_km, self.max_walking_ratio):
            return self._reject(WALKING_TOO_LONG)

        # --- Assemble ---
        walk_start_min = estimate_time_minutes(walk_start_km, self.walk_speed_kmh)
        walk_end_min = estimate_time_minutes(walk_end_km, self.walk_speed_kmh)
        segments = [
            PathSegment(
                from_stop_id=START_SENTINEL,
                to_stop_id=start_stop.id,
                route_id=WALK_ROUTE_ID,
                description='Walk to Stop',
                time_minutes=walk_start_min,
                distance_km=walk_start_km,
                geometry=((start_lat, start_lng), start_stop.point),
            ),
            *core_path,
            PathSegment(
                from_stop_id=end_stop.id,
                to_stop_id=END_SENTINEL,
                route_id=WALK_ROUTE_ID,
                description='Walk to Destination',
                time_minutes=walk_end_min,
                distance_km=walk_end_km,
                geometry=(end_stop.point, (end_lat, end_lng)),
            ),
        ]
        result = PathResult(
            segments=tuple(segments),
            total_time_minutes=scores[end_stop.id] + walk_start_min + walk_end_min,
            total_distance_km=total_km,
            transfers=transfers,
        )
        self.logger.info(f"Path found: {start_stop.id} -> {end_stop.id}, {len(core_path)} legs, "
                         f"{result.total_time_minutes:.1f} min, {transfers} transfers")
        return result

    def _reject(self, code: str) -> RouteError:
        self.logger.debug(f"Route request rejected: {code}")
        return RouteError(code)


def _require_finite(**coordinates) -> None:
    for name, value in coordinates.items():
        if not is_finite_coordinate(value):
            raise InvalidCoordinatesError(f"{name} must be a finite number, got {value!r}")
