from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ..utils.geo_utils import Point

WALK_ROUTE_ID = 'WALK'
START_SENTINEL = 'START'
END_SENTINEL = 'END'

# Closed set of routing outcome codes returned instead of a PathResult
SYSTEM_ERROR = 'SYSTEM_ERROR'
SAME_LOCATION = 'SAME_LOCATION'
TOO_CLOSE = 'TOO_CLOSE'
OUT_OF_SERVICE_AREA = 'OUT_OF_SERVICE_AREA'
START_TOO_FAR = 'START_TOO_FAR'
END_TOO_FAR = 'END_TOO_FAR'
NO_PATH_FOUND = 'NO_PATH_FOUND'
TRANSFER_LIMIT_EXCEEDED = 'TRANSFER_LIMIT_EXCEEDED'
WALKING_TOO_LONG = 'WALKING_TOO_LONG'

ROUTE_ERROR_CODES: FrozenSet[str] = frozenset({
    SYSTEM_ERROR,
    SAME_LOCATION,
    TOO_CLOSE,
    OUT_OF_SERVICE_AREA,
    START_TOO_FAR,
    END_TOO_FAR,
    NO_PATH_FOUND,
    TRANSFER_LIMIT_EXCEEDED,
    WALKING_TOO_LONG,
})


def _points_to_dicts(points) -> List[Dict[str, float]]:
    return [{'lat': lat, 'lng': lng} for lat, lng in points]


@dataclass(frozen=True)
class StopNode:
    """A bus stop registered in the network graph"""
    id: str
    lat: float
    lng: float
    name: str = ''

    @property
    def point(self) -> Point:
        return (self.lat, self.lng)

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'lat': self.lat, 'lng': self.lng, 'name': self.name}


@dataclass(frozen=True)
class GraphEdge:
    """Directed edge between two stops, on a bus route or the WALK pseudo-route"""
    source: str
    target: str
    route_id: str
    distance_km: float
    time_minutes: float
    path_coordinates: Optional[Tuple[Point, ...]] = None

    @property
    def is_walk(self) -> bool:
        return self.route_id == WALK_ROUTE_ID


@dataclass(frozen=True)
class PathSegment:
    """One leg of a planned trip"""
    from_stop_id: str
    to_stop_id: str
    route_id: str
    description: str
    time_minutes: float
    distance_km: float
    geometry: Tuple[Point, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from_stop_id': self.from_stop_id,
            'to_stop_id': self.to_stop_id,
            'route_id': self.route_id,
            'description': self.description,
            'time_minutes': self.time_minutes,
            'distance_km': self.distance_km,
            'geometry': _points_to_dicts(self.geometry),
        }


@dataclass(frozen=True)
class PathResult:
    """Successful trip plan: walk-in, core bus/walk legs, walk-out"""
    segments: Tuple[PathSegment, ...]
    total_time_minutes: float
    total_distance_km: float
    transfers: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'segments': [seg.to_dict() for seg in self.segments],
            'total_time_minutes': self.total_time_minutes,
            'total_distance_km': self.total_distance_km,
            'transfers': self.transfers,
        }


@dataclass(frozen=True)
class RouteError:
    """Tagged outcome explaining why no trip can be planned"""
    code: str

    def __post_init__(self):
        if self.code not in ROUTE_ERROR_CODES:
            raise ValueError(f"Unknown route error code: {self.code}")

    def to_dict(self) -> Dict[str, Any]:
        return {'code': self.code}
