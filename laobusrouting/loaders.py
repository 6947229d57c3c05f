"""
Map data loading for the LaoBus routing engine.

The graph builder expects every embedded stop to carry flat numeric
``lat``/``lng``. Stops coming out of the database carry a PostGIS location
instead (EWKB hex, GeoJSON or WKT text); this module resolves those and
groups route-stop rows by route.
"""

import json
import logging
import os
import re
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd
from shapely import wkb, wkt
from shapely.errors import ShapelyError
from shapely.geometry import shape

from .exceptions import MapDataError
from .utils.geo_utils import is_finite_coordinate

logger = logging.getLogger(__name__)

HEX_RE = re.compile(r'^[0-9a-fA-F]+$')
SRID_PREFIX_RE = re.compile(r'^\s*SRID=\d+;', re.IGNORECASE)

ROUTES_FILE = 'routes.csv'
STOPS_FILE = 'stops.csv'
ROUTE_STOPS_FILE = 'route_stops.csv'


def _point_coords(geom) -> Optional[Tuple[float, float]]:
    """(lat, lng) of a non-empty finite Point geometry, None for anything else"""
    if geom is None or geom.geom_type != 'Point' or geom.is_empty:
        return None
    lat, lng = geom.y, geom.x
    if not (is_finite_coordinate(lat) and is_finite_coordinate(lng)):
        return None
    return lat, lng


def parse_wkb_point(hex_string: str) -> Optional[Tuple[float, float]]:
    """
    Decode a WKB or PostGIS EWKB point from its hex form.
    Returns (lat, lng), or None when the string is not a readable point.
    """
    if not isinstance(hex_string, str) or not HEX_RE.match(hex_string):
        return None
    try:
        geom = wkb.loads(hex_string, hex=True)
    except (ShapelyError, ValueError, TypeError):
        return None
    return _point_coords(geom)


def parse_wkt_point(text: str) -> Optional[Tuple[float, float]]:
    """Parse ``POINT(lng lat)`` (optionally SRID-prefixed) into (lat, lng)"""
    try:
        geom = wkt.loads(SRID_PREFIX_RE.sub('', text, count=1))
    except (ShapelyError, ValueError, TypeError):
        return None
    return _point_coords(geom)


def parse_geojson_point(obj: Mapping) -> Optional[Tuple[float, float]]:
    """(lat, lng) from a GeoJSON Point mapping"""
    try:
        geom = shape(obj)
    except (ShapelyError, ValueError, TypeError, KeyError, IndexError, AttributeError):
        return None
    return _point_coords(geom)


def resolve_stop_location(stop: Mapping) -> dict:
    """Return a copy of a stop record with flat lat/lng filled in from its location, when possible"""
    resolved = dict(stop)
    if is_finite_coordinate(resolved.get('lat')) and is_finite_coordinate(resolved.get('lng')):
        return resolved

    location = resolved.get('location')
    coords = None
    if isinstance(location, str):
        coords = parse_wkb_point(location) if HEX_RE.match(location) else parse_wkt_point(location)
    elif isinstance(location, Mapping):
        coords = parse_geojson_point(location)

    if coords is None:
        logger.debug(f"Could not resolve location for stop {resolved.get('id')}")
    else:
        resolved['lat'], resolved['lng'] = coords
    return resolved


def group_route_stops(rows) -> Dict[str, List[dict]]:
    """Group route-stop rows by route id, resolving each embedded stop's coordinates"""
    grouped: Dict[str, List[dict]] = {}
    for row in rows:
        if not isinstance(row, Mapping) or not row.get('route_id'):
            continue
        row = dict(row)
        if isinstance(row.get('stops'), Mapping):
            row['stops'] = resolve_stop_location(row['stops'])
        grouped.setdefault(row['route_id'], []).append(row)
    return grouped


def _is_active(route: Mapping) -> bool:
    active = route.get('is_active', True)
    return active is None or bool(active)


def load_map_data(payload: Mapping) -> Tuple[List[dict], Dict[str, List[dict]]]:
    """
    Turn a map-data payload into builder input.

    Accepts either ``{"routes": [...], "routeStops": {route_id: [...]}}``
    (already grouped) or ``{"routes": [...], "route_stops": [...]}`` (flat).
    Inactive routes are dropped together with their stops.
    """
    routes = [dict(r) for r in payload.get('routes') or [] if isinstance(r, Mapping) and _is_active(r)]
    active_ids = {r.get('id') for r in routes}

    if isinstance(payload.get('routeStops'), Mapping):
        flat_rows = []
        for route_id, rows in payload['routeStops'].items():
            for row in rows or []:
                if isinstance(row, Mapping):
                    flat_rows.append({**row, 'route_id': row.get('route_id') or route_id})
    else:
        flat_rows = payload.get('route_stops') or []

    grouped = group_route_stops(flat_rows)
    route_stops = {route_id: rows for route_id, rows in grouped.items() if route_id in active_ids}
    logger.info(f"Loaded map data: {len(routes)} routes, "
                f"{sum(len(rows) for rows in route_stops.values())} route stops")
    return routes, route_stops


def _read_csv(data_dir: str, filename: str) -> pd.DataFrame:
    path = os.path.join(data_dir, filename)
    if not os.path.exists(path):
        raise MapDataError(f"Map data file not found: {path}")
    try:
        return pd.read_csv(path, dtype={'id': str, 'route_id': str, 'stop_id': str})
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise MapDataError(f"Failed to read {path}: {e}") from e


def _clean(value):
    """NaN cells become None"""
    if isinstance(value, float) and pd.isnull(value):
        return None
    return value


def _decode_path(raw) -> Optional[list]:
    raw = _clean(raw)
    if not raw:
        return None
    try:
        points = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed path_coordinates: {raw!r}")
        return None
    return points if isinstance(points, list) else None


def load_map_data_csv(data_dir: str) -> Tuple[List[dict], Dict[str, List[dict]]]:
    """Load routes.csv, stops.csv and route_stops.csv from a directory into builder input"""
    routes_df = _read_csv(data_dir, ROUTES_FILE)
    stops_df = _read_csv(data_dir, STOPS_FILE)
    route_stops_df = _read_csv(data_dir, ROUTE_STOPS_FILE)

    stops: Dict[str, dict] = {}
    for record in stops_df.to_dict(orient='records'):
        if _clean(record.get('id')) is None:
            logger.warning(f"Invalid stop row: {record}")
            continue
        stops[record['id']] = {key: _clean(value) for key, value in record.items()}

    routes = [
        {key: _clean(value) for key, value in record.items()}
        for record in routes_df.to_dict(orient='records')
        if _clean(record.get('id')) is not None
    ]

    rows = []
    for record in route_stops_df.to_dict(orient='records'):
        sequence = _clean(record.get('sequence_order'))
        stop = stops.get(_clean(record.get('stop_id')))
        rows.append({
            'route_id': _clean(record.get('route_id')),
            'sequence_order': int(sequence) if sequence is not None else None,
            'direction': _clean(record.get('direction')),
            'path_coordinates': _decode_path(record.get('path_coordinates')),
            'stops': dict(stop) if stop else None,
        })

    return load_map_data({'routes': routes, 'route_stops': rows})
