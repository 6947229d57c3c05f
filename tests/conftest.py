"""Pytest configuration and fixtures."""

import math

import pytest

from laobusrouting.core_route_service import NetworkGraph

KM_PER_DEGREE = 6371 * math.pi / 180
# Vientiane, inside the service area
BASE = (17.9757, 102.6331)


def offset(point, north_km=0.0, east_km=0.0):
    """Shift a (lat, lng) point by kilometers north/east"""
    lat, lng = point
    new_lat = lat + north_km / KM_PER_DEGREE
    new_lng = lng + east_km / (KM_PER_DEGREE * math.cos(math.radians(lat)))
    return (new_lat, new_lng)


def stop_entry(stop_id, point, sequence, path=None, name=None):
    """Route-stop record with an embedded, already-resolved stop"""
    entry = {
        'sequence_order': sequence,
        'stops': {'id': stop_id, 'stop_name': name or f"Stop {stop_id}", 'lat': point[0], 'lng': point[1]},
    }
    if path is not None:
        entry['path_coordinates'] = [{'lat': lat, 'lng': lng} for lat, lng in path]
    return entry


def make_route(route_id, stops, route_number=None):
    """(route record, route-stop records) for stops given as [(stop_id, point), ...]"""
    route = {'id': route_id, 'route_number': route_number or route_id.upper()}
    entries = [stop_entry(stop_id, point, seq) for seq, (stop_id, point) in enumerate(stops, start=1)]
    return route, entries


def network(*routes_with_entries):
    """Builder input from make_route() results"""
    routes = [route for route, _ in routes_with_entries]
    route_stops = {route['id']: entries for route, entries in routes_with_entries}
    return routes, route_stops


def build(routes, route_stops, **kwargs):
    graph = NetworkGraph(**kwargs)
    graph.build_graph(routes, route_stops)
    return graph


@pytest.fixture
def points():
    """Named coordinates used by the scenario networks"""
    a1 = BASE
    a2 = offset(a1, north_km=2.0)
    b1 = offset(a2, east_km=0.4)
    b2 = offset(b1, north_km=2.0)
    c1 = offset(a1, east_km=5.0)
    c2 = offset(c1, north_km=2.0)
    return {'A1': a1, 'A2': a2, 'B1': b1, 'B2': b2, 'C1': c1, 'C2': c2}


@pytest.fixture
def two_stop_network(points):
    """One route, two stops 2 km apart"""
    return network(make_route('r1', [('A1', points['A1']), ('A2', points['A2'])], route_number='CBS-1'))


@pytest.fixture
def transfer_network(points):
    """Two routes sharing no stop; A2 and B1 are 400 m apart"""
    return network(
        make_route('r1', [('A1', points['A1']), ('A2', points['A2'])], route_number='CBS-1'),
        make_route('r2', [('B1', points['B1']), ('B2', points['B2'])], route_number='CBS-3'),
    )


@pytest.fixture
def disconnected_network(points):
    """Two routes 5 km apart with no walking link"""
    return network(
        make_route('r1', [('A1', points['A1']), ('A2', points['A2'])]),
        make_route('r3', [('C1', points['C1']), ('C2', points['C2'])]),
    )


@pytest.fixture
def chain_points():
    """Seven stops 1 km apart going north"""
    return [offset(BASE, north_km=float(i)) for i in range(7)]


@pytest.fixture
def chain_network(chain_points):
    """Six single-hop routes S0->S1, S1->S2, ... S5->S6"""
    return network(*[
        make_route(f"r{i}", [(f"S{i - 1}", chain_points[i - 1]), (f"S{i}", chain_points[i])])
        for i in range(1, 7)
    ])
