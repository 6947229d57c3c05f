"""Tests for the path solver."""

import math

import pytest

from conftest import BASE, build, make_route, network, offset, stop_entry
from laobusrouting.core_route_service import NetworkGraph
from laobusrouting.exceptions import InvalidCoordinatesError, LaoBusError
from laobusrouting.models.route_segments import (
    ROUTE_ERROR_CODES,
    PathResult,
    PathSegment,
    RouteError,
)
from laobusrouting.routing.algorithms import (
    count_transfers,
    find_nearest_stop,
    stitch_geometry,
    transfer_aware_dijkstra,
    transfer_penalty_for,
)

PARIS = (48.8566, 2.3522)


def _code(result):
    assert isinstance(result, RouteError), result
    return result.code


# ---------------------------------------------------------------------------
#  Validation gate
# ---------------------------------------------------------------------------

def test_unbuilt_graph_is_system_error(points) -> None:
    assert _code(NetworkGraph().find_shortest_path(*points['A1'], *points['A2'])) == 'SYSTEM_ERROR'


def test_same_location(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    near = offset(points['A1'], north_km=0.005)
    assert _code(graph.find_shortest_path(*points['A1'], *near)) == 'SAME_LOCATION'


def test_too_close(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    end = offset(points['A1'], north_km=0.3)
    assert _code(graph.find_shortest_path(*points['A1'], *end)) == 'TOO_CLOSE'


def test_out_of_service_area_regardless_of_graph(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    assert _code(graph.find_shortest_path(*PARIS, *points['A2'])) == 'OUT_OF_SERVICE_AREA'
    assert _code(graph.find_shortest_path(*points['A1'], *PARIS)) == 'OUT_OF_SERVICE_AREA'


def test_distance_checks_precede_service_area(two_stop_network) -> None:
    graph = build(*two_stop_network)
    assert _code(graph.find_shortest_path(*PARIS, *PARIS)) == 'SAME_LOCATION'
    near_paris = offset(PARIS, east_km=0.2)
    assert _code(graph.find_shortest_path(*PARIS, *near_paris)) == 'TOO_CLOSE'


def test_start_too_far(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    remote = offset(points['A1'], east_km=-10.0)
    assert _code(graph.find_shortest_path(*remote, *points['A2'])) == 'START_TOO_FAR'


def test_end_too_far(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    remote = offset(points['A1'], east_km=-10.0)
    assert _code(graph.find_shortest_path(*points['A1'], *remote)) == 'END_TOO_FAR'


def test_start_checked_before_end(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    west = offset(points['A1'], east_km=-10.0)
    east = offset(points['A1'], east_km=10.0)
    assert _code(graph.find_shortest_path(*west, *east)) == 'START_TOO_FAR'


@pytest.mark.parametrize("bad", [float('nan'), float('inf'), None, "17.9"])
def test_non_finite_input_raises(two_stop_network, points, bad) -> None:
    graph = build(*two_stop_network)
    with pytest.raises(InvalidCoordinatesError):
        graph.find_shortest_path(bad, points['A1'][1], *points['A2'])
    with pytest.raises(ValueError):
        graph.find_shortest_path(*points['A1'], points['A2'][0], bad)


def test_invalid_coordinates_error_is_a_laobus_error() -> None:
    assert issubclass(InvalidCoordinatesError, LaoBusError)


# ---------------------------------------------------------------------------
#  Scenarios
# ---------------------------------------------------------------------------

def test_trivial_two_stop_route(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    result = graph.find_shortest_path(*points['A1'], *points['A2'])

    assert isinstance(result, PathResult)
    assert len(result.segments) == 3
    walk_in, ride, walk_out = result.segments

    assert (walk_in.from_stop_id, walk_in.to_stop_id, walk_in.route_id) == ('START', 'A1', 'WALK')
    assert (ride.from_stop_id, ride.to_stop_id, ride.route_id) == ('A1', 'A2', 'r1')
    assert (walk_out.from_stop_id, walk_out.to_stop_id, walk_out.route_id) == ('A2', 'END', 'WALK')

    assert walk_in.time_minutes == pytest.approx(0.0, abs=1e-6)
    assert walk_out.time_minutes == pytest.approx(0.0, abs=1e-6)
    assert ride.description == 'CBS-1'
    assert walk_in.description == 'Walk to Stop'
    assert walk_out.description == 'Walk to Destination'
    assert result.transfers == 0
    assert result.total_time_minutes == pytest.approx(4.0, rel=1e-3)
    assert result.total_distance_km == pytest.approx(2.0, rel=1e-3)


def test_boundary_walks_add_time_and_distance(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    start = offset(points['A1'], east_km=0.3)
    end = offset(points['A2'], east_km=-0.3)
    result = graph.find_shortest_path(*start, *end)

    walk_min = 0.3 / 4.5 * 60
    assert result.segments[0].distance_km == pytest.approx(0.3, rel=1e-3)
    assert result.segments[0].geometry == (start, points['A1'])
    assert result.segments[-1].geometry == (points['A2'], end)
    assert result.total_time_minutes == pytest.approx(4.0 + 2 * walk_min, rel=1e-3)
    assert result.total_distance_km == pytest.approx(2.6, rel=1e-3)


def test_forced_transfer_walks_between_routes(transfer_network, points) -> None:
    """r1 -> WALK -> r2 is two route changes: the walking leg counts as a route of its own."""
    graph = build(*transfer_network)
    result = graph.find_shortest_path(*points['A1'], *points['B2'])

    assert isinstance(result, PathResult)
    core = result.segments[1:-1]
    assert [(s.from_stop_id, s.to_stop_id, s.route_id) for s in core] == [
        ('A1', 'A2', 'r1'),
        ('A2', 'B1', 'WALK'),
        ('B1', 'B2', 'r2'),
    ]
    assert core[1].description == 'Walk'
    # r1 -> WALK and WALK -> r2 are both route changes
    assert result.transfers == 2

    walk_min = 0.4 / 4.5 * 60 + 1
    expected = 4.0 + walk_min + 5 + 4.0 + 5
    assert result.total_time_minutes == pytest.approx(expected, rel=1e-3)


def test_unreachable_network(disconnected_network, points) -> None:
    graph = build(*disconnected_network)
    assert _code(graph.find_shortest_path(*points['A1'], *points['C2'])) == 'NO_PATH_FOUND'


def test_bus_edges_only_run_forward(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    assert _code(graph.find_shortest_path(*points['A2'], *points['A1'])) == 'NO_PATH_FOUND'


def test_both_ends_snapping_to_one_stop_is_no_path(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    start = offset(points['A1'], north_km=-0.5)
    end = offset(points['A1'], north_km=0.5)
    assert _code(graph.find_shortest_path(*start, *end)) == 'NO_PATH_FOUND'


def test_transfer_limit(chain_network, chain_points) -> None:
    graph = build(*chain_network)

    four = graph.find_shortest_path(*chain_points[0], *chain_points[5])
    assert isinstance(four, PathResult)
    assert four.transfers == 4

    five = graph.find_shortest_path(*chain_points[0], *chain_points[6])
    assert _code(five) == 'TRANSFER_LIMIT_EXCEEDED'


def test_walking_too_long() -> None:
    a, b = BASE, offset(BASE, north_km=0.4)
    graph = build(*network(make_route('r1', [('A', a), ('B', b)])))

    start = offset(a, north_km=-1.0)
    end = offset(b, north_km=1.0)
    assert _code(graph.find_shortest_path(*start, *end)) == 'WALKING_TOO_LONG'


def test_walking_share_allowed_under_absolute_limit() -> None:
    a, b = BASE, offset(BASE, north_km=0.4)
    graph = build(*network(make_route('r1', [('A', a), ('B', b)])))

    start = offset(a, north_km=-0.7)
    end = offset(b, north_km=0.7)
    result = graph.find_shortest_path(*start, *end)
    assert isinstance(result, PathResult)
    # The bus beats the parallel walking link
    assert [s.route_id for s in result.segments] == ['WALK', 'r1', 'WALK']


def test_transfer_checked_before_walking(chain_network, chain_points) -> None:
    # Strict walking rules so that every trip here walks too much
    graph = build(*chain_network, max_walking_distance_km=0.5, max_walking_ratio=0.1)
    start = offset(chain_points[0], east_km=0.5)

    five_changes = graph.find_shortest_path(*start, *offset(chain_points[6], east_km=0.5))
    assert _code(five_changes) == 'TRANSFER_LIMIT_EXCEEDED'

    four_changes = graph.find_shortest_path(*start, *offset(chain_points[5], east_km=0.5))
    assert _code(four_changes) == 'WALKING_TOO_LONG'


# ---------------------------------------------------------------------------
#  Search behaviour
# ---------------------------------------------------------------------------

def test_transfer_penalty_keeps_rider_on_same_route() -> None:
    a, b, c = BASE, offset(BASE, north_km=1.0), offset(BASE, north_km=2.0)
    # r2 is listed first so its B->C edge is seen first at B
    graph = build(*network(
        make_route('r2', [('B', b), ('C', c)]),
        make_route('r1', [('A', a), ('B', b), ('C', c)]),
    ))
    result = graph.find_shortest_path(*a, *c)

    assert [s.route_id for s in result.segments[1:-1]] == ['r1', 'r1']
    assert result.transfers == 0


def test_penalty_not_applied_on_first_edge() -> None:
    assert transfer_penalty_for(None, {'route_id': 'r1'}, 5.0) == 0.0
    assert transfer_penalty_for({'route_id': 'r1'}, {'route_id': 'r1'}, 5.0) == 0.0
    assert transfer_penalty_for({'route_id': 'WALK'}, {'route_id': 'r1'}, 5.0) == 5.0


def test_results_are_deterministic(transfer_network, points) -> None:
    graph = build(*transfer_network)
    first = graph.find_shortest_path(*points['A1'], *points['B2'])
    second = graph.find_shortest_path(*points['A1'], *points['B2'])
    assert first == second
    assert first.to_dict() == second.to_dict()


def test_relaxation_inequality_holds_on_settled_tree(transfer_network) -> None:
    graph = build(*transfer_network)
    penalty = graph.transfer_penalty_min
    # Unknown destination: search runs until the frontier is empty
    scores, previous = transfer_aware_dijkstra(graph.graph, 'A1', '__nowhere__', penalty)

    def incoming(node):
        return previous[node][1] if node in previous else None

    for source in scores:
        for target, keyed in graph.graph.adj[source].items():
            for edge in keyed.values():
                bound = scores[source] + edge['time'] + transfer_penalty_for(incoming(source), edge, penalty)
                assert scores[target] <= bound + 1e-9

    for target, (source, edge) in previous.items():
        expected = scores[source] + edge['time'] + transfer_penalty_for(incoming(source), edge, penalty)
        assert scores[target] == pytest.approx(expected)


def test_search_stops_at_destination(chain_network) -> None:
    graph = build(*chain_network)
    scores, previous = transfer_aware_dijkstra(graph.graph, 'S0', 'S2')

    assert 'S2' in previous
    # S3 is only labelled once S2 has been expanded
    assert 'S3' not in scores


def test_total_time_matches_search_score(transfer_network, points) -> None:
    graph = build(*transfer_network)
    scores, _ = transfer_aware_dijkstra(graph.graph, 'A1', 'B2', graph.transfer_penalty_min)
    result = graph.find_shortest_path(*points['A1'], *points['B2'])
    walks = result.segments[0].time_minutes + result.segments[-1].time_minutes
    assert result.total_time_minutes == pytest.approx(scores['B2'] + walks)


# ---------------------------------------------------------------------------
#  Nearest stop
# ---------------------------------------------------------------------------

def test_find_nearest_stop(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    near_a2 = offset(points['A2'], east_km=0.5)

    assert graph.find_nearest_stop(*near_a2).id == 'A2'
    assert graph.find_nearest_stop(*near_a2, max_dist_km=0.4) is None
    assert graph.find_nearest_stop(*offset(points['A1'], east_km=-3.0)) is None


def test_find_nearest_stop_first_wins_ties() -> None:
    graph = build(*network(
        make_route('r1', [('FIRST', BASE), ('X', offset(BASE, north_km=3.0))]),
        make_route('r2', [('SECOND', BASE), ('Y', offset(BASE, east_km=3.0))]),
    ))
    assert graph.find_nearest_stop(*offset(BASE, north_km=-0.2)).id == 'FIRST'


def test_find_nearest_stop_rejects_nan(two_stop_network) -> None:
    graph = build(*two_stop_network)
    with pytest.raises(InvalidCoordinatesError):
        graph.find_nearest_stop(math.nan, 102.6)


def test_find_nearest_stop_on_empty_list() -> None:
    assert find_nearest_stop([], *BASE) is None


# ---------------------------------------------------------------------------
#  Geometry and transfers
# ---------------------------------------------------------------------------

def test_stitch_geometry_splices_both_ends_independently() -> None:
    a, b = BASE, offset(BASE, north_km=1.0)
    off_start = offset(a, east_km=0.05)
    mid = offset(a, north_km=0.5)

    assert stitch_geometry([off_start, mid, b], a, b) == (a, off_start, mid, b)
    off_end = offset(b, east_km=0.05)
    assert stitch_geometry([a, mid, off_end], a, b) == (a, mid, off_end, b)
    assert stitch_geometry([off_start, off_end], a, b) == (a, off_start, off_end, b)


def test_stitch_geometry_tolerates_small_gaps() -> None:
    a, b = BASE, offset(BASE, north_km=1.0)
    close_a = offset(a, east_km=0.003)
    close_b = offset(b, east_km=0.003)
    assert stitch_geometry([close_a, close_b], a, b) == (close_a, close_b)


def test_drawn_path_used_for_segment_geometry() -> None:
    a, b = BASE, offset(BASE, north_km=2.0)
    bend = offset(BASE, north_km=1.0, east_km=0.2)
    off_start = offset(a, east_km=0.02)
    route = {'id': 'r1', 'route_number': 'CBS-1'}
    entries = [stop_entry('A', a, 1, path=[off_start, bend, b]), stop_entry('B', b, 2)]
    graph = build([route], {'r1': entries})

    result = graph.find_shortest_path(*a, *b)
    assert result.segments[1].geometry == (a, off_start, bend, b)


def test_straight_geometry_without_drawn_path(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    result = graph.find_shortest_path(*points['A1'], *points['A2'])
    assert result.segments[1].geometry == (points['A1'], points['A2'])


def _segment(route_id):
    return PathSegment('x', 'y', route_id, route_id, 1.0, 1.0)


def test_count_transfers_compares_route_ids() -> None:
    assert count_transfers([]) == 0
    assert count_transfers([_segment('r1')]) == 0
    assert count_transfers([_segment('r1'), _segment('r1')]) == 0
    assert count_transfers([_segment('WALK'), _segment('WALK')]) == 0
    assert count_transfers([_segment('r1'), _segment('WALK'), _segment('r2')]) == 2
    assert count_transfers([_segment('r1'), _segment('r2'), _segment('r1')]) == 2


# ---------------------------------------------------------------------------
#  Result types
# ---------------------------------------------------------------------------

def test_route_error_codes_are_closed() -> None:
    assert len(ROUTE_ERROR_CODES) == 9
    with pytest.raises(ValueError):
        RouteError('SOMETHING_ELSE')


def test_result_dicts_are_distinguishable(two_stop_network, points) -> None:
    graph = build(*two_stop_network)
    ok = graph.find_shortest_path(*points['A1'], *points['A2']).to_dict()
    err = graph.find_shortest_path(*PARIS, *points['A2']).to_dict()

    assert 'segments' in ok and 'code' not in ok
    assert err == {'code': 'OUT_OF_SERVICE_AREA'}
    assert ok['segments'][1]['geometry'][0] == {'lat': points['A1'][0], 'lng': points['A1'][1]}


def test_custom_rules_from_constructor(transfer_network, points) -> None:
    graph = build(*transfer_network, max_transfers=1)
    assert _code(graph.find_shortest_path(*points['A1'], *points['B2'])) == 'TRANSFER_LIMIT_EXCEEDED'
