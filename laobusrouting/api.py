"""
LaoBus Routing Engine - Flask Web API Blueprint
"""

import math
import time
from typing import Any, Dict, Optional, Tuple

import polyline
from flask import Blueprint, Flask, jsonify, request
from flask_cors import CORS

from . import __version__
from .config import config
from .core_route_service import NetworkGraph
from .exceptions import LaoBusError
from .graph.graph_builder import edge_counts_by_type
from .loaders import load_map_data_csv
from .logger import get_logger
from .models.route_segments import PathResult, RouteError
from .utils.fare_utils import calculate_fare_breakdown, format_fare

routing_bp = Blueprint('routing_bp', __name__)

logger = get_logger('laobus.api', config.log_level, config.log_file)

# Current graph generation; replaced wholesale on reload, never rebuilt in place
route_service: Optional[NetworkGraph] = None


def init_route_service(data_dir: Optional[str] = None) -> NetworkGraph:
    """Build a fresh NetworkGraph from the CSV data directory and make it current"""
    global route_service
    data_dir = data_dir or config.data_dir
    routes, route_stops = load_map_data_csv(data_dir)
    service = NetworkGraph.from_config(config, logger=logger.logger)
    service.build_graph(routes, route_stops)
    route_service = service
    logger.log_graph_build(data_dir, service.number_of_stops(), edge_counts_by_type(service.graph))
    return service


def _parse_point(raw: Any) -> Optional[Tuple[float, float]]:
    """(lat, lng) from {"lat", "lng"} ("lon" accepted), or None when missing or not finite"""
    if not isinstance(raw, dict):
        return None
    lat = raw.get('lat')
    lng = raw.get('lng', raw.get('lon'))
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    return lat, lng


def format_path_response(result: PathResult, route_names: Dict[str, str]) -> Dict[str, Any]:
    """PathResult as JSON with encoded polylines and the fare for each boarding"""
    response = result.to_dict()
    for seg_dict, seg in zip(response['segments'], result.segments):
        seg_dict['polyline'] = polyline.encode(list(seg.geometry), precision=6)
    fare_breakdown = calculate_fare_breakdown(result.segments, route_names)
    total_fare = sum(fare_breakdown.values())
    response['fare_breakdown'] = fare_breakdown
    response['total_fare'] = total_fare
    response['total_fare_text'] = format_fare(total_fare)
    return response


@routing_bp.route('/routing', methods=['GET'])
def index():
    """Root endpoint"""
    return jsonify({
        'name': 'LaoBus Routing Engine',
        'version': __version__,
        'description': 'Walk + bus trip planner',
        'endpoints': {
            'health': '/routing/health',
            'route': '/routing/route',
            'nearest_stop': '/routing/nearest-stop',
            'reload': '/routing/reload'
        }
    })


@routing_bp.route('/routing/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    if route_service is None:
        return jsonify({'status': 'error', 'message': 'Route service not initialized'}), 500

    return jsonify({
        'status': 'healthy',
        'stops': route_service.number_of_stops(),
        'edges': route_service.number_of_edges(),
        'edge_types': edge_counts_by_type(route_service.graph),
        'timestamp': time.time()
    })


@routing_bp.route('/routing/route', methods=['POST'])
def route():
    """Plan a trip between two coordinates"""
    if route_service is None:
        return jsonify({'error': 'Route service not initialized'}), 500

    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400
    start = _parse_point(data.get('start'))
    end = _parse_point(data.get('end'))
    if start is None or end is None:
        return jsonify({'error': 'Start and end coordinates required'}), 400

    service = route_service
    started = time.perf_counter()
    result = service.find_shortest_path(start[0], start[1], end[0], end[1])
    duration_ms = (time.perf_counter() - started) * 1000

    if isinstance(result, RouteError):
        logger.log_route_request(start, end, result.code, duration_ms, success=False)
        return jsonify(result.to_dict()), 200

    logger.log_route_request(start, end, 'PATH_FOUND', duration_ms, success=True)
    return jsonify(format_path_response(result, service.route_names)), 200


@routing_bp.route('/routing/nearest-stop', methods=['GET'])
def nearest_stop():
    """Nearest stop to a coordinate, for "what's near me" lookups"""
    if route_service is None:
        return jsonify({'error': 'Route service not initialized'}), 500

    lat = request.args.get('lat', type=float)
    lng = request.args.get('lng', type=float)
    max_km = request.args.get('max_km', type=float)
    if lat is None or lng is None or not (math.isfinite(lat) and math.isfinite(lng)):
        return jsonify({'error': 'lat and lng query parameters required'}), 400

    stop = route_service.find_nearest_stop(lat, lng, max_km)
    if stop is None:
        return jsonify({'error': 'No stop within range'}), 404
    return jsonify(stop.to_dict())


@routing_bp.route('/routing/reload', methods=['POST'])
def reload():
    """Rebuild the graph from the data directory and swap it in"""
    try:
        service = init_route_service()
    except LaoBusError as e:
        logger.error(f"Reload failed: {e}")
        return jsonify({'status': 'error', 'message': str(e)}), 500
    return jsonify({
        'status': 'reloaded',
        'stops': service.number_of_stops(),
        'edges': service.number_of_edges()
    })


def create_app(service: Optional[NetworkGraph] = None) -> Flask:
    """Flask app with the routing blueprint; uses ``service`` when given instead of loading data"""
    global route_service
    if service is not None:
        route_service = service
    app = Flask(__name__)
    CORS(app)
    app.register_blueprint(routing_bp)
    return app
