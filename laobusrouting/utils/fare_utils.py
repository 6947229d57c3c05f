from typing import Dict, Iterable, Mapping

from ..models.route_segments import WALK_ROUTE_ID

DEFAULT_FARE = 5000  # KIP

# Flat fare per boarding, keyed by route number
ROUTE_FARES: Dict[str, int] = {
    'CBS-1': 5000,
    'CBS-2': 5000,
    'CBS-3': 7000,    # longer route
    'CBS-4': 5000,
    'CBS-5': 5000,
    'CBS-6': 9000,    # border route
    'CBS-8': 5000,
    'CBS-9': 5000,
    'CBS-10': 5000,
    'CBS-11': 6000,
    'CBS-12': 5000,
    'CBS-14': 8000,   # Friendship Bridge
    'CBS-20': 5000,
    'CBS-23': 5000,
    'CBS-28': 5000,
    'CBS-29': 15000,  # Dong Dok University
    'CBS-30': 5000,
    'CBS-31': 5000,
    'CBS-32': 5000,
    'CBS-33': 5000,
    'CBS-49': 5000,
}


def calculate_fare(route_number: str) -> int:
    """
    Look up the flat fare for one boarding.
    Args:
        route_number: Route label such as "CBS-3"; "WALK" is free
    Returns:
        Fare amount in KIP
    """
    if route_number == WALK_ROUTE_ID:
        return 0
    return ROUTE_FARES.get(route_number, DEFAULT_FARE)


def format_fare(amount: int, currency: str = 'KIP') -> str:
    return f"{amount:,} {currency}"


def calculate_fare_breakdown(segments: Iterable, route_names: Mapping[str, str]) -> Dict[str, int]:
    """
    Charge each boarding once: consecutive segments on the same bus route
    share a single fare. Walking legs are free and break a ride.
    Args:
        segments: PathSegment objects in travel order
        route_names: route id -> route number
    Returns:
        Mapping of route number -> total fare paid on that route
    """
    breakdown: Dict[str, int] = {}
    prev_route = None
    for seg in segments:
        if seg.route_id != WALK_ROUTE_ID and seg.route_id != prev_route:
            route_number = route_names.get(seg.route_id, seg.route_id)
            breakdown[route_number] = breakdown.get(route_number, 0) + calculate_fare(route_number)
        prev_route = seg.route_id
    return breakdown
