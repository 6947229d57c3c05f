"""
Configuration management for LaoBus routing engine
"""

import os
from typing import Optional

from .graph.graph_builder import (
    BUS_SPEED_KMH,
    WALK_BOARDING_PENALTY_MIN,
    WALK_SPEED_KMH,
    WALK_TRANSFER_DISTANCE_KM,
)
from .routing.algorithms import (
    MAX_TRANSFERS,
    MAX_WALKING_DISTANCE_KM,
    MAX_WALKING_RATIO,
    SNAP_RADIUS_KM,
    TRANSFER_PENALTY_MIN,
)


class Config:
    """Configuration class for LaoBus routing engine"""

    def __init__(self):
        # Data directory holding routes.csv / stops.csv / route_stops.csv
        self.data_dir: str = os.getenv('DATA_DIR', 'data')

        # Graph building parameters
        self.walk_speed_kmh: float = float(os.getenv('WALK_SPEED_KMH', str(WALK_SPEED_KMH)))
        self.bus_speed_kmh: float = float(os.getenv('BUS_SPEED_KMH', str(BUS_SPEED_KMH)))
        self.walk_transfer_distance: float = float(os.getenv('WALK_TRANSFER_DISTANCE', str(WALK_TRANSFER_DISTANCE_KM)))
        self.walk_boarding_penalty: float = float(os.getenv('WALK_BOARDING_PENALTY', str(WALK_BOARDING_PENALTY_MIN)))

        # Routing parameters
        self.transfer_penalty: float = float(os.getenv('TRANSFER_PENALTY', str(TRANSFER_PENALTY_MIN)))
        self.snap_radius_km: float = float(os.getenv('SNAP_RADIUS_KM', str(SNAP_RADIUS_KM)))
        self.max_transfers: int = int(os.getenv('MAX_TRANSFERS', str(MAX_TRANSFERS)))
        self.max_walking_distance: float = float(os.getenv('MAX_WALKING_DISTANCE', str(MAX_WALKING_DISTANCE_KM)))
        self.max_walking_ratio: float = float(os.getenv('MAX_WALKING_RATIO', str(MAX_WALKING_RATIO)))

        # API configuration
        self.host: str = os.getenv('HOST', '0.0.0.0')
        self.port: int = int(os.getenv('PORT', '5000'))
        self.debug: bool = os.getenv('DEBUG', 'False').lower() == 'true'

        # Logging
        self.log_level: str = os.getenv('LOG_LEVEL', 'INFO')
        self.log_file: Optional[str] = os.getenv('LOG_FILE')

    def validate(self):
        """Validate configuration"""
        if self.walk_speed_kmh <= 0 or self.bus_speed_kmh <= 0:
            raise ValueError("Walk and bus speeds must be positive")

        if self.walk_transfer_distance <= 0:
            raise ValueError("Walk transfer distance must be positive")

        if self.snap_radius_km <= 0:
            raise ValueError("Snap radius must be positive")

        if self.max_transfers < 0:
            raise ValueError("Max transfers cannot be negative")

        if not 0 < self.max_walking_ratio <= 1:
            raise ValueError("Max walking ratio must be in (0, 1]")

    def get_graph_builder_config(self) -> dict:
        """Get configuration for the graph builder"""
        return {
            'walk_speed_kmh': self.walk_speed_kmh,
            'bus_speed_kmh': self.bus_speed_kmh,
            'walk_transfer_distance_km': self.walk_transfer_distance,
            'walk_boarding_penalty_min': self.walk_boarding_penalty,
        }

    def get_router_config(self) -> dict:
        """Get configuration for the path solver"""
        return {
            'transfer_penalty_min': self.transfer_penalty,
            'snap_radius_km': self.snap_radius_km,
            'max_transfers': self.max_transfers,
            'max_walking_distance_km': self.max_walking_distance,
            'max_walking_ratio': self.max_walking_ratio,
        }

    def get_api_config(self) -> dict:
        """Get configuration for Flask API"""
        return {
            'host': self.host,
            'port': self.port,
            'debug': self.debug
        }


# Global configuration instance
config = Config()
