__title__ = 'laobusrouting'
__version__ = '1.0.0'
__author__ = 'LaoBus Team'
__license__ = 'MIT'
__copyright__ = 'Copyright 2025 LaoBus Team'

__all__ = ['NetworkGraph', 'PathResult', 'RouteError', 'ROUTE_ERROR_CODES', 'config', 'exceptions']

# Set default logging handler to avoid "No handler found" warnings.
import logging
from logging import NullHandler

logging.getLogger(__name__).addHandler(NullHandler())

from .core_route_service import NetworkGraph  # noqa: E402
from .models.route_segments import PathResult, RouteError, ROUTE_ERROR_CODES  # noqa: E402
