"""
Custom exceptions for the LaoBus routing engine

Unroutable queries are not exceptions: they come back as ``RouteError``
values. These classes cover faults that mean the caller broke the contract
or the map data could not be read at all.
"""

class LaoBusError(Exception):
    """Base exception for LaoBus routing engine"""
    pass


class InvalidCoordinatesError(LaoBusError, ValueError):
    """Raised when query coordinates are not finite numbers"""
    pass


class MapDataError(LaoBusError):
    """Raised when map data files are missing or unreadable"""
    pass
