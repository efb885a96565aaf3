"""
Exceptions for flood event store operations.
"""


class FloodApiError(Exception):
    """Base exception for station/event store errors."""

    pass


class FloodConnectionError(FloodApiError):
    """Transport failure or non-2xx response from the store."""

    pass


class FloodQueryError(FloodApiError):
    """Resource not found or response body not usable."""

    pass
