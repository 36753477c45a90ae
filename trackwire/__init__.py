"""Request, log and outbound-call tracking for ASGI services."""

from trackwire.config import TrackSettings, load_config, load_settings
from trackwire.correlation import RequestContext, current_request, request_scope
from trackwire.errors import (
    CollectorError,
    ConfigurationError,
    PolicyFetchError,
    TrackwireError,
    TransmissionError,
)
from trackwire.middleware import TrackingMiddleware
from trackwire.tracker import Tracker

__all__ = [
    "CollectorError",
    "ConfigurationError",
    "PolicyFetchError",
    "RequestContext",
    "TrackSettings",
    "Tracker",
    "TrackingMiddleware",
    "TrackwireError",
    "TransmissionError",
    "current_request",
    "load_config",
    "load_settings",
    "request_scope",
]
