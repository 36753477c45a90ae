from trackwire.interceptors.http_client import TrackingTransport, build_tracked_client
from trackwire.interceptors.log_capture import LogCaptureHandler, render_message, render_value

__all__ = [
    "LogCaptureHandler",
    "TrackingTransport",
    "build_tracked_client",
    "render_message",
    "render_value",
]
