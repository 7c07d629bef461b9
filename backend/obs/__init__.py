"""obs-websocket 5.x client: connection, requests, events and capture setup."""

from .auth import create_auth_response
from .capture import CaptureOrchestrator, compute_crop, even_canvas_size, find_window_by_title
from .connector import ObsConnector
from .correlator import RequestCorrelator
from .errors import (
    AuthenticationError,
    ConnectionLostError,
    HandshakeError,
    NotConnectedError,
    ObsConnectionError,
    ObsError,
    RequestError,
    RequestFailedError,
    RequestTimeoutError,
)
from .events import EventDispatcher
from .protocol import EventSubscription, EventType, OpCode, RequestType
from .recording import RecordingController

__all__ = [
    "AuthenticationError",
    "CaptureOrchestrator",
    "ConnectionLostError",
    "EventDispatcher",
    "EventSubscription",
    "EventType",
    "HandshakeError",
    "NotConnectedError",
    "ObsConnectionError",
    "ObsConnector",
    "ObsError",
    "OpCode",
    "RecordingController",
    "RequestCorrelator",
    "RequestError",
    "RequestFailedError",
    "RequestTimeoutError",
    "RequestType",
    "compute_crop",
    "create_auth_response",
    "even_canvas_size",
    "find_window_by_title",
]
