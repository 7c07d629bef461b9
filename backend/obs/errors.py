"""Exception hierarchy for the obs-websocket client."""


class ObsError(Exception):
    """Base class for every error raised by the OBS client."""


class ObsConnectionError(ObsError):
    """Low-level open/close/transport failure."""


class HandshakeError(ObsConnectionError):
    """Malformed or unexpected message before the session was identified."""


class AuthenticationError(ObsConnectionError):
    """OBS rejected the Identify message."""


class ConnectionLostError(ObsConnectionError):
    """The session ended while a request was still pending."""


class NotConnectedError(ObsConnectionError):
    """A request was issued outside the identified state. Never sent."""

    def __init__(self, request_type: str):
        super().__init__(f"Not connected to OBS (cannot send {request_type})")
        self.request_type = request_type


class RequestError(ObsError):
    """A correlated request did not succeed."""

    def __init__(self, request_type: str, message: str):
        super().__init__(message)
        self.request_type = request_type


class RequestTimeoutError(RequestError):
    def __init__(self, request_type: str, timeout: float):
        super().__init__(request_type, f"Request {request_type} timed out after {timeout:g}s")
        self.timeout = timeout


class RequestFailedError(RequestError):
    """OBS answered with requestStatus.result == false."""

    def __init__(self, request_type: str, code: int | None, comment: str | None = None):
        super().__init__(
            request_type,
            f"{request_type} failed: {comment or 'Unknown error'} (code: {code})",
        )
        self.code = code
        self.comment = comment
