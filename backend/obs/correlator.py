"""
Request/response correlation for obs-websocket.

Each outbound request gets an id that OBS echoes back in its
RequestResponse. The correlator keeps one PendingCommand per id and resolves
its future exactly once: on the matching response, on timeout, or when the
session goes away.
"""

import asyncio
import itertools
import time
from collections.abc import Callable
from typing import Any

from core.models import PendingCommand
from logger_config import get_logger

from .errors import ObsError, RequestFailedError, RequestTimeoutError

logger = get_logger("correlator")

DEFAULT_REQUEST_TIMEOUT_S = 10.0


class RequestCorrelator:
    """Tracks in-flight requests for a single session."""

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_S,
        clock: Callable[[], float] = time.time,
    ):
        self.timeout = timeout
        self._clock = clock
        self._counter = itertools.count(1)
        self._pending: dict[str, PendingCommand] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._pending

    def next_request_id(self) -> str:
        """``req_<epoch ms>_<n>``; the counter makes ids unique within one millisecond."""
        return f"req_{int(self._clock() * 1000)}_{next(self._counter)}"

    def register(self, request_type: str) -> PendingCommand:
        """Create the pending entry and arm its timeout. Needs a running loop."""
        loop = asyncio.get_running_loop()
        request_id = self.next_request_id()
        while request_id in self._pending:
            request_id = self.next_request_id()

        issued_at = self._clock()
        pending = PendingCommand(
            request_id=request_id,
            request_type=request_type,
            issued_at=issued_at,
            deadline=issued_at + self.timeout,
            future=loop.create_future(),
        )
        pending.timer = loop.call_later(self.timeout, self._expire, request_id)
        pending.future.add_done_callback(lambda fut: self._on_done(request_id, fut))
        self._pending[request_id] = pending
        return pending

    def resolve(self, response: dict[str, Any]) -> bool:
        """Route one RequestResponse payload. Returns False for unknown or late ids."""
        request_id = response.get("requestId")
        if not isinstance(request_id, str):
            logger.warning(f"Ignoring response with invalid requestId {request_id!r:.80}")
            return False
        pending = self._pop(request_id)
        if pending is None:
            logger.debug(f"Dropping response for unknown request {request_id}")
            return False

        status = response.get("requestStatus")
        if not isinstance(status, dict):
            status = {}
        request_type = response.get("requestType") or pending.request_type
        if status.get("result"):
            self._settle(pending, result=response.get("responseData") or {})
        else:
            self._settle(
                pending,
                error=RequestFailedError(request_type, status.get("code"), status.get("comment")),
            )
        return True

    def reject_all(self, error_factory: Callable[[PendingCommand], ObsError]) -> int:
        """Reject every pending request. Returns how many were rejected."""
        pending_list = list(self._pending.values())
        self._pending.clear()
        for pending in pending_list:
            self._settle(pending, error=error_factory(pending))
        if pending_list:
            logger.info(f"Rejected {len(pending_list)} pending request(s)")
        return len(pending_list)

    def discard(self, request_id: str) -> None:
        """Forget a request whose envelope never made it onto the wire."""
        pending = self._pop(request_id)
        if pending is not None and not pending.future.done():
            pending.future.cancel()

    def _pop(self, request_id: str | None) -> PendingCommand | None:
        if request_id is None:
            return None
        pending = self._pending.pop(request_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending

    def _expire(self, request_id: str) -> None:
        pending = self._pop(request_id)
        if pending is None:
            return
        logger.warning(f"Request {pending.request_type} ({request_id}) timed out")
        self._settle(pending, error=RequestTimeoutError(pending.request_type, self.timeout))

    def _on_done(self, request_id: str, future: asyncio.Future) -> None:
        # A caller that stops awaiting cancels the future; drop its entry too.
        if future.cancelled():
            self._pop(request_id)

    @staticmethod
    def _settle(pending: PendingCommand, result: Any = None, error: Exception | None = None):
        if pending.future.done():
            return
        if error is not None:
            pending.future.set_exception(error)
        else:
            pending.future.set_result(result)
