"""
Recording lifecycle on top of the connector.

The visualization signals when its animation has finished; the controller
starts recording, waits for that signal, stops recording and hands back the
output file path.
"""

import asyncio
import inspect
from typing import Any

from core.models import RecordingState
from logger_config import get_logger

from .errors import ObsError

logger = get_logger("recording")


class RecordingController:
    """Drives StartRecord/StopRecord around a completion signal."""

    def __init__(self, connector):
        self.obs = connector
        self.state = RecordingState()
        self._previous_slot = connector.on_record_state_changed
        connector.on_record_state_changed = self._on_record_state_changed

    def detach(self):
        """Give the connector's record-state slot back to its previous owner."""
        self.obs.on_record_state_changed = self._previous_slot

    def _on_record_state_changed(self, event_data: dict[str, Any]):
        self.state = RecordingState(
            output_active=bool(event_data.get("outputActive")),
            output_state=event_data.get("outputState"),
            output_path=event_data.get("outputPath") or self.state.output_path,
        )
        logger.info(f"Record state: {self.state.output_state}", extra={"output_path": self.state.output_path})
        if self._previous_slot is not None:
            self._previous_slot(event_data)

    async def record_until(self, completion, timeout: float | None = None) -> str | None:
        """
        Record until ``completion`` fires, then stop and return the output path.

        ``completion`` is an asyncio.Event or any awaitable. On timeout the
        recording is still stopped before asyncio.TimeoutError propagates.
        """
        waiter = completion.wait() if isinstance(completion, asyncio.Event) else completion
        if not inspect.isawaitable(waiter):
            raise TypeError("completion must be an asyncio.Event or an awaitable")

        self.state = RecordingState()
        try:
            await self.obs.start_record()
        except BaseException:
            if inspect.iscoroutine(waiter):
                waiter.close()
            raise
        logger.info("Recording started")
        try:
            await asyncio.wait_for(waiter, timeout=timeout)
        finally:
            output_path = await self._stop()
        return output_path

    async def _stop(self) -> str | None:
        try:
            output_path = await self.obs.stop_record()
        except ObsError as e:
            logger.error(f"Could not stop recording: {e}")
            raise
        output_path = output_path or self.state.output_path
        logger.info(f"Recording saved to {output_path}")
        return output_path
