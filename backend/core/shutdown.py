"""
Shutdown signalling for the recorder CLI.

SIGINT/SIGTERM set a threading event (safe from the signal handler) and,
through the running loop, an asyncio event that async code awaits to stop a
recording cleanly before the OBS session is closed.
"""

import asyncio
import signal
import sys
import threading

from logger_config import get_logger

logger = get_logger("shutdown")

# Threading event for cross-thread shutdown signaling
_shutdown_event = threading.Event()

# Asyncio event bound to the loop that first asked for it
_async_shutdown_event: asyncio.Event | None = None
_loop: asyncio.AbstractEventLoop | None = None


def is_shutting_down() -> bool:
    """Check if shutdown has been requested."""
    return _shutdown_event.is_set()


def request_shutdown():
    """Signal all components to begin shutdown. Safe from any thread."""
    logger.info("Shutdown requested")
    _shutdown_event.set()
    if _async_shutdown_event is not None and _loop is not None and not _loop.is_closed():
        _loop.call_soon_threadsafe(_async_shutdown_event.set)


def get_async_event() -> asyncio.Event:
    """Get or create the async shutdown event for the running loop."""
    global _async_shutdown_event, _loop
    loop = asyncio.get_running_loop()
    if _async_shutdown_event is None or _loop is not loop:
        _async_shutdown_event = asyncio.Event()
        _loop = loop
        if _shutdown_event.is_set():
            _async_shutdown_event.set()
    return _async_shutdown_event


async def wait_for_shutdown_async(timeout: float | None = None) -> bool:
    """Wait for the shutdown signal. Returns False if the timeout elapsed first."""
    try:
        await asyncio.wait_for(get_async_event().wait(), timeout=timeout)
    except asyncio.TimeoutError:
        return False
    return True


def reset():
    """Clear shutdown state (tests, repeated CLI runs in one process)."""
    global _async_shutdown_event, _loop
    _shutdown_event.clear()
    _async_shutdown_event = None
    _loop = None


def _signal_handler(signum, frame):
    """Handle shutdown signals (SIGINT, SIGTERM, SIGBREAK)."""
    sig_name = signal.Signals(signum).name
    logger.warning(f"Received {sig_name}, stopping", extra={"signal": sig_name})
    request_shutdown()


def setup_signal_handlers():
    """Set up platform-appropriate signal handlers."""
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)
    if sys.platform == "win32":
        # Windows: SIGBREAK is sent on Ctrl+Break and by taskkill
        signal.signal(signal.SIGBREAK, _signal_handler)
    logger.info("Signal handlers registered")
