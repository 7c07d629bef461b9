"""
Core Module Tests - Models, shutdown, logging.

Tests for backend/core/ modules and logger_config.
"""

import asyncio
import json
import logging
import sys
import threading
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))


class TestSessionModel:
    """Test Session model."""

    def test_new_session_disconnected(self):
        from core.models import ConnectionState, Session

        session = Session()
        assert session.state is ConnectionState.DISCONNECTED
        assert session.rpc_version is None
        assert session.is_identified is False

    def test_identified(self):
        from core.models import ConnectionState, Session

        session = Session(state=ConnectionState.IDENTIFIED, rpc_version=1)
        assert session.is_identified is True


class TestCaptureModels:
    """Crop geometry, window descriptors and setup results."""

    def test_crop_rejects_negative(self):
        from core.models import CropGeometry

        with pytest.raises(ValueError, match="top"):
            CropGeometry(top=-1)

    def test_crop_to_transform(self):
        from core.models import CropGeometry

        assert CropGeometry(top=40, right=2).to_transform() == {
            "cropTop": 40,
            "cropBottom": 0,
            "cropLeft": 0,
            "cropRight": 2,
        }

    def test_window_label_prefers_name(self):
        from core.models import WindowDescriptor

        assert WindowDescriptor(name="Popup", value="0x1").label == "Popup"
        assert WindowDescriptor(name="", value="0x1").label == "0x1"

    def test_window_from_property_item(self):
        from core.models import WindowDescriptor

        window = WindowDescriptor.from_property_item(
            {"itemName": "[chrome.exe]: Popup", "itemValue": "Popup:Chrome:chrome.exe", "itemEnabled": False}
        )
        assert window == WindowDescriptor(name="[chrome.exe]: Popup", value="Popup:Chrome:chrome.exe", enabled=False)

    def test_setup_result_errors(self):
        """Errors keep their kind and context; messages are flattened for callers."""
        from core.models import CaptureSetupResult, SetupErrorKind

        result = CaptureSetupResult(scene_name="S", source_name="C")
        result.add_error(SetupErrorKind.CANVAS, "Could not set canvas size", size=[1280, 720])

        assert result.errors[0].kind is SetupErrorKind.CANVAS
        assert result.errors[0].context == {"size": [1280, 720]}
        assert result.error_messages == ["Could not set canvas size"]
        assert result.to_dict() == {
            "success": False,
            "sceneName": "S",
            "sourceName": "C",
            "sceneItemId": None,
            "errors": ["Could not set canvas size"],
        }


class TestShutdownModule:
    """Test shutdown coordination."""

    def test_shutdown_event_starts_clear(self):
        """Shutdown event should start not set."""
        from core import shutdown

        shutdown.reset()
        assert not shutdown.is_shutting_down()

    def test_request_shutdown_sets_event(self):
        """request_shutdown() should set the event."""
        from core import shutdown

        shutdown.reset()
        shutdown.request_shutdown()
        assert shutdown.is_shutting_down()
        shutdown.reset()

    def test_signal_handler_requests_shutdown(self):
        import signal

        from core import shutdown

        shutdown.reset()
        shutdown._signal_handler(signal.SIGINT, None)
        assert shutdown.is_shutting_down()
        shutdown.reset()


class TestShutdownAsync:
    """Test async shutdown features."""

    @pytest.mark.asyncio
    async def test_get_async_event(self):
        """Can get async shutdown event."""
        from core import shutdown

        shutdown.reset()
        event = shutdown.get_async_event()
        assert isinstance(event, asyncio.Event)
        assert not event.is_set()
        assert shutdown.get_async_event() is event

    @pytest.mark.asyncio
    async def test_async_event_mirrors_thread_event(self):
        """A shutdown requested before the event exists is still seen."""
        from core import shutdown

        shutdown.reset()
        shutdown.request_shutdown()
        try:
            assert shutdown.get_async_event().is_set()
        finally:
            shutdown.reset()

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        from core import shutdown

        shutdown.reset()
        assert await shutdown.wait_for_shutdown_async(timeout=0.01) is False

    @pytest.mark.asyncio
    async def test_request_from_other_thread_wakes_waiter(self):
        from core import shutdown

        shutdown.reset()
        shutdown.get_async_event()
        threading.Timer(0.01, shutdown.request_shutdown).start()
        try:
            assert await shutdown.wait_for_shutdown_async(timeout=2.0) is True
        finally:
            shutdown.reset()


class TestLoggerConfig:
    """Test logging configuration."""

    def test_get_logger_returns_logger(self):
        """get_logger should return a logger instance."""
        from logger_config import get_logger

        logger = get_logger("test_module")
        assert logger is not None
        assert hasattr(logger, "info")
        assert hasattr(logger, "error")
        assert hasattr(logger, "warning")

    def test_loggers_have_same_name(self):
        """Loggers with same name use same underlying logger."""
        from logger_config import get_logger

        logger1 = get_logger("same_name_test")
        logger2 = get_logger("same_name_test")
        assert logger1._logger is logger2._logger

    def test_messages_tagged_with_component(self, caplog):
        from logger_config import get_logger

        with caplog.at_level(logging.INFO, logger="chartcast"):
            get_logger("obs").info("Connected", extra={"rpc_version": 1})
            get_logger("obs").warning("Slow")

        messages = [r.getMessage() for r in caplog.records]
        assert "[obs] Connected" in messages
        assert "[WARN] [obs] Slow" in messages
        assert caplog.records[0].extra_fields == {"rpc_version": 1}

    def test_json_formatter_includes_extra(self):
        from logger_config import JSONFormatter

        record = logging.LogRecord("chartcast.obs", logging.INFO, __file__, 1, "hello", (), None)
        record.extra_fields = {"request_type": "GetVersion"}

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["request_type"] == "GetVersion"

    def test_file_logging_and_storage(self, tmp_path):
        import logger_config

        try:
            logger_config.configure_logging(level="INFO", enable_file_logging=True, logs_dir=tmp_path)
            logger_config.get_logger("file_test").info("written to disk")
            for handler in logging.getLogger().handlers:
                handler.flush()

            assert list(tmp_path.glob("chartcast_*.log"))
            assert logger_config.get_log_storage_used(tmp_path) > 0
        finally:
            for handler in logging.getLogger().handlers:
                handler.close()
            logger_config.configure_logging(level="INFO")

    def test_storage_used_missing_dir(self, tmp_path):
        from logger_config import get_log_storage_used

        assert get_log_storage_used(tmp_path / "missing") == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
