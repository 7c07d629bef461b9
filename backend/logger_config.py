"""
Chartcast Logger Configuration - Unified logging for the OBS capture backend

**LOG FILES:**
- logs/chartcast_YYYY-MM-DD_HHMMSS.log - DTG-stamped log files
- Max 100MB total storage by default, oldest files auto-deleted
- Console: WARNING+ only (silent during normal ops)
- File: INFO+ (everything tracked), opt-in via CHARTCAST_LOG_FILE_ENABLED

Usage:
    from logger_config import get_logger

    logger = get_logger('obs')
    logger.info('Request sent', extra={'request_type': 'GetVersion'})
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

# =============================================================================
# CONFIGURATION
# =============================================================================

# Maximum total log storage in bytes (100 MB default)
MAX_LOG_STORAGE_BYTES = 100 * 1024 * 1024

# Individual log file max size before rotation (10 MB)
MAX_LOG_FILE_SIZE = 10 * 1024 * 1024

LOG_FILE_PREFIX = "chartcast_"

# Default logs directory, next to backend/
DEFAULT_LOGS_DIR = Path(__file__).parent.parent / "logs"


def _max_backup_count(max_bytes: int) -> int:
    return max(1, (max_bytes // MAX_LOG_FILE_SIZE) - 1)


def _cleanup_old_logs(logs_dir: Path, max_bytes: int = MAX_LOG_STORAGE_BYTES):
    """Delete oldest log files when total size exceeds max_bytes."""
    try:
        log_files = sorted(
            logs_dir.glob(f"{LOG_FILE_PREFIX}*.log*"),
            key=lambda f: f.stat().st_mtime,
        )

        total_size = sum(f.stat().st_size for f in log_files)

        while total_size > max_bytes and len(log_files) > 1:
            oldest = log_files.pop(0)
            file_size = oldest.stat().st_size
            oldest.unlink()
            total_size -= file_size
    except OSError as e:
        logging.getLogger(__name__).warning(f"Log cleanup failed: {e}")


def _get_log_filename() -> str:
    """Generate DTG-stamped log filename: chartcast_YYYY-MM-DD_HHMMSS.log"""
    dtg = datetime.now().strftime("%Y-%m-%d_%H%M%S")
    return f"{LOG_FILE_PREFIX}{dtg}.log"


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if provided
        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(
    level: str = "INFO",
    show_timestamps: bool = True,
    json_format: bool = False,
    enable_file_logging: bool = False,
    logs_dir: Path | None = None,
    max_storage_mb: int = 100,
    console_level: int = logging.WARNING,
):
    """
    Configure global logging settings.

    Args:
        level: Minimum log level ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        show_timestamps: Include timestamps in output (default: True)
        json_format: Use structured JSON logging
        enable_file_logging: Save logs to DTG-stamped files with rotation
        logs_dir: Directory for log files (default: <repo>/logs)
        max_storage_mb: Maximum log storage in MB (default: 100)
        console_level: Level for the stdout handler (default: WARNING)
    """
    global MAX_LOG_STORAGE_BYTES

    MAX_LOG_STORAGE_BYTES = max_storage_mb * 1024 * 1024

    if json_format:
        formatter = JSONFormatter()
    else:
        fmt = "%(asctime)s.%(msecs)03d [%(levelname)s] %(message)s"
        if not show_timestamps:
            fmt = "[%(levelname)s] %(message)s"
        formatter = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    # Console handler (stdout) - warnings and errors unless asked otherwise
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(console_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if enable_file_logging:
        logs_dir = logs_dir or DEFAULT_LOGS_DIR
        logs_dir.mkdir(parents=True, exist_ok=True)
        _cleanup_old_logs(logs_dir, MAX_LOG_STORAGE_BYTES)

        file_handler = RotatingFileHandler(
            logs_dir / _get_log_filename(),
            maxBytes=MAX_LOG_FILE_SIZE,
            backupCount=_max_backup_count(MAX_LOG_STORAGE_BYTES),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Silence noisy libraries
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def configure_from_settings(settings=None):
    """Apply the LoggingSettings group from config.settings."""
    if settings is None:
        from config.settings import get_settings

        settings = get_settings()

    log = settings.logging
    configure_logging(
        level=log.level,
        json_format=log.format == "json",
        enable_file_logging=log.file_enabled,
        logs_dir=log.logs_dir,
        max_storage_mb=log.max_storage_mb,
        console_level=logging.DEBUG if settings.debug else logging.WARNING,
    )


# =============================================================================
# LOGGER CLASS
# =============================================================================


class ChartcastLogger:
    """Logger wrapper that tags messages with the component name."""

    def __init__(self, name: str):
        self.name = name
        self._logger = logging.getLogger(f"chartcast.{name}")

    def debug(self, msg: str, extra: dict | None = None):
        self._log(logging.DEBUG, f"[{self.name}] {msg}", extra)

    def info(self, msg: str, extra: dict | None = None):
        self._log(logging.INFO, f"[{self.name}] {msg}", extra)

    def warning(self, msg: str, extra: dict | None = None):
        self._log(logging.WARNING, f"[WARN] [{self.name}] {msg}", extra)

    def error(self, msg: str, extra: dict | None = None):
        self._log(logging.ERROR, f"[ERR] [{self.name}] {msg}", extra)

    def exception(self, msg: str, extra: dict | None = None):
        """Error with the active exception's traceback attached."""
        self._log(logging.ERROR, f"[ERR] [{self.name}] {msg}", extra, exc_info=True)

    def _log(self, level: int, msg: str, extra: dict | None = None, exc_info=False):
        """Internal logging with extra fields support."""
        if not self._logger.isEnabledFor(level):
            return
        if extra:
            record = self._logger.makeRecord(
                self._logger.name,
                level,
                "(unknown file)",
                0,
                msg,
                (),
                sys.exc_info() if exc_info else None,
            )
            record.extra_fields = extra
            self._logger.handle(record)
        else:
            self._logger.log(level, msg, exc_info=exc_info)


def get_logger(name: str) -> ChartcastLogger:
    """Get a logger instance for the given component name."""
    return ChartcastLogger(name)


def get_log_storage_used(logs_dir: Path | None = None) -> int:
    """Get current log storage used in bytes."""
    logs_dir = logs_dir or DEFAULT_LOGS_DIR
    if not logs_dir.exists():
        return 0
    return sum(f.stat().st_size for f in logs_dir.glob(f"{LOG_FILE_PREFIX}*.log*"))


# Auto-configure on import: console only unless file logging is requested

configure_logging(
    level=os.environ.get("CHARTCAST_LOG_LEVEL", "INFO"),
    show_timestamps=True,
    enable_file_logging=os.environ.get("CHARTCAST_LOG_FILE_ENABLED", "").lower()
    in ("1", "true", "yes"),
)
