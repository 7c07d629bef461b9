"""Configuration module for the chartcast backend."""

from .settings import CaptureSettings, ObsSettings, Settings, get_settings

__all__ = ["get_settings", "Settings", "ObsSettings", "CaptureSettings"]
