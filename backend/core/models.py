"""
Data classes for session, request and capture-workflow state.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PositiveInt

DEFAULT_SCENE_NAME = "Bar Chart Race Recording"
DEFAULT_SOURCE_NAME = "Bar Chart Capture"


class ConnectionState(str, Enum):
    """Lifecycle of a single obs-websocket session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_HELLO = "awaiting_hello"
    IDENTIFYING = "identifying"
    IDENTIFIED = "identified"
    CLOSING = "closing"


@dataclass
class Session:
    """The one logical connection to OBS, owned by the connector."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    rpc_version: int | None = None
    authentication_required: bool = False
    obs_websocket_version: str | None = None

    @property
    def is_identified(self) -> bool:
        return self.state is ConnectionState.IDENTIFIED


@dataclass
class PendingCommand:
    """One in-flight request awaiting its RequestResponse."""

    request_id: str
    request_type: str
    issued_at: float
    deadline: float
    future: asyncio.Future
    timer: asyncio.TimerHandle | None = None


@dataclass(frozen=True)
class WindowDescriptor:
    """Entry from a window-capture source's `window` property listing."""

    name: str
    value: str
    enabled: bool = True

    @classmethod
    def from_property_item(cls, item: dict[str, Any]) -> "WindowDescriptor":
        return cls(
            name=item.get("itemName") or "",
            value=item.get("itemValue") or "",
            enabled=item.get("itemEnabled", True),
        )

    @property
    def label(self) -> str:
        return self.name or self.value


@dataclass(frozen=True)
class CropGeometry:
    """Pixels discarded from each edge of a source's raw rectangle."""

    top: int = 0
    bottom: int = 0
    left: int = 0
    right: int = 0

    def __post_init__(self):
        for edge in ("top", "bottom", "left", "right"):
            if getattr(self, edge) < 0:
                raise ValueError(f"crop {edge} must be non-negative")

    def to_transform(self) -> dict[str, int]:
        return {
            "cropTop": self.top,
            "cropBottom": self.bottom,
            "cropLeft": self.left,
            "cropRight": self.right,
        }


class SetupErrorKind(str, Enum):
    SCENE = "scene"
    STALE_SOURCE = "stale_source"
    SOURCE = "source"
    SCENE_SWITCH = "scene_switch"
    WINDOW_NOT_FOUND = "window_not_found"
    WINDOW_BIND = "window_bind"
    SOURCE_DIMENSIONS = "source_dimensions"
    TRANSFORM = "transform"
    CANVAS = "canvas"


@dataclass(frozen=True)
class SetupError:
    """Non-fatal step failure recorded by the capture workflow."""

    kind: SetupErrorKind
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


class CaptureConfig(BaseModel):
    """Caller input for one capture setup run."""

    model_config = ConfigDict(frozen=True)

    scene_name: str = Field(default=DEFAULT_SCENE_NAME, min_length=1)
    source_name: str = Field(default=DEFAULT_SOURCE_NAME, min_length=1)
    window_title: str = Field(min_length=1)
    target_width: PositiveInt
    target_height: PositiveInt


@dataclass
class CaptureSetupResult:
    """Outcome of one capture setup run."""

    scene_name: str
    source_name: str
    scene_item_id: int | None = None
    errors: list[SetupError] = field(default_factory=list)
    success: bool = False

    @property
    def error_messages(self) -> list[str]:
        return [str(e) for e in self.errors]

    def add_error(self, kind: SetupErrorKind, message: str, **context: Any) -> None:
        self.errors.append(SetupError(kind=kind, message=message, context=context))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "sceneName": self.scene_name,
            "sourceName": self.source_name,
            "sceneItemId": self.scene_item_id,
            "errors": self.error_messages,
        }


@dataclass
class RecordingState:
    """Latest RecordStateChanged payload seen on the session."""

    output_active: bool = False
    output_state: str | None = None
    output_path: str | None = None
