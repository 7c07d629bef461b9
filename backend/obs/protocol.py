"""
obs-websocket 5.x wire protocol: opcodes, subscription flags and envelopes.

Every frame is a JSON text message of the form ``{"op": <int>, "d": {...}}``.
"""

import json
from enum import IntEnum, IntFlag
from typing import Any

from .errors import HandshakeError

RPC_VERSION = 1

# Close code OBS uses when Identify carries a wrong authentication string
CLOSE_AUTHENTICATION_FAILED = 4009

# OBS_ALIGN_TOP | OBS_ALIGN_LEFT
ALIGN_TOP_LEFT = 5
BOUNDS_NONE = "OBS_BOUNDS_NONE"


class OpCode(IntEnum):
    HELLO = 0
    IDENTIFY = 1
    IDENTIFIED = 2
    REIDENTIFY = 3
    EVENT = 5
    REQUEST = 6
    REQUEST_RESPONSE = 7
    REQUEST_BATCH = 8
    REQUEST_BATCH_RESPONSE = 9


class EventSubscription(IntFlag):
    """Bits of the Identify ``eventSubscriptions`` mask."""

    NONE = 0
    GENERAL = 1 << 0
    CONFIG = 1 << 1
    SCENES = 1 << 2
    INPUTS = 1 << 3
    TRANSITIONS = 1 << 4
    FILTERS = 1 << 5
    OUTPUTS = 1 << 6
    SCENE_ITEMS = 1 << 7
    MEDIA_INPUTS = 1 << 8
    VENDORS = 1 << 9
    UI = 1 << 10
    ALL = (
        GENERAL
        | CONFIG
        | SCENES
        | INPUTS
        | TRANSITIONS
        | FILTERS
        | OUTPUTS
        | SCENE_ITEMS
        | MEDIA_INPUTS
        | VENDORS
        | UI
    )


class RequestType:
    """Request names used by this client."""

    GET_VERSION = "GetVersion"

    GET_SCENE_LIST = "GetSceneList"
    CREATE_SCENE = "CreateScene"
    REMOVE_SCENE = "RemoveScene"
    SET_CURRENT_PROGRAM_SCENE = "SetCurrentProgramScene"

    GET_INPUT_KIND_LIST = "GetInputKindList"
    CREATE_INPUT = "CreateInput"
    REMOVE_INPUT = "RemoveInput"
    GET_INPUT_SETTINGS = "GetInputSettings"
    SET_INPUT_SETTINGS = "SetInputSettings"
    GET_INPUT_PROPERTIES_LIST_PROPERTY_ITEMS = "GetInputPropertiesListPropertyItems"

    GET_SCENE_ITEM_LIST = "GetSceneItemList"
    GET_SCENE_ITEM_ID = "GetSceneItemId"
    GET_SCENE_ITEM_TRANSFORM = "GetSceneItemTransform"
    SET_SCENE_ITEM_TRANSFORM = "SetSceneItemTransform"
    SET_SCENE_ITEM_ENABLED = "SetSceneItemEnabled"

    GET_VIDEO_SETTINGS = "GetVideoSettings"
    SET_VIDEO_SETTINGS = "SetVideoSettings"

    GET_RECORD_STATUS = "GetRecordStatus"
    START_RECORD = "StartRecord"
    STOP_RECORD = "StopRecord"
    TOGGLE_RECORD = "ToggleRecord"
    PAUSE_RECORD = "PauseRecord"
    RESUME_RECORD = "ResumeRecord"


class EventType:
    RECORD_STATE_CHANGED = "RecordStateChanged"
    CURRENT_PROGRAM_SCENE_CHANGED = "CurrentProgramSceneChanged"
    EXIT_STARTED = "ExitStarted"


def encode_message(op: OpCode, data: dict[str, Any]) -> str:
    return json.dumps({"op": int(op), "d": data})


def decode_message(raw: str | bytes) -> tuple[int, dict[str, Any]]:
    """Parse one frame into ``(op, d)``.

    Raises HandshakeError for frames that are not a JSON object with an
    integer ``op``; the caller decides whether that is fatal.
    """
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise HandshakeError(f"Undecodable frame: {e}") from e

    if not isinstance(message, dict) or not isinstance(message.get("op"), int):
        raise HandshakeError(f"Frame without opcode: {raw!r:.200}")

    data = message.get("d")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise HandshakeError(f"Frame payload is not an object (op {message['op']})")
    return message["op"], data


def parse_hello(data: dict[str, Any]) -> tuple[int, dict[str, str] | None]:
    """Return ``(rpcVersion, authentication)`` from a Hello payload."""
    rpc_version = data.get("rpcVersion")
    if not isinstance(rpc_version, int):
        raise HandshakeError("Hello is missing rpcVersion")

    auth = data.get("authentication")
    if auth is None:
        return rpc_version, None
    if not isinstance(auth, dict) or not auth.get("salt") or not auth.get("challenge"):
        raise HandshakeError("Hello authentication block lacks salt/challenge")
    return rpc_version, {"salt": auth["salt"], "challenge": auth["challenge"]}


def build_identify(
    rpc_version: int,
    event_subscriptions: int,
    authentication: str | None = None,
) -> str:
    data: dict[str, Any] = {
        "rpcVersion": rpc_version,
        "eventSubscriptions": int(event_subscriptions),
    }
    if authentication is not None:
        data["authentication"] = authentication
    return encode_message(OpCode.IDENTIFY, data)


def build_request(request_type: str, request_id: str, request_data: dict[str, Any]) -> str:
    return encode_message(
        OpCode.REQUEST,
        {"requestType": request_type, "requestId": request_id, "requestData": request_data},
    )
