"""
Shared fixtures: an in-memory stand-in for OBS Studio's obs-websocket server.

FakeObsSocket plays the client-side WebSocket (async iteration, send, close),
FakeObsServer scripts Hello/Identified and answers requests either from
per-request handlers or from a small scene model.
"""

import asyncio
import itertools
import json
import sys
from pathlib import Path

import pytest

BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

from config.settings import CaptureSettings, ObsSettings, Settings  # noqa: E402
from obs.auth import create_auth_response  # noqa: E402
from obs.connector import ObsConnector  # noqa: E402

_CLOSED = object()


class Failure:
    """Handler return value that becomes requestStatus.result == false."""

    def __init__(self, code: int, comment: str | None = None):
        self.code = code
        self.comment = comment


class FakeObsSocket:
    """Client side of one fake connection."""

    def __init__(self, server: "FakeObsServer"):
        self.server = server
        self.sent: list[dict] = []
        self.close_code: int | None = None
        self.close_reason: str = ""
        self.closed = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    def push(self, message: dict):
        self._inbound.put_nowait(json.dumps(message))

    def push_raw(self, raw: str):
        self._inbound.put_nowait(raw)

    def drop(self, code: int = 1006, reason: str = ""):
        """Server-side close."""
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbound.put_nowait(_CLOSED)

    async def send(self, raw: str):
        if self.closed:
            raise ConnectionResetError("socket closed")
        message = json.loads(raw)
        self.sent.append(message)
        self.server.on_client_message(self, message)

    async def close(self, code: int = 1000, reason: str = ""):
        self.drop(code, reason)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbound.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class FakeObsServer:
    """Scripted obs-websocket 5.x peer."""

    def __init__(self, password: str | None = None):
        self.password = password
        self.salt = "c2FsdHNhbHRzYWx0"
        self.challenge = "Y2hhbGxlbmdlY2hhbGxlbmdl"
        self.send_hello = True
        self.send_identified = True
        self.handlers: dict = {}
        self.silent: set[str] = set()
        self.requests: list[tuple[str, dict]] = []
        self.identify: dict | None = None
        self.socket: FakeObsSocket | None = None
        self.connect_kwargs: dict = {}
        self.refuse = False
        self.socket_class = FakeObsSocket

    # -- transport ----------------------------------------------------------

    async def connect(self, url, **kwargs):
        if self.refuse:
            raise ConnectionRefusedError(111, "Connection refused")
        self.url = url
        self.connect_kwargs = kwargs
        self.socket = self.socket_class(self)
        if self.send_hello:
            hello = {"obsWebSocketVersion": "5.4.2", "rpcVersion": 1}
            if self.password is not None:
                hello["authentication"] = {"salt": self.salt, "challenge": self.challenge}
            self.socket.push({"op": 0, "d": hello})
        return self.socket

    def on_client_message(self, sock: FakeObsSocket, message: dict):
        op, data = message["op"], message["d"]
        if op == 1:
            self.identify = data
            if self.password is not None:
                expected = create_auth_response(self.password, self.salt, self.challenge)
                if data.get("authentication") != expected:
                    sock.drop(4009, "Authentication failed.")
                    return
            if self.send_identified:
                sock.push({"op": 2, "d": {"negotiatedRpcVersion": data["rpcVersion"]}})
        elif op == 6:
            self._on_request(sock, data)

    def _on_request(self, sock: FakeObsSocket, data: dict):
        request_type = data["requestType"]
        request_data = data.get("requestData") or {}
        self.requests.append((request_type, request_data))
        if request_type in self.silent:
            return

        handler = self.handlers.get(request_type)
        if callable(handler):
            outcome = handler(request_data)
        else:
            outcome = handler

        response = {"requestType": request_type, "requestId": data["requestId"]}
        if isinstance(outcome, Failure):
            response["requestStatus"] = {"result": False, "code": outcome.code}
            if outcome.comment is not None:
                response["requestStatus"]["comment"] = outcome.comment
        else:
            response["requestStatus"] = {"result": True, "code": 100}
            if outcome is not None:
                response["responseData"] = outcome
        sock.push({"op": 7, "d": response})

    # -- helpers ------------------------------------------------------------

    def request_types(self) -> list[str]:
        return [request_type for request_type, _ in self.requests]

    def requests_of(self, request_type: str) -> list[dict]:
        return [data for rt, data in self.requests if rt == request_type]

    def push_event(self, event_type: str, event_data: dict | None = None):
        payload = {"eventType": event_type, "eventIntent": 64}
        if event_data is not None:
            payload["eventData"] = event_data
        self.socket.push({"op": 5, "d": payload})


class SceneModel:
    """Just enough OBS scene/input state to run the capture workflow."""

    def __init__(self, server: FakeObsServer):
        self.server = server
        self.scenes: dict[str, list[dict]] = {"Scene": []}
        self.current_scene = "Scene"
        self.windows: list[dict] = []
        self.source_size = (1920.0, 1040.0)
        self.not_ready_polls = 0
        self.transforms: dict[int, dict] = {}
        self.input_settings: dict[str, dict] = {}
        self.video_settings: dict = {}
        self._item_ids = itertools.count(1)

        server.handlers.update(
            {
                "GetSceneList": self.get_scene_list,
                "CreateScene": self.create_scene,
                "GetSceneItemList": self.get_scene_item_list,
                "RemoveInput": self.remove_input,
                "CreateInput": self.create_input,
                "SetCurrentProgramScene": self.set_current_scene,
                "GetInputPropertiesListPropertyItems": lambda d: {"propertyItems": self.windows},
                "SetInputSettings": self.set_input_settings,
                "GetSceneItemTransform": self.get_transform,
                "SetSceneItemTransform": self.set_transform,
                "SetVideoSettings": self.set_video_settings,
            }
        )

    def get_scene_list(self, data):
        return {
            "currentProgramSceneName": self.current_scene,
            "scenes": [{"sceneName": name, "sceneIndex": i} for i, name in enumerate(self.scenes)],
        }

    def create_scene(self, data):
        if data["sceneName"] in self.scenes:
            return Failure(601, "A source already exists by that scene name.")
        self.scenes[data["sceneName"]] = []
        return {"sceneUuid": "uuid-" + data["sceneName"]}

    def get_scene_item_list(self, data):
        if data["sceneName"] not in self.scenes:
            return Failure(600, "No source was found by the name of `sceneName`.")
        return {"sceneItems": list(self.scenes[data["sceneName"]])}

    def remove_input(self, data):
        found = False
        for items in self.scenes.values():
            for item in list(items):
                if item["sourceName"] == data["inputName"]:
                    items.remove(item)
                    found = True
        return None if found else Failure(600, "No source was found by the name of `inputName`.")

    def create_input(self, data):
        if any(i["sourceName"] == data["inputName"] for items in self.scenes.values() for i in items):
            return Failure(601, "A source already exists by that input name.")
        if data["sceneName"] not in self.scenes:
            return Failure(600, "No source was found by the name of `sceneName`.")
        item_id = next(self._item_ids)
        self.scenes[data["sceneName"]].append({"sourceName": data["inputName"], "sceneItemId": item_id})
        self.input_settings[data["inputName"]] = dict(data.get("inputSettings") or {})
        return {"inputUuid": f"input-{item_id}", "sceneItemId": item_id}

    def set_current_scene(self, data):
        if data["sceneName"] not in self.scenes:
            return Failure(600, "No source was found by the name of `sceneName`.")
        self.current_scene = data["sceneName"]
        return None

    def set_input_settings(self, data):
        self.input_settings.setdefault(data["inputName"], {}).update(data["inputSettings"])
        return None

    def get_transform(self, data):
        transform = {"sourceWidth": 0.0, "sourceHeight": 0.0}
        if self.not_ready_polls > 0:
            self.not_ready_polls -= 1
        else:
            transform["sourceWidth"], transform["sourceHeight"] = self.source_size
        transform.update(self.transforms.get(data["sceneItemId"], {}))
        return {"sceneItemTransform": transform}

    def set_transform(self, data):
        self.transforms[data["sceneItemId"]] = dict(data["sceneItemTransform"])
        return None

    def set_video_settings(self, data):
        self.video_settings = dict(data)
        return None


def make_settings(**obs_overrides) -> Settings:
    return Settings(
        obs=ObsSettings(**obs_overrides),
        capture=CaptureSettings(settle_delay_s=0.0, retry_delays_s=[0.0, 0.0, 0.0, 0.0]),
    )


@pytest.fixture
def obs_server():
    return FakeObsServer()


@pytest.fixture
def scene_model(obs_server):
    return SceneModel(obs_server)


@pytest.fixture
def make_connector(obs_server):
    """Build a connector wired to the fake server."""

    def _make(**obs_overrides) -> ObsConnector:
        return ObsConnector(make_settings(**obs_overrides), connect_factory=obs_server.connect)

    return _make
