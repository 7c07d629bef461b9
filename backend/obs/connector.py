"""
OBS WebSocket connector.

Owns the WebSocket to OBS Studio (obs-websocket 5.x), drives the
Hello/Identify/Identified handshake, and while identified feeds every inbound
frame to either the request correlator or the event dispatcher.

Usage:
    async with ObsConnector() as obs:
        version = await obs.get_version()
        result = await obs.setup_capture(window_title="Bar Chart Race", target_width=1280, target_height=720)
        await obs.start_record()
"""

import asyncio
from collections.abc import Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from config.settings import Settings, get_settings
from core.models import (
    CaptureConfig,
    CaptureSetupResult,
    ConnectionState,
    Session,
    WindowDescriptor,
)
from logger_config import get_logger

from .auth import create_auth_response
from .capture import CaptureOrchestrator
from .correlator import RequestCorrelator
from .errors import (
    AuthenticationError,
    ConnectionLostError,
    HandshakeError,
    NotConnectedError,
    ObsConnectionError,
)
from .events import EventDispatcher, EventHandler
from .protocol import (
    CLOSE_AUTHENTICATION_FAILED,
    OpCode,
    RequestType,
    build_identify,
    build_request,
    decode_message,
    parse_hello,
)

logger = get_logger("obs")

SUBPROTOCOL = "obswebsocket.json"


class ObsConnector:
    """Client for one OBS session at a time."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        connect_factory: Callable[..., Any] | None = None,
    ):
        settings = settings or get_settings()
        self.obs_settings = settings.obs
        self.capture_settings = settings.capture
        self._connect_factory = connect_factory or websockets.connect

        self.url = self.obs_settings.url
        self._password = self.obs_settings.password.get_secret_value()

        self.session = Session()
        self.events = EventDispatcher()
        self._correlator = RequestCorrelator(timeout=self.obs_settings.request_timeout_s)
        self._ws = None
        self._pump_task: asyncio.Task | None = None
        self._identified: asyncio.Future | None = None
        # Set once an in-flight teardown has finished
        self._closed: asyncio.Event | None = None

        # Connection lifecycle callbacks
        self.on_connected: Callable[[], Any] | None = None
        self.on_disconnected: Callable[[str], Any] | None = None
        self.on_error: Callable[[Exception], Any] | None = None

    # ==================== Properties ====================

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    @property
    def is_identified(self) -> bool:
        return self.session.is_identified

    @property
    def pending_count(self) -> int:
        return len(self._correlator)

    @property
    def on_record_state_changed(self) -> EventHandler | None:
        return self.events.on_record_state_changed

    @on_record_state_changed.setter
    def on_record_state_changed(self, handler: EventHandler | None):
        self.events.on_record_state_changed = handler

    # ==================== Lifecycle ====================

    async def __aenter__(self) -> "ObsConnector":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    async def connect(self, url: str | None = None, password: str | None = None) -> bool:
        """
        Open the socket and complete the handshake.

        Resolves once OBS sends Identified. Any failure before that raises an
        ObsConnectionError subclass and leaves the connector DISCONNECTED.
        """
        await self._wait_closed()
        if self.session.state is not ConnectionState.DISCONNECTED:
            raise ObsConnectionError(f"Cannot connect while {self.session.state.value}")

        if url is not None:
            self.url = url
        if password is not None:
            self._password = password

        self.session = Session(state=ConnectionState.CONNECTING)
        self._correlator = RequestCorrelator(timeout=self.obs_settings.request_timeout_s)
        self._identified = asyncio.get_running_loop().create_future()
        logger.info(f"Connecting to {self.url}")

        try:
            ws = await self._connect_factory(
                self.url,
                subprotocols=[SUBPROTOCOL],
                max_size=self.obs_settings.max_message_mb * 1024 * 1024,
                open_timeout=self.obs_settings.connect_timeout_s,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.session = Session()
            error = ObsConnectionError(f"Could not connect to {self.url}: {e}")
            self._report_error(error)
            raise error from e

        self._ws = ws
        self.session.state = ConnectionState.AWAITING_HELLO
        logger.debug("Connection opened, awaiting Hello")
        self._pump_task = asyncio.create_task(self._pump(ws), name="obs-message-pump")

        try:
            await asyncio.wait_for(
                asyncio.shield(self._identified), timeout=self.obs_settings.connect_timeout_s
            )
        except asyncio.TimeoutError as e:
            error = HandshakeError(
                f"No Identified from OBS within {self.obs_settings.connect_timeout_s:g}s"
            )
            await self._teardown("handshake timed out")
            self._report_error(error)
            raise error from e
        except ObsConnectionError as e:
            await self._teardown(f"handshake failed: {e}")
            self._report_error(e)
            raise
        except asyncio.CancelledError:
            await self._teardown("connect cancelled")
            raise

        if not self.session.is_identified:
            # The peer closed right after Identified, before this coroutine resumed
            error = ConnectionLostError("Connection closed immediately after identification")
            self._report_error(error)
            raise error

        logger.info(
            f"Identified with OBS (rpcVersion {self.session.rpc_version})",
            extra={"obs_websocket_version": self.session.obs_websocket_version},
        )
        self._fire(self.on_connected)
        return True

    async def disconnect(self):
        """Close the session. Pending requests fail with ConnectionLostError."""
        await self._teardown("disconnect requested")

    async def _wait_closed(self):
        if self.session.state is ConnectionState.CLOSING and self._closed is not None:
            await self._closed.wait()

    async def _teardown(self, reason: str):
        if self.session.state is ConnectionState.DISCONNECTED:
            return
        if self.session.state is ConnectionState.CLOSING:
            await self._wait_closed()
            return

        closed = self._closed = asyncio.Event()
        try:
            await self._close_session(reason)
        finally:
            if self.session.state is ConnectionState.CLOSING:
                self.session = Session()
            closed.set()

    async def _close_session(self, reason: str):
        was_identified = self.session.is_identified
        self.session.state = ConnectionState.CLOSING
        ws, self._ws = self._ws, None
        pump, self._pump_task = self._pump_task, None

        self._correlator.reject_all(
            lambda p: ConnectionLostError(f"Connection lost while waiting for {p.request_type}: {reason}")
        )

        if ws is not None:
            try:
                await ws.close()
            except (WebSocketException, OSError) as e:
                logger.debug(f"Error while closing socket: {e}")

        if pump is not None and pump is not asyncio.current_task():
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

        if self.obs_settings.clear_subscriptions_on_disconnect:
            self.events.clear()

        self.session = Session()
        logger.info(f"Disconnected ({reason})")
        if was_identified:
            self._fire(self.on_disconnected, reason)

    # ==================== Message pump ====================

    async def _pump(self, ws):
        """Read frames one at a time until the socket closes."""
        error: Exception | None = None
        try:
            async for raw in ws:
                await self._handle_frame(raw)
        except ConnectionClosed as e:
            error = e
        except HandshakeError as e:
            error = e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Message pump crashed: {e}")
            error = e

        if ws is not self._ws:
            return

        code = getattr(ws, "close_code", None)
        reason = getattr(ws, "close_reason", None) or (str(error) if error else "closed by peer")

        if self._identified is not None and not self._identified.done():
            self._identified.set_exception(self._handshake_failure(error, code, reason))
            return

        logger.warning(f"Connection to OBS lost (code {code}): {reason}")
        if error is not None and not isinstance(error, ConnectionClosed):
            self._report_error(error)
        await self._teardown(f"connection closed (code {code})")

    @staticmethod
    def _handshake_failure(error: Exception | None, code: int | None, reason: str) -> ObsConnectionError:
        if isinstance(error, ObsConnectionError):
            return error
        if code == CLOSE_AUTHENTICATION_FAILED:
            return AuthenticationError(f"OBS rejected authentication: {reason}")
        return ObsConnectionError(f"Connection closed before identification (code {code}): {reason}")

    async def _handle_frame(self, raw):
        state = self.session.state

        if state is ConnectionState.IDENTIFIED:
            try:
                op, data = decode_message(raw)
            except HandshakeError as e:
                logger.warning(f"Ignoring malformed frame: {e}")
                return
            if op == OpCode.EVENT:
                self.events.dispatch(data.get("eventType"), data.get("eventData"))
            elif op == OpCode.REQUEST_RESPONSE:
                self._correlator.resolve(data)
            elif op == OpCode.REQUEST_BATCH_RESPONSE:
                logger.debug(f"Batch response {data.get('requestId')} ignored")
            else:
                logger.debug(f"Unexpected opcode {op} while identified")
            return

        op, data = decode_message(raw)
        if op == OpCode.HELLO and state is ConnectionState.AWAITING_HELLO:
            await self._identify(data)
        elif op == OpCode.IDENTIFIED and state is ConnectionState.IDENTIFYING:
            self._on_identified(data)
        elif op in (OpCode.EVENT, OpCode.REQUEST_RESPONSE, OpCode.REQUEST_BATCH_RESPONSE):
            logger.debug(f"Discarding opcode {op} received while {state.value}")
        else:
            raise HandshakeError(f"Unexpected opcode {op} while {state.value}")

    async def _identify(self, hello: dict[str, Any]):
        server_rpc, auth = parse_hello(hello)
        self.session.obs_websocket_version = hello.get("obsWebSocketVersion")
        self.session.authentication_required = auth is not None
        logger.debug(f"Hello from obs-websocket {self.session.obs_websocket_version} (rpc {server_rpc})")

        authentication = None
        if auth is not None:
            if not self._password:
                logger.warning("OBS requires authentication but no password is configured")
            authentication = create_auth_response(self._password, auth["salt"], auth["challenge"])

        self.session.state = ConnectionState.IDENTIFYING
        await self._ws.send(
            build_identify(
                self.obs_settings.rpc_version,
                self.obs_settings.event_subscriptions,
                authentication,
            )
        )

    def _on_identified(self, data: dict[str, Any]):
        self.session.rpc_version = data.get("negotiatedRpcVersion", self.obs_settings.rpc_version)
        self.session.state = ConnectionState.IDENTIFIED
        if self._identified is not None and not self._identified.done():
            self._identified.set_result(True)

    # ==================== Requests ====================

    async def issue_command(self, request_type: str, request_data: dict[str, Any] | None = None) -> dict:
        """
        Send a request and wait for its response.

        Raises NotConnectedError before anything is sent if the session is not
        identified, RequestFailedError when OBS reports failure,
        RequestTimeoutError after the request timeout, and ConnectionLostError
        if the session ends first.
        """
        ws = self._ws
        if not self.session.is_identified or ws is None:
            raise NotConnectedError(request_type)

        pending = self._correlator.register(request_type)
        try:
            await ws.send(build_request(request_type, pending.request_id, request_data or {}))
        except (ConnectionClosed, OSError) as e:
            self._correlator.discard(pending.request_id)
            if pending.future.done() and not pending.future.cancelled():
                pending.future.exception()
            raise ConnectionLostError(f"Could not send {request_type}: {e}") from e

        logger.debug(f"-> {request_type} ({pending.request_id})")
        return await pending.future

    # ==================== Events ====================

    def subscribe(self, event_type: str, handler: EventHandler):
        self.events.subscribe(event_type, handler)

    def unsubscribe(self, event_type: str, handler: EventHandler):
        self.events.unsubscribe(event_type, handler)

    def on(self, event_type: str):
        return self.events.on(event_type)

    # ==================== Recording Controls ====================

    async def start_record(self) -> dict:
        return await self.issue_command(RequestType.START_RECORD)

    async def stop_record(self) -> str | None:
        """Stop recording and return the saved file's path."""
        result = await self.issue_command(RequestType.STOP_RECORD)
        return result.get("outputPath")

    async def toggle_record(self) -> bool:
        result = await self.issue_command(RequestType.TOGGLE_RECORD)
        return bool(result.get("outputActive"))

    async def pause_record(self) -> dict:
        return await self.issue_command(RequestType.PAUSE_RECORD)

    async def resume_record(self) -> dict:
        return await self.issue_command(RequestType.RESUME_RECORD)

    async def get_record_status(self) -> dict:
        return await self.issue_command(RequestType.GET_RECORD_STATUS)

    async def is_recording(self) -> bool:
        status = await self.get_record_status()
        return bool(status.get("outputActive"))

    async def get_version(self) -> dict:
        return await self.issue_command(RequestType.GET_VERSION)

    # ==================== Scenes ====================

    async def get_scene_list(self) -> dict:
        return await self.issue_command(RequestType.GET_SCENE_LIST)

    async def create_scene(self, scene_name: str) -> dict:
        return await self.issue_command(RequestType.CREATE_SCENE, {"sceneName": scene_name})

    async def remove_scene(self, scene_name: str) -> dict:
        return await self.issue_command(RequestType.REMOVE_SCENE, {"sceneName": scene_name})

    async def set_current_scene(self, scene_name: str) -> dict:
        return await self.issue_command(
            RequestType.SET_CURRENT_PROGRAM_SCENE, {"sceneName": scene_name}
        )

    # ==================== Inputs ====================

    async def get_input_kind_list(self) -> list[str]:
        result = await self.issue_command(RequestType.GET_INPUT_KIND_LIST)
        return result.get("inputKinds", [])

    async def create_input(
        self,
        scene_name: str,
        input_name: str,
        input_kind: str,
        input_settings: dict[str, Any] | None = None,
        scene_item_enabled: bool = True,
    ) -> dict:
        return await self.issue_command(
            RequestType.CREATE_INPUT,
            {
                "sceneName": scene_name,
                "inputName": input_name,
                "inputKind": input_kind,
                "inputSettings": input_settings or {},
                "sceneItemEnabled": scene_item_enabled,
            },
        )

    async def remove_input(self, input_name: str) -> dict:
        return await self.issue_command(RequestType.REMOVE_INPUT, {"inputName": input_name})

    async def get_input_settings(self, input_name: str) -> dict:
        return await self.issue_command(RequestType.GET_INPUT_SETTINGS, {"inputName": input_name})

    async def set_input_settings(
        self, input_name: str, input_settings: dict[str, Any], overlay: bool = True
    ) -> dict:
        return await self.issue_command(
            RequestType.SET_INPUT_SETTINGS,
            {"inputName": input_name, "inputSettings": input_settings, "overlay": overlay},
        )

    async def get_input_property_items(self, input_name: str, property_name: str) -> list[dict]:
        result = await self.issue_command(
            RequestType.GET_INPUT_PROPERTIES_LIST_PROPERTY_ITEMS,
            {"inputName": input_name, "propertyName": property_name},
        )
        return result.get("propertyItems") or []

    async def get_available_windows(self, input_name: str) -> list[WindowDescriptor]:
        """Windows a window-capture input can bind to, as OBS lists them."""
        items = await self.get_input_property_items(input_name, "window")
        return [WindowDescriptor.from_property_item(item) for item in items]

    # ==================== Scene Items ====================

    async def get_scene_item_list(self, scene_name: str) -> list[dict]:
        result = await self.issue_command(RequestType.GET_SCENE_ITEM_LIST, {"sceneName": scene_name})
        return result.get("sceneItems") or []

    async def get_scene_item_id(self, scene_name: str, source_name: str) -> int | None:
        result = await self.issue_command(
            RequestType.GET_SCENE_ITEM_ID, {"sceneName": scene_name, "sourceName": source_name}
        )
        return result.get("sceneItemId")

    async def get_scene_item_transform(self, scene_name: str, scene_item_id: int) -> dict:
        result = await self.issue_command(
            RequestType.GET_SCENE_ITEM_TRANSFORM,
            {"sceneName": scene_name, "sceneItemId": scene_item_id},
        )
        return result.get("sceneItemTransform") or result

    async def set_scene_item_transform(
        self, scene_name: str, scene_item_id: int, transform: dict[str, Any]
    ) -> dict:
        return await self.issue_command(
            RequestType.SET_SCENE_ITEM_TRANSFORM,
            {"sceneName": scene_name, "sceneItemId": scene_item_id, "sceneItemTransform": transform},
        )

    async def set_scene_item_enabled(self, scene_name: str, scene_item_id: int, enabled: bool) -> dict:
        return await self.issue_command(
            RequestType.SET_SCENE_ITEM_ENABLED,
            {"sceneName": scene_name, "sceneItemId": scene_item_id, "sceneItemEnabled": enabled},
        )

    # ==================== Video Settings ====================

    async def get_video_settings(self) -> dict:
        return await self.issue_command(RequestType.GET_VIDEO_SETTINGS)

    async def set_video_settings(self, settings: dict[str, Any]) -> dict:
        return await self.issue_command(RequestType.SET_VIDEO_SETTINGS, settings)

    # ==================== Capture Setup ====================

    async def setup_capture(self, config: CaptureConfig | None = None, **kwargs) -> CaptureSetupResult:
        """Run the capture workflow. Accepts a CaptureConfig or its fields as kwargs."""
        if config is None:
            kwargs.setdefault("scene_name", self.capture_settings.default_scene_name)
            kwargs.setdefault("source_name", self.capture_settings.default_source_name)
            config = CaptureConfig(**kwargs)
        return await CaptureOrchestrator(self, self.capture_settings).setup_capture(config)

    # ==================== Internals ====================

    def _report_error(self, error: Exception):
        self._fire(self.on_error, error)

    @staticmethod
    def _fire(callback: Callable | None, *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.exception(f"Connection callback {getattr(callback, '__name__', callback)} failed: {e}")
