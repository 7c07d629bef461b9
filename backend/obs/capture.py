"""
Window-capture setup workflow.

Brings OBS to a recording-ready state that captures exactly the
visualization's content rectangle:

1. ensure the scene exists, removing a stale source of the same name
2. create a window-capture source and switch to the scene
3. find the target window in the source's window listing
4. bind the source to that window
5. wait for the source to initialize
6. poll the scene item transform until OBS reports real dimensions
7. crop away the window chrome
8. set an even-sized canvas matching the target
9. switch to the scene again

Step failures are recorded on the result and the workflow keeps going; only
a failure to list or create the scene ends the run early.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from config.settings import CaptureSettings
from core.models import (
    CaptureConfig,
    CaptureSetupResult,
    CropGeometry,
    SetupErrorKind,
    WindowDescriptor,
)
from logger_config import get_logger

from .errors import ObsError
from .protocol import ALIGN_TOP_LEFT, BOUNDS_NONE

logger = get_logger("capture")

SOURCE_FLAGS = {"capture_cursor": False, "client_area": True}


def find_window_by_title(
    windows: Iterable[WindowDescriptor], search_title: str
) -> WindowDescriptor | None:
    """
    Case-insensitive substring match, display name first.

    Every display name is checked before any identifier, so a name match
    further down the list beats an identifier match near the top.
    """
    if not search_title:
        return None
    windows = list(windows)
    needle = search_title.lower()

    for window in windows:
        if window.name and needle in window.name.lower():
            return window
    for window in windows:
        if window.value and needle in window.value.lower():
            return window
    return None


def compute_crop(raw_width: float, raw_height: float, target_width: int, target_height: int) -> CropGeometry:
    """
    Crop that reduces the raw capture to the target size.

    Extra height is treated as window chrome above the content (title bar,
    URL bar) and extra width as chrome on the right; content is anchored top
    left. A raw size smaller than the target never yields a negative crop.
    """
    chrome_height = int(raw_height) - target_height
    chrome_width = int(raw_width) - target_width
    return CropGeometry(top=max(0, chrome_height), right=max(0, chrome_width), left=0, bottom=0)


def even_canvas_size(width: int, height: int) -> tuple[int, int]:
    """Round both dimensions down to a multiple of 2 (encoders need even sizes)."""
    return (width // 2) * 2, (height // 2) * 2


def build_transform(crop: CropGeometry) -> dict[str, Any]:
    return {
        "positionX": 0,
        "positionY": 0,
        "alignment": ALIGN_TOP_LEFT,
        "scaleX": 1,
        "scaleY": 1,
        **crop.to_transform(),
        "boundsType": BOUNDS_NONE,
    }


class CaptureOrchestrator:
    """Runs the setup workflow against a connected ObsConnector."""

    def __init__(
        self,
        connector,
        settings: CaptureSettings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.obs = connector
        self.settings = settings or CaptureSettings()
        self._sleep = sleep

    async def setup_capture(self, config: CaptureConfig) -> CaptureSetupResult:
        result = CaptureSetupResult(scene_name=config.scene_name, source_name=config.source_name)
        logger.info(
            f"Setting up capture '{config.source_name}' in '{config.scene_name}'",
            extra={"window_title": config.window_title, "target": [config.target_width, config.target_height]},
        )

        if not await self._ensure_scene(config, result):
            # Leave OBS on the best-known scene even when setup could not start
            await self._switch_scene(config.scene_name, result, record_failure=False)
            return self._finish(result)

        if await self._create_source(config, result):
            await self._switch_scene(config.scene_name, result)
            await self._bind_window(config, result)

            logger.info(f"Waiting {self.settings.settle_delay_s:g}s for source to initialize")
            await self._sleep(self.settings.settle_delay_s)

            dimensions = await self._poll_source_dimensions(config, result)
            if dimensions is not None:
                await self._apply_crop(config, result, *dimensions)
            else:
                result.add_error(
                    SetupErrorKind.SOURCE_DIMENSIONS,
                    "Could not determine source dimensions. Please try again.",
                    attempts=len(self.settings.retry_delays_s),
                )

        await self._set_canvas(config, result)
        await self._switch_scene(config.scene_name, result)
        return self._finish(result)

    # -- step 1 --------------------------------------------------------------

    async def _ensure_scene(self, config: CaptureConfig, result: CaptureSetupResult) -> bool:
        try:
            scene_list = await self.obs.get_scene_list()
            scene_names = {scene.get("sceneName") for scene in scene_list.get("scenes", [])}
            if config.scene_name not in scene_names:
                await self.obs.create_scene(config.scene_name)
                logger.info(f"Created scene {config.scene_name}")
                return True
        except ObsError as e:
            logger.error(f"Scene setup failed: {e}")
            result.add_error(SetupErrorKind.SCENE, f"Could not prepare scene: {e}", scene=config.scene_name)
            return False

        logger.info(f"Scene already exists: {config.scene_name}")
        await self._remove_stale_source(config, result)
        return True

    async def _remove_stale_source(self, config: CaptureConfig, result: CaptureSetupResult):
        try:
            items = await self.obs.get_scene_item_list(config.scene_name)
            if any(item.get("sourceName") == config.source_name for item in items):
                await self.obs.remove_input(config.source_name)
                logger.info(f"Removed existing input {config.source_name}")
        except ObsError as e:
            logger.warning(f"Could not clear previous source: {e}")
            result.add_error(
                SetupErrorKind.STALE_SOURCE,
                f"Could not remove existing source '{config.source_name}': {e}",
            )

    # -- step 2 --------------------------------------------------------------

    async def _create_source(self, config: CaptureConfig, result: CaptureSetupResult) -> bool:
        try:
            created = await self.obs.create_input(
                config.scene_name,
                config.source_name,
                self.settings.input_kind,
                dict(SOURCE_FLAGS),
                True,
            )
        except ObsError as e:
            logger.error(f"Could not create input {config.source_name}: {e}")
            result.add_error(SetupErrorKind.SOURCE, f"Could not create capture source: {e}")
            return False

        result.scene_item_id = created.get("sceneItemId")
        logger.info(f"Created input {config.source_name} with ID {result.scene_item_id}")
        if result.scene_item_id is None:
            result.add_error(SetupErrorKind.SOURCE, "OBS did not return a scene item id for the source")
            return False
        return True

    async def _switch_scene(self, scene_name: str, result: CaptureSetupResult, record_failure: bool = True):
        try:
            await self.obs.set_current_scene(scene_name)
            logger.debug(f"Switched to scene {scene_name}")
        except ObsError as e:
            logger.warning(f"Could not switch to scene: {e}")
            if record_failure:
                result.add_error(SetupErrorKind.SCENE_SWITCH, f"Could not switch to scene '{scene_name}': {e}")

    # -- steps 3-4 -----------------------------------------------------------

    async def _bind_window(self, config: CaptureConfig, result: CaptureSetupResult):
        try:
            windows = await self.obs.get_available_windows(config.source_name)
        except ObsError as e:
            logger.warning(f"Could not get available windows: {e}")
            windows = []

        logger.info(f"Available windows: {[w.label for w in windows]}")
        match = find_window_by_title(windows, config.window_title)
        if match is None:
            logger.warning(f"Could not find window matching: {config.window_title}")
            result.add_error(
                SetupErrorKind.WINDOW_NOT_FOUND,
                f'Could not find window matching "{config.window_title}". '
                "Make sure the recording popup is open.",
                available=[w.label for w in windows],
            )
            return

        logger.info(f"Found matching window: {match.label}")
        try:
            await self.obs.set_input_settings(config.source_name, {"window": match.value, **SOURCE_FLAGS})
        except ObsError as e:
            result.add_error(SetupErrorKind.WINDOW_BIND, f"Could not bind source to window: {e}")

    # -- steps 6-7 -----------------------------------------------------------

    async def _poll_source_dimensions(
        self, config: CaptureConfig, result: CaptureSetupResult
    ) -> tuple[float, float] | None:
        delays = self.settings.retry_delays_s
        for attempt, delay in enumerate(delays, start=1):
            try:
                transform = await self.obs.get_scene_item_transform(config.scene_name, result.scene_item_id)
                width = transform.get("sourceWidth") or 0
                height = transform.get("sourceHeight") or 0
                if width > 0 and height > 0:
                    logger.info(f"Got source dimensions on attempt {attempt}: {width}x{height}")
                    return width, height
            except ObsError as e:
                logger.warning(f"Transform query failed (attempt {attempt}): {e}")

            if attempt < len(delays):
                logger.debug(f"Source not ready (attempt {attempt}), waiting {delay:g}s")
                await self._sleep(delay)
        return None

    async def _apply_crop(self, config: CaptureConfig, result: CaptureSetupResult, width: float, height: float):
        crop = compute_crop(width, height, config.target_width, config.target_height)
        logger.info(
            "Calculated crop",
            extra={
                "crop": crop.to_transform(),
                "result_size": [int(width) - crop.left - crop.right, int(height) - crop.top - crop.bottom],
            },
        )
        try:
            await self.obs.set_scene_item_transform(config.scene_name, result.scene_item_id, build_transform(crop))
        except ObsError as e:
            result.add_error(SetupErrorKind.TRANSFORM, f"Could not apply crop transform: {e}")
            return

        try:
            applied = await self.obs.get_scene_item_transform(config.scene_name, result.scene_item_id)
        except ObsError as e:
            logger.warning(f"Could not read back transform: {e}")
            return
        logger.info(
            "Transform applied",
            extra={key: applied.get(key) for key in ("cropLeft", "cropTop", "cropRight", "cropBottom", "width", "height")},
        )
        if applied.get("cropTop") != crop.top or applied.get("cropRight") != crop.right:
            logger.warning("Read-back crop differs from the requested crop")

    # -- step 8 --------------------------------------------------------------

    async def _set_canvas(self, config: CaptureConfig, result: CaptureSetupResult):
        width, height = even_canvas_size(config.target_width, config.target_height)
        try:
            await self.obs.set_video_settings(
                {"baseWidth": width, "baseHeight": height, "outputWidth": width, "outputHeight": height}
            )
            logger.info(f"Set canvas size to {width}x{height}")
        except ObsError as e:
            logger.warning(f"Could not set canvas size: {e}")
            result.add_error(SetupErrorKind.CANVAS, f"Could not set canvas size: {e}", size=[width, height])

    @staticmethod
    def _finish(result: CaptureSetupResult) -> CaptureSetupResult:
        result.success = not result.errors
        if result.success:
            logger.info("Capture setup complete")
        else:
            logger.warning(f"Capture setup finished with errors: {result.error_messages}")
        return result
