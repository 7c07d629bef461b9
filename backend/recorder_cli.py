"""
Chartcast recorder CLI - drive OBS from the command line.

Commands:
    status   connect, print obs-websocket version and record status
    setup    configure the window capture for the chart popup
    record   setup, record until --duration elapses or Ctrl+C, print output path

Usage:
    cd backend
    python recorder_cli.py setup --window "Bar Chart Race" --width 1280 --height 720
    python recorder_cli.py record --window "Bar Chart Race" --width 1280 --height 720 --duration 30
"""

import argparse
import asyncio
import json
import sys

from pydantic import ValidationError

from config.settings import get_settings
from core import shutdown
from core.models import CaptureConfig
from logger_config import configure_from_settings, get_logger
from obs import ObsConnector, ObsError, RecordingController

logger = get_logger("cli")


def _print_json(payload):
    print(json.dumps(payload, indent=2))


async def cmd_status(obs: ObsConnector, args) -> int:
    version = await obs.get_version()
    status = await obs.get_record_status()
    _print_json(
        {
            "obsVersion": version.get("obsVersion"),
            "obsWebSocketVersion": version.get("obsWebSocketVersion"),
            "rpcVersion": obs.session.rpc_version,
            "recording": bool(status.get("outputActive")),
            "paused": bool(status.get("outputPaused")),
        }
    )
    return 0


def _capture_config(args) -> CaptureConfig:
    capture = get_settings().capture
    return CaptureConfig(
        scene_name=args.scene or capture.default_scene_name,
        source_name=args.source or capture.default_source_name,
        window_title=args.window,
        target_width=args.width,
        target_height=args.height,
    )


async def cmd_setup(obs: ObsConnector, args) -> int:
    result = await obs.setup_capture(args.capture)
    _print_json(result.to_dict())
    return 0 if result.success else 2


async def cmd_record(obs: ObsConnector, args) -> int:
    result = await obs.setup_capture(args.capture)
    if not result.success:
        _print_json(result.to_dict())
        if not args.force:
            logger.error("Capture setup incomplete, not recording (use --force to record anyway)")
            return 2

    shutdown.setup_signal_handlers()
    controller = RecordingController(obs)
    completion = shutdown.wait_for_shutdown_async(timeout=args.duration)
    try:
        output_path = await controller.record_until(completion)
    finally:
        controller.detach()
    _print_json({"outputPath": output_path})
    return 0


COMMANDS = {"status": cmd_status, "setup": cmd_setup, "record": cmd_record}


async def run(args) -> int:
    settings = get_settings()
    obs = ObsConnector(settings)
    try:
        await obs.connect(args.url or settings.obs.url, args.password)
    except ObsError as e:
        logger.error(f"Could not connect to OBS: {e}")
        return 1

    try:
        return await COMMANDS[args.command](obs, args)
    except ObsError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        await obs.disconnect()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chartcast OBS recorder")
    parser.add_argument("--url", default=None, help="obs-websocket URL (default from settings)")
    parser.add_argument("--password", default=None, help="obs-websocket password")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show OBS version and record status")

    for name, help_text in (("setup", "Configure the window capture"), ("record", "Setup and record")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--window", required=True, help="Window title to search for")
        p.add_argument("--width", type=int, required=True, help="Target content width")
        p.add_argument("--height", type=int, required=True, help="Target content height")
        p.add_argument("--scene", default=None, help="Scene name")
        p.add_argument("--source", default=None, help="Source name")
        if name == "record":
            p.add_argument("--duration", type=float, default=None, help="Seconds to record (default: until Ctrl+C)")
            p.add_argument("--force", action="store_true", help="Record even if setup reported errors")
    return parser


def parse_args(argv=None) -> argparse.Namespace:
    """Parse the command line and validate capture options before any connection is made."""
    parser = build_parser()
    args = parser.parse_args(argv)
    args.capture = None
    if args.command in ("setup", "record"):
        try:
            args.capture = _capture_config(args)
        except ValidationError as e:
            problems = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())
            parser.error(f"invalid capture options: {problems}")
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_from_settings()
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
