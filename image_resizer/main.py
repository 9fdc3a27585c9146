import argparse
import os
import sys
from pathlib import Path

from image_resizer.crop import session as sm
from image_resizer.errors import ImageResizerError
from image_resizer.image_engine.decoder import probe_dimensions
from image_resizer.image_engine.pipeline import export_image
from image_resizer.logger import get_logger, setup_logger
from image_resizer.presets import load_catalog
from image_resizer.settings_manager import SettingsManager

# --- CLI logging options -----------------------------------------------------
# Logging options are parsed first and reflected in environment variables
# (IMAGE_RESIZER_LOG_LEVEL, IMAGE_RESIZER_LOG_CATS) so every get_logger() call
# after this point sees them.


def _apply_cli_logging_options(argv: list[str]) -> list[str]:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    args, remaining = parser.parse_known_args(argv)
    if args.log_level:
        os.environ["IMAGE_RESIZER_LOG_LEVEL"] = args.log_level
    if args.log_cats:
        os.environ["IMAGE_RESIZER_LOG_CATS"] = args.log_cats
    setup_logger()
    return remaining


logger = get_logger("main")


def _parse_crop(text: str) -> dict[str, float]:
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("crop must be x,y,w,h")
    try:
        x, y, w, h = (float(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid crop: {text}") from None
    return {"x": x, "y": y, "width": w, "height": h}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="image_resizer", description="Crop, resize and convert images")
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    parser.add_argument("--settings", help="Path to a settings JSON file")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP export service")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT") or 3000))

    export = sub.add_parser("export", help="Crop/resize one image")
    export.add_argument("src")
    export.add_argument("dst")
    export.add_argument("--rotate", action="append", choices=["cw", "ccw"], default=[])
    export.add_argument("--flip", action="append", choices=["h", "v"], default=[])
    export.add_argument("--aspect", help="Crop aspect ratio, e.g. 16:9")
    export.add_argument("--crop", type=_parse_crop, help="x,y,w,h in rotated image pixels")
    size = export.add_mutually_exclusive_group()
    size.add_argument("--width", type=int)
    size.add_argument("--height", type=int)
    size.add_argument("--percent", type=float)
    size.add_argument("--preset", help="PLATFORM/PRESET")
    export.add_argument("--size", nargs=2, type=int, metavar=("W", "H"), help="Exact size without aspect lock")
    export.add_argument("--format", default=None, help="Original, JPEG, PNG or WebP")
    export.add_argument("--quality", type=int, default=None)
    export.add_argument("--target-kb", type=int, default=None)
    export.add_argument("--watermark", action="store_true")
    return parser


def build_session(args: argparse.Namespace, settings: SettingsManager, catalog, width: int, height: int) -> sm.Session:
    s = sm.open_session(sm.new_session(settings), sm.ImageMeta(width, height, args.src))
    for direction in args.rotate:
        s = sm.rotate(s, direction)
    for axis in args.flip:
        s = sm.flip(s, axis)
    if args.aspect:
        s = sm.set_aspect_ratio(s, args.aspect)
    if args.crop:
        s = sm.set_crop_rect(s, **args.crop)
    if args.width:
        s = sm.set_resize_width(s, args.width)
    elif args.height:
        s = sm.set_resize_height(s, args.height)
    elif args.percent:
        s = sm.set_percentage(s, args.percent)
    elif args.preset:
        platform, _, preset = args.preset.partition("/")
        s = sm.set_named_preset(s, catalog, platform, preset)
    if args.size:
        if s.resize.exact.lock_aspect:
            s = sm.toggle_lock_aspect(s)
        s = sm.set_resize_width(s, args.size[0])
        s = sm.set_resize_height(s, args.size[1])
    if args.format:
        s = sm.set_export_format(s, args.format)
    if args.quality is not None:
        s = sm.set_export_quality(s, args.quality)
    if args.target_kb:
        s = sm.set_target_byte_size(s, args.target_kb * 1024)
    if args.watermark:
        s = sm.set_watermark(s, True)
    return s


def _run_export(args: argparse.Namespace, settings: SettingsManager) -> int:
    catalog = load_catalog(settings.get("presets_path"))
    buffer = Path(args.src).read_bytes()
    width, height = probe_dimensions(buffer)
    session = build_session(args, settings, catalog, width, height)
    result = export_image(session, buffer, catalog, str(settings.get("watermark_text")))
    Path(args.dst).write_bytes(result.data)
    logger.info("wrote %s (%s %dx%d, %d bytes)", args.dst, result.format.value, result.width, result.height, len(result.data))
    return 0


def run(argv: list[str] | None = None) -> int:
    """Application entrypoint (packaging-friendly)."""
    if argv is None:
        argv = sys.argv[1:]
    argv = _apply_cli_logging_options(argv)
    args = build_parser().parse_args(argv)
    settings = SettingsManager(args.settings)

    if args.command == "serve":
        from image_resizer.service import serve

        serve(settings, host=args.host, port=args.port)
        return 0

    try:
        return _run_export(args, settings)
    except (ImageResizerError, OSError, ValueError, KeyError) as e:
        logger.error("export failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(run())
