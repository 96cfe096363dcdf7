#!/usr/bin/env python3
"""
spritecut command line.

  spritecut split sheet.png --line h:50 --line v:50 --out tiles/
  spritecut split sheet.png --line v:25 --line v:75 --zip tiles.zip
  spritecut remove-bg icon.png --mode white --tolerance 30 --expansion 1 --trim
  spritecut unwatermark render.png --logo-48 wm48.png --logo-96 wm96.png
  spritecut sprite sheet.png --rows 4 --cols 6 --width 256 --height 256 --out walk.gif
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .background import (
    CleanupOptions,
    MagentaPredicate,
    Selection,
    WhitePredicate,
    default_magenta_cleanup,
    remove_background,
)
from .buffer import load_rgba, save_rgba, trim_margins
from .config import Config, load_config
from .errors import ConfigError, SpritecutError
from .export import ExportOptions, build_zip, create_gif, file_extension, fps_to_delay, split_image
from .geometry import parse_split_line, tile_name
from .sprite import FrameOptions, process_frames, slice_grid
from .watermark import WatermarkEngine, overlay_loader_from_files, remove_flat_watermark


def _pick(cli_value, cfg_value):
    return cfg_value if cli_value is None else cli_value


def _check_range(flag: str, value, lo, hi):
    if not lo <= value <= hi:
        raise ConfigError(f"{flag} must be within {lo}..{hi}, got {value}")
    return value


def _parse_selection(text: str) -> Selection:
    try:
        x, y, w, h = (float(v) for v in text.split(","))
    except ValueError:
        raise ConfigError(f"--selection expects X,Y,W,H percentages, got {text!r}") from None
    return Selection(x, y, w, h)


def _output_path(src: Path, out_dir: Optional[str], suffix: str) -> Path:
    if out_dir:
        return Path(out_dir) / f"{src.stem}.png"
    return src.with_name(f"{src.stem}{suffix}.png")


def _watermark_engine(args, cfg: Config) -> Optional[WatermarkEngine]:
    logo_48 = _pick(args.logo_48, cfg.watermark_48)
    logo_96 = _pick(args.logo_96, cfg.watermark_96)
    if not logo_48 and not logo_96:
        return None
    if not (logo_48 and logo_96):
        raise ConfigError("Both --logo-48 and --logo-96 are required for watermark removal")
    return WatermarkEngine(overlay_loader_from_files({48: logo_48, 96: logo_96})).init()


# ---------------------------
# Sub-commands
# ---------------------------
def cmd_split(args, cfg: Config) -> None:
    src = Path(args.image)
    buf = load_rgba(src)
    lines = [parse_split_line(t) for t in args.line]
    quality = _pick(args.quality, cfg.quality)
    if not 0.0 < quality <= 1.0:
        raise ConfigError(f"--quality must be within (0, 1], got {quality}")
    options = ExportOptions(format=args.format, quality=quality)
    tiles = split_image(buf, lines, options)
    base = args.base_name or src.stem

    if args.zip:
        zip_path = Path(args.zip)
        zip_path.parent.mkdir(parents=True, exist_ok=True)
        zip_path.write_bytes(build_zip(tiles, base, args.format))
        print(f"Tiles: {len(tiles)} | Zip: {zip_path}")
        return

    out_dir = Path(args.out or src.parent / f"{base}_tiles")
    out_dir.mkdir(parents=True, exist_ok=True)
    saved = skipped = 0
    ext = file_extension(args.format)
    for tile in tiles:
        out_path = out_dir / tile_name(base, tile.row, tile.col, ext)
        if out_path.exists() and not args.overwrite:
            skipped += 1
            continue
        out_path.write_bytes(tile.data)
        saved += 1
    print(f"Image: {src} | Lines: {len(lines)} | Tiles: {len(tiles)}")
    print(f"Saved: {saved} | Skipped: {skipped} | Out: {out_dir}")


def cmd_remove_bg(args, cfg: Config) -> None:
    if args.mode == "magenta":
        tolerance = _check_range("--tolerance", _pick(args.tolerance, cfg.magenta_tolerance), 0, 255)
        predicate = MagentaPredicate(tolerance)
        cleanup = default_magenta_cleanup(tolerance)
    else:
        distance = _check_range("--tolerance", _pick(args.tolerance, cfg.color_distance), 0, 255)
        predicate = WhitePredicate(distance)
        cleanup = CleanupOptions()

    expansion = _pick(args.expansion, cfg.expansion)
    if expansion is not None:
        cleanup = replace(cleanup, expansion_pixels=expansion)
    if args.despill_threshold is not None:
        cleanup = replace(cleanup, despill=True, despill_threshold=args.despill_threshold)
    if args.neutralize:
        cleanup = replace(cleanup, neutralize_rgb=True)
    if args.global_replace:
        cleanup = replace(cleanup, use_flood_fill=False)
    selection = _parse_selection(args.selection) if args.selection else None

    for name in args.images:
        src = Path(name)
        buf = load_rgba(src)
        mask = remove_background(buf, predicate, selection=selection, cleanup=cleanup)
        if args.trim:
            buf = trim_margins(buf, padding=args.padding)
        out_path = save_rgba(buf, _output_path(src, args.out, "_nobg"))
        pct = 100.0 * mask.mean() if mask.size else 0.0
        print(f"{src} → {out_path} | cleared {int(mask.sum())} px ({pct:.1f}%)")


def cmd_unwatermark(args, cfg: Config) -> None:
    engine = _watermark_engine(args, cfg)
    flat_alpha = args.flat_alpha
    if engine is None and flat_alpha is None:
        raise ConfigError("Pass --logo-48/--logo-96 (or set them in config) or --flat-alpha")

    for name in args.images:
        src = Path(name)
        buf = load_rgba(src)
        if engine is not None:
            engine.remove_watermark(buf)
        else:
            remove_flat_watermark(buf, flat_alpha)
        out_path = save_rgba(buf, _output_path(src, args.out, "_clean"))
        print(f"{src} → {out_path}")


def _flood_fill_overrides(text: Optional[str]) -> Optional[List[bool]]:
    if not text:
        return None
    return [v.strip() not in ("0", "n", "no", "off", "false") for v in text.split(",")]


def cmd_sprite(args, cfg: Config) -> None:
    if args.fps is not None and args.fps <= 0:
        raise ConfigError(f"--fps must be > 0, got {args.fps}")
    src = Path(args.sheet)
    sheet = load_rgba(src)
    cells = slice_grid(sheet, args.rows, args.cols)
    frames = [cell for row in cells for cell in row]
    if args.frames:
        frames = frames[: args.frames]

    engine = _watermark_engine(args, cfg)
    options = FrameOptions(
        width=args.width,
        height=args.height,
        tolerance=_check_range("--tolerance", _pick(args.tolerance, cfg.magenta_tolerance), 0, 255),
        remove_watermark=engine is not None,
        use_flood_fill=not args.global_replace,
    )
    processed = process_frames(
        frames,
        options,
        watermark_engine=engine,
        per_frame_flood_fill=_flood_fill_overrides(args.per_frame_flood_fill),
    )

    delay = fps_to_delay(args.fps) if args.fps else cfg.gif_delay_ms
    out_path = Path(args.out or src.with_suffix(".gif"))
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(create_gif(processed, delay=delay, loop=not args.no_loop))

    if args.frames_dir:
        d = Path(args.frames_dir)
        for i, frame in enumerate(processed):
            r, c = divmod(i, args.cols)
            save_rgba(frame, d / tile_name(src.stem, r + 1, c + 1, "png"))

    print(f"Sheet: {src} | Grid: {args.rows} rows × {args.cols} cols | Frames: {len(processed)}")
    print(f"Delay: {delay} ms | Watermark: {'yes' if engine else 'no'} | Out: {out_path}")


# ---------------------------
# Main
# ---------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="spritecut",
        description="Slice images along split lines, remove flat backgrounds and reverse watermark overlays.",
    )
    ap.add_argument("--config", default=None, help="JSON config file. (default: ./spritecut.json if present)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("split", help="Cut an image into tiles along split lines.")
    p.add_argument("image")
    p.add_argument("--line", action="append", default=[],
                   help="Split line as h:PERCENT or v:PERCENT. Repeatable.")
    p.add_argument("--format", choices=["png", "jpeg", "webp"], default="png")
    p.add_argument("--quality", type=float, default=None, help="JPEG/WEBP quality 0..1.")
    p.add_argument("--out", default="", help="Output directory for tiles.")
    p.add_argument("--zip", default="", help="Write a ZIP archive here instead of loose files.")
    p.add_argument("--base-name", default="", help="Tile name prefix. (default: image stem)")
    p.add_argument("--overwrite", action="store_true", help="Overwrite existing tiles.")
    p.set_defaults(func=cmd_split)

    p = sub.add_parser("remove-bg", help="Make a white or magenta background transparent.")
    p.add_argument("images", nargs="+")
    p.add_argument("--mode", choices=["white", "magenta"], default="white")
    p.add_argument("--tolerance", type=int, default=None,
                   help="Color distance (white) or hue tolerance (magenta), 0..255.")
    p.add_argument("--expansion", type=int, default=None, help="Extra halo pixels to clear.")
    p.add_argument("--despill-threshold", type=int, default=None,
                   help="Enable despill with this (R+B)/2-G threshold.")
    p.add_argument("--neutralize", action="store_true", help="Zero RGB of transparent pixels.")
    p.add_argument("--global-replace", action="store_true",
                   help="Clear every matching pixel, not only edge-connected ones.")
    p.add_argument("--selection", default="", help="Extra seed rectangle X,Y,W,H in percent.")
    p.add_argument("--trim", action="store_true", help="Trim transparent margins.")
    p.add_argument("--padding", type=int, default=0, help="Padding after trim.")
    p.add_argument("--out", default="", help="Output directory. (default: next to input, *_nobg.png)")
    p.set_defaults(func=cmd_remove_bg)

    p = sub.add_parser("unwatermark", help="Reverse a white watermark overlay.")
    p.add_argument("images", nargs="+")
    p.add_argument("--logo-48", default=None, help="48x48 logo capture over black.")
    p.add_argument("--logo-96", default=None, help="96x96 logo capture over black.")
    p.add_argument("--flat-alpha", type=float, default=None,
                   help="Use a constant alpha over the whole image instead of logo maps.")
    p.add_argument("--out", default="", help="Output directory. (default: next to input, *_clean.png)")
    p.set_defaults(func=cmd_unwatermark)

    p = sub.add_parser("sprite", help="Slice a magenta sprite sheet and build a GIF.")
    p.add_argument("sheet")
    p.add_argument("--rows", type=int, required=True)
    p.add_argument("--cols", type=int, required=True)
    p.add_argument("--frames", type=int, default=0, help="Use only the first N cells. 0 = all.")
    p.add_argument("--width", type=int, default=None, help="Output frame width (center crop).")
    p.add_argument("--height", type=int, default=None, help="Output frame height (center crop).")
    p.add_argument("--tolerance", type=int, default=None)
    p.add_argument("--fps", type=float, default=None)
    p.add_argument("--no-loop", action="store_true")
    p.add_argument("--global-replace", action="store_true")
    p.add_argument("--per-frame-flood-fill", default="",
                   help="Comma list of 1/0 overriding flood fill per frame.")
    p.add_argument("--logo-48", default=None)
    p.add_argument("--logo-96", default=None)
    p.add_argument("--frames-dir", default="", help="Also write processed frames as PNGs here.")
    p.add_argument("--out", default="", help="GIF path. (default: sheet name with .gif)")
    p.set_defaults(func=cmd_sprite)

    return ap


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        cfg = load_config(Path(args.config) if args.config else None)
        args.func(args, cfg)
    except (SpritecutError, ValueError) as e:
        raise SystemExit(f"spritecut: {e}")


if __name__ == "__main__":
    main(sys.argv[1:])
