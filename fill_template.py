#!/usr/bin/env python3
"""
fill_template.py
Tile an image into a wplace template and fill it on the live canvas.

Usage:
  python fill_template.py tile INPUT --coords TX TY PX PY [--out T.json] [--name N] [--previews DIR] --debug
  python fill_template.py run TEMPLATE [--token T] [--mode scan|random] [--sleep] [--protect] --debug

Commands:
  tile : Quantize INPUT to the palette and cut it into marker tiles at the
         given canvas coordinates. Writes template JSON (and optional PNGs).
  run  : Load a template JSON and run the placement loop against the backend
         until the template is complete (or forever with --protect).

Input:
  Any Pillow-readable image. Pixels with alpha 0 are skipped; every other
  pixel is matched to the nearest palette colour.

Auth:
  The placement token comes from --token or the WPLACE_TOKEN environment
  variable. Cookies (e.g. the session cookie) can be passed with --cookie.
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from wplace_fill.analyzer import TemplateAnalyzer
from wplace_fill.client import HttpCanvasClient
from wplace_fill.constants import TILE_SIZE, TOKEN_ENV_VAR
from wplace_fill.core_types import Coords
from wplace_fill.errors import ConfigurationError
from wplace_fill.image_io import load_image_rgba, save_image_rgba
from wplace_fill.palette_data import PALETTE_ITEMS, color_name
from wplace_fill.scheduler import PlacementScheduler, SchedulerSettings
from wplace_fill.template import Template
from wplace_fill.tiler import expected_tile_grid
from wplace_fill.utils import (
    debug_log,
    enable_line_buffered_stdout,
    error,
    format_hms,
    format_seconds_compact,
    key_value_pairs_to_string,
    log,
    print_banner,
    print_config_line,
    warn,
)

# CLI args & small helpers


def _parse_cookie(text: str) -> Tuple[str, str]:
    name, sep, value = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    return name.strip(), value.strip()


def parse_cli_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse CLI arguments.

    Returns:
      argparse.Namespace with `command` set to "tile" or "run" plus that
      command's options, and `debug` for verbose output.
    """
    parser = argparse.ArgumentParser(
        prog="fill_template",
        description="Tile images into wplace templates and fill them on the canvas.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_tile = sub.add_parser("tile", help="Image -> template JSON")
    p_tile.add_argument("src", type=Path, help="Input image")
    p_tile.add_argument(
        "--coords",
        type=int,
        nargs=4,
        required=True,
        metavar=("TX", "TY", "PX", "PY"),
        help="Top-left corner: tile x, tile y, pixel x, pixel y",
    )
    p_tile.add_argument(
        "--out", type=Path, default=None, help="Template JSON (default <stem>_template.json)"
    )
    p_tile.add_argument("--name", default=None, help="Display name (default: file stem)")
    p_tile.add_argument("--author", default="", help="Author id stored in the template")
    p_tile.add_argument(
        "--previews", type=Path, default=None, help="Write each marker tile as PNG here"
    )
    p_tile.add_argument("--tile-size", type=int, default=TILE_SIZE, help=argparse.SUPPRESS)
    p_tile.add_argument("--debug", action="store_true", help="Verbose details")

    p_run = sub.add_parser("run", help="Fill a template on the live canvas")
    p_run.add_argument("template", type=Path, help="Template JSON written by `tile`")
    p_run.add_argument(
        "--token", default=None, help=f"Placement token (default: ${TOKEN_ENV_VAR})"
    )
    p_run.add_argument(
        "--cookie",
        type=_parse_cookie,
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Cookie sent with every request (repeatable)",
    )
    p_run.add_argument(
        "--mode", choices=["scan", "random"], default="scan", help="Pixel order"
    )
    p_run.add_argument(
        "--sleep", action="store_true", help="One long sleep per charge wait"
    )
    p_run.add_argument(
        "--protect", action="store_true", help="Keep watching after completion"
    )
    p_run.add_argument("--debug", action="store_true", help="Verbose details")
    return parser.parse_args(argv)


def colour_usage(template: Template) -> List[Tuple[str, str, int]]:
    """(hex, name, count) per palette colour used by the template, most used first."""
    analysis = TemplateAnalyzer().analyze(template, [])
    counts: Dict[int, int] = {}
    for records in analysis.per_chunk_records.values():
        for rec in records:
            counts[rec.color_id] = counts.get(rec.color_id, 0) + 1
    rows = [
        (PALETTE_ITEMS[cid].hex, color_name(cid), n) for cid, n in counts.items()
    ]
    rows.sort(key=lambda r: -r[2])
    return rows


# Commands


def cmd_tile(args: argparse.Namespace) -> int:
    t_start = time.perf_counter()
    print_banner(args.src.name)

    coords = Coords.from_sequence(args.coords)
    rgba = load_image_rgba(args.src)
    height, width = rgba.shape[0], rgba.shape[1]
    cols, rows = expected_tile_grid(width, height, coords, args.tile_size)
    print_config_line(
        "tile",
        [
            ("Size", f"{width}x{height}"),
            ("Coords", ",".join(str(v) for v in coords.as_tuple())),
            ("Grid", f"{cols}x{rows}"),
        ],
        debug=False,
    )

    def _progress(done: int, total: int) -> None:
        if args.debug:
            debug_log(f"tiled {done}/{total}")

    template = Template.create(
        rgba,
        coords,
        display_name=args.name or args.src.stem,
        author_id=args.author,
        tile_size=args.tile_size,
        progress=_progress,
    )

    out = args.out or args.src.with_name(f"{args.src.stem}_template.json")
    template.save_json(out)

    if args.previews is not None:
        for key, tile in sorted(template.chunked.items()):
            path = save_image_rgba(args.previews / f"{key.replace(',', '_')}.png", tile.image)
            if args.debug:
                debug_log(f"preview {path.name} ({tile.width}x{tile.height})")

    log(f"Wrote {out.name} | tiles={len(template.chunked)} | pixels={template.pixel_count:,}")
    log("Colours used:")
    for hex_code, name, count in colour_usage(template):
        log(f"  {hex_code}  {name}: {count:,}")
    log(f"Total time {format_seconds_compact(time.perf_counter() - t_start)}")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    template = Template.load_json(args.template)
    client = HttpCanvasClient(
        args.token, cookies=dict(args.cookie), debug=args.debug
    )
    if not client.token:
        warn(f"no placement token (use --token or set {TOKEN_ENV_VAR}); placements will fail")
    settings = SchedulerSettings(
        mode=args.mode, sleep_mode=args.sleep, protect=args.protect
    )

    def _progress(remaining: int, eta_s: float) -> None:
        if args.debug:
            debug_log(f"remaining={remaining:,}  eta={format_hms(eta_s)}")

    scheduler = PlacementScheduler(client, settings=settings, progress=_progress)
    print_banner(template.display_name)
    scheduler.enable(template)
    print_config_line("run", settings.as_pairs(), debug=False)

    scheduler.start()
    try:
        while scheduler.running or scheduler.protecting:
            time.sleep(1.0)
    except KeyboardInterrupt:
        log("Interrupted; stopping")
        scheduler.stop()

    log(key_value_pairs_to_string([("State", scheduler.state)]))
    log(scheduler.metrics_line())
    if scheduler.fatal_error is not None:
        error(str(scheduler.fatal_error))
        return 2
    return 0


# Entry point


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    enable_line_buffered_stdout()
    args = parse_cli_args(argv)
    try:
        if args.command == "tile":
            return cmd_tile(args)
        return cmd_run(args)
    except ConfigurationError as exc:
        error(str(exc))
        return 2


if __name__ == "__main__":
    sys.exit(main())
