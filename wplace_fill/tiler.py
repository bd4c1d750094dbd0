# wplace_fill/tiler.py
from __future__ import annotations

"""
Template tiler.

Cuts a source RGBA image into tile-aligned segments on the canvas grid and turns
each segment into a marker tile: upscaled 3x with nearest-neighbour, then every
pixel except the centre of each 3x3 block is made transparent. Centre opacity
follows the source pixel, so one marker pixel stands for one canvas cell.

Exports:
  format_tile_key(tile_x, tile_y, pixel_x, pixel_y) -> "tttt,tttt,ppp,ppp"
  parse_tile_key(key) -> (tile_x, tile_y, pixel_x, pixel_y)
  validate_coords(coords, tile_size)
  expected_tile_grid(width, height, coords, tile_size) -> (cols, rows)
  marker_tile_from_segment(segment) -> uint8 [3h,3w,4]
  create_template_tiles(image, coords, tile_size, progress) -> (chunked, pixel_count)
"""

from typing import Dict, Optional, Tuple

import numpy as np
from PIL import Image

from .constants import MARKER_SCALE, TILE_SIZE, TILER_YIELD_EVERY
from .core_types import (
    Coords,
    MarkerTile,
    ProgressHook,
    TileKey,
    U8Image,
    assert_u8_image_rgba,
)
from .errors import ConfigurationError
from .utils import encode_png


def format_tile_key(tile_x: int, tile_y: int, pixel_x: int, pixel_y: int) -> TileKey:
    """Canonical tile key: tile coords padded to 4 digits, pixel offset to 3."""
    return f"{tile_x:04d},{tile_y:04d},{pixel_x:03d},{pixel_y:03d}"


def parse_tile_key(key: str) -> Tuple[int, int, int, int]:
    """Inverse of format_tile_key. Raises ConfigurationError on malformed keys."""
    parts = key.split(",")
    if len(parts) != 4:
        raise ConfigurationError(f"malformed tile key: {key!r}")
    try:
        tx, ty, px, py = (int(p) for p in parts)
    except ValueError:
        raise ConfigurationError(f"malformed tile key: {key!r}") from None
    if min(tx, ty, px, py) < 0:
        raise ConfigurationError(f"negative field in tile key: {key!r}")
    return tx, ty, px, py


def validate_coords(coords: Coords, tile_size: int = TILE_SIZE) -> None:
    """Tile coords must be >= 0 and the pixel offset must lie inside one tile."""
    if tile_size <= 0:
        raise ConfigurationError(f"tile size must be positive, got {tile_size}")
    if coords.tile_x < 0 or coords.tile_y < 0:
        raise ConfigurationError(f"tile coordinates must be >= 0: {coords.as_tuple()}")
    if not (0 <= coords.pixel_x < tile_size and 0 <= coords.pixel_y < tile_size):
        raise ConfigurationError(
            f"pixel offset must be in [0, {tile_size}): {coords.as_tuple()}"
        )


def expected_tile_grid(
    width: int, height: int, coords: Coords, tile_size: int = TILE_SIZE
) -> Tuple[int, int]:
    """Number of tile columns and rows an image of this size touches."""
    cols = -(-(coords.pixel_x + width) // tile_size) - coords.pixel_x // tile_size
    rows = -(-(coords.pixel_y + height) // tile_size) - coords.pixel_y // tile_size
    return cols, rows


def marker_tile_from_segment(segment: U8Image, scale: int = MARKER_SCALE) -> U8Image:
    """
    Upscale an RGBA segment by `scale` (nearest) and keep only block centres.

    Centre alpha is copied from the source pixel so opacity never depends on
    the resampler.
    """
    h, w = segment.shape[:2]
    seg = np.ascontiguousarray(segment, dtype=np.uint8)
    up = np.array(
        Image.fromarray(seg).resize((w * scale, h * scale), Image.Resampling.NEAREST),
        dtype=np.uint8,
    )
    c = scale // 2
    centre_alpha = seg[..., 3].copy()
    up[..., 3] = 0
    up[c::scale, c::scale, 3] = centre_alpha
    return up


def create_template_tiles(
    image: U8Image,
    coords: Coords,
    tile_size: int = TILE_SIZE,
    progress: Optional[ProgressHook] = None,
) -> Tuple[Dict[TileKey, MarkerTile], int]:
    """
    Split `image` into marker tiles aligned to the canvas tile grid.

    Returns:
      chunked: tile key -> MarkerTile (RGBA array + PNG bytes)
      pixel_count: source pixels with alpha > 0
    """
    image = assert_u8_image_rgba(np.asarray(image))
    validate_coords(coords, tile_size)
    height, width = image.shape[:2]
    if width == 0 or height == 0:
        raise ConfigurationError("source image is empty")

    cols, rows = expected_tile_grid(width, height, coords, tile_size)
    total = cols * rows
    chunked: Dict[TileKey, MarkerTile] = {}
    pixel_count = 0
    done = 0

    pos_y = coords.pixel_y
    while pos_y < height + coords.pixel_y:
        draw_h = min(tile_size - (pos_y % tile_size), height - (pos_y - coords.pixel_y))
        src_y = pos_y - coords.pixel_y

        pos_x = coords.pixel_x
        while pos_x < width + coords.pixel_x:
            draw_w = min(
                tile_size - (pos_x % tile_size), width - (pos_x - coords.pixel_x)
            )
            src_x = pos_x - coords.pixel_x

            segment = image[src_y : src_y + draw_h, src_x : src_x + draw_w]
            marker = marker_tile_from_segment(segment)
            pixel_count += int(np.count_nonzero(segment[..., 3]))

            key = format_tile_key(
                coords.tile_x + pos_x // tile_size,
                coords.tile_y + pos_y // tile_size,
                pos_x % tile_size,
                pos_y % tile_size,
            )
            chunked[key] = MarkerTile(image=marker, png=encode_png(marker))

            done += 1
            if progress is not None and (done % TILER_YIELD_EVERY == 0 or done == total):
                progress(done, total)
            pos_x += draw_w

        pos_y += draw_h

    return chunked, pixel_count


__all__ = [
    "format_tile_key",
    "parse_tile_key",
    "validate_coords",
    "expected_tile_grid",
    "marker_tile_from_segment",
    "create_template_tiles",
]
