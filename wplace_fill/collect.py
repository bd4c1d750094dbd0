# wplace_fill/collect.py
from __future__ import annotations

"""
Remote-state diff and batch selection.

For every chunk holding owned template pixels, fetch the live chunk image,
quantize the pixels under the template and keep the ones whose colour id
differs and that were not already submitted in this run. The survivors are
ordered border-first (scan or shuffled inside each group), cut to the quota and
grouped into one PlacementBatch per chunk.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

import numpy as np

from .analyzer import AnalysisCache
from .client import CanvasClient
from .constants import COLLECT_YIELD_EVERY
from .core_types import (
    ChunkCoord,
    PixelKey,
    PlacedPixel,
    PlacementBatch,
    PlacementMode,
    ProgressHook,
    TemplatePixelRecord,
    U8Image,
)
from .errors import TransientNetworkError
from .quantize import color_ids_from_rgba


@dataclass
class CollectResult:
    """Batches for this cycle plus the untruncated amount of work left."""

    batches: List[PlacementBatch] = field(default_factory=list)
    remaining: int = 0
    border: int = 0
    interior: int = 0

    @property
    def batch_size(self) -> int:
        return sum(len(b) for b in self.batches)


def remote_color_ids(
    chunk_image: Optional[U8Image], records: List[TemplatePixelRecord], tile_size: int
) -> np.ndarray:
    """
    Palette ids currently on the canvas under each record.

    A missing chunk, or one with unexpected dimensions, reads as transparent
    everywhere.
    """
    out = np.zeros((len(records),), dtype=np.int16)
    if chunk_image is None or not records:
        return out
    if chunk_image.ndim != 3 or chunk_image.shape[:2] != (tile_size, tile_size):
        return out
    xs = np.fromiter((r.logical_x for r in records), dtype=np.int64, count=len(records))
    ys = np.fromiter((r.logical_y for r in records), dtype=np.int64, count=len(records))
    return color_ids_from_rgba(chunk_image[ys, xs])


def order_pixels(
    pixels: List[TemplatePixelRecord],
    mode: PlacementMode,
    tile_size: int,
    rng: np.random.Generator,
) -> List[TemplatePixelRecord]:
    """Scan order (global y, then x) or a uniform shuffle."""
    if mode == "scan":
        return sorted(
            pixels,
            key=lambda r: (
                r.chunk_y * tile_size + r.logical_y,
                r.chunk_x * tile_size + r.logical_x,
            ),
        )
    if mode == "random":
        return [pixels[i] for i in rng.permutation(len(pixels)).tolist()]
    raise ValueError(f"unknown placement mode: {mode!r}")


def group_by_chunk(
    pixels: List[TemplatePixelRecord], limit: int
) -> List[PlacementBatch]:
    """Take the first `limit` pixels and group them per chunk in order of appearance."""
    groups: Dict[ChunkCoord, List[PlacedPixel]] = {}
    for rec in pixels[: max(0, limit)]:
        groups.setdefault((rec.chunk_x, rec.chunk_y), []).append(
            (rec.logical_x, rec.logical_y, rec.color_id)
        )
    return [PlacementBatch(chunk=c, pixels=tuple(p)) for c, p in groups.items()]


def collect_pixels(
    analysis: AnalysisCache,
    client: CanvasClient,
    submitted: Set[PixelKey],
    count: int,
    mode: PlacementMode = "scan",
    rng: Optional[np.random.Generator] = None,
    progress: Optional[ProgressHook] = None,
    on_fetch_error: Optional[Callable[[ChunkCoord, Exception], None]] = None,
) -> CollectResult:
    """Diff the template against the live canvas and pick up to `count` pixels."""
    rng = rng if rng is not None else np.random.default_rng()
    tile_size = analysis.tile_size
    state = analysis.chunk_state_cache
    state.clear()

    chunk_keys = [
        k for k in sorted(analysis.per_chunk_records)
        if any(r.owned_color for r in analysis.per_chunk_records[k])
    ]

    needing: List[TemplatePixelRecord] = []
    for done, tile_key in enumerate(chunk_keys, start=1):
        owned = [r for r in analysis.per_chunk_records[tile_key] if r.owned_color]
        chunk = (owned[0].chunk_x, owned[0].chunk_y)

        if chunk not in state:
            try:
                state[chunk] = client.fetch_chunk(*chunk)
            except (TransientNetworkError, OSError, ValueError) as exc:
                state[chunk] = None
                if on_fetch_error is not None:
                    on_fetch_error(chunk, exc)

        current = remote_color_ids(state[chunk], owned, tile_size)
        for rec, cur in zip(owned, current.tolist()):
            if cur != rec.color_id and rec.key not in submitted:
                needing.append(rec)

        if progress is not None and done % COLLECT_YIELD_EVERY == 0:
            progress(done, len(chunk_keys))

    border = [r for r in needing if analysis.is_border(r)]
    interior = [r for r in needing if not analysis.is_border(r)]
    ordered = order_pixels(border, mode, tile_size, rng) + order_pixels(
        interior, mode, tile_size, rng
    )

    return CollectResult(
        batches=group_by_chunk(ordered, count),
        remaining=len(needing),
        border=len(border),
        interior=len(interior),
    )


__all__ = [
    "CollectResult",
    "remote_color_ids",
    "order_pixels",
    "group_by_chunk",
    "collect_pixels",
]
