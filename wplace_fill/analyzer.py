# wplace_fill/analyzer.py
from __future__ import annotations

"""
Template analysis.

Turns marker tiles into per-chunk pixel records (logical position, palette id,
ownership) and classifies every template pixel as border or interior by 8-way
adjacency. The result is memoized on (tile count, sorted owned colours); the
remote chunk images kept alongside are refreshed by the collector every cycle.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np

from .constants import ANALYSIS_YIELD_EVERY, MARKER_SCALE
from .core_types import (
    ChunkCoord,
    GlobalXY,
    ProgressHook,
    TemplatePixelRecord,
    TileKey,
    U8Image,
)
from .errors import ConfigurationError
from .quantize import color_ids_from_rgba
from .template import Template
from .tiler import parse_tile_key

CacheKey = Tuple[int, Tuple[int, ...]]

_NEIGHBOUR_OFFSETS = (
    (-1, -1), (0, -1), (1, -1),
    (-1, 0), (1, 0),
    (-1, 1), (0, 1), (1, 1),
)


@dataclass
class AnalysisCache:
    """Everything the collector needs about one template + owned-colour set."""

    cache_key: CacheKey
    tile_size: int
    all_pixel_keys: Set[GlobalXY]
    per_chunk_records: Dict[TileKey, List[TemplatePixelRecord]]
    border_keys: Set[GlobalXY]
    chunk_state_cache: Dict[ChunkCoord, Optional[U8Image]] = field(default_factory=dict)

    def is_border(self, record: TemplatePixelRecord) -> bool:
        return record.global_xy(self.tile_size) in self.border_keys

    @property
    def pixel_total(self) -> int:
        return len(self.all_pixel_keys)

    @property
    def owned_total(self) -> int:
        return sum(
            1 for recs in self.per_chunk_records.values() for r in recs if r.owned_color
        )


def border_pixels(keys: Iterable[GlobalXY]) -> Set[GlobalXY]:
    """
    Pixels with at least one of their 8 neighbours missing from `keys`.

    Works on a padded occupancy grid over the bounding box, so it is a pure
    in-memory adjacency test.
    """
    pts = np.array(list(keys), dtype=np.int64).reshape(-1, 2)
    if pts.shape[0] == 0:
        return set()
    min_x, min_y = pts[:, 0].min(), pts[:, 1].min()
    w = int(pts[:, 0].max() - min_x) + 1
    h = int(pts[:, 1].max() - min_y) + 1

    occ = np.zeros((h + 2, w + 2), dtype=bool)
    occ[pts[:, 1] - min_y + 1, pts[:, 0] - min_x + 1] = True

    full = np.ones((h, w), dtype=bool)
    for dx, dy in _NEIGHBOUR_OFFSETS:
        full &= occ[1 + dy : 1 + dy + h, 1 + dx : 1 + dx + w]

    border = occ[1 : 1 + h, 1 : 1 + w] & ~full
    ys, xs = np.nonzero(border)
    return set(zip((xs + min_x).tolist(), (ys + min_y).tolist()))


class TemplateAnalyzer:
    """Memoizing analyzer; counts cache hits and misses for the metrics line."""

    def __init__(self, progress: Optional[ProgressHook] = None) -> None:
        self.progress = progress
        self.hits = 0
        self.misses = 0
        self.last_analysis_s = 0.0
        self._cache: Optional[AnalysisCache] = None

    @staticmethod
    def cache_key(template: Template, owned_colors: Iterable[int]) -> CacheKey:
        return (len(template.chunked), tuple(sorted(set(int(c) for c in owned_colors))))

    @property
    def cached(self) -> Optional[AnalysisCache]:
        return self._cache

    def reset(self) -> None:
        """Drop the cached analysis. Counters survive for metrics."""
        self._cache = None

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total) if total else 0.0

    def analyze(self, template: Template, owned_colors: Iterable[int]) -> AnalysisCache:
        """Return the cached analysis when the key matches, else recompute it."""
        if not template.chunked:
            raise ConfigurationError("template has no pixel data (no chunks)")

        owned = list(owned_colors)
        key = self.cache_key(template, owned)
        if self._cache is not None and self._cache.cache_key == key:
            self.hits += 1
            return self._cache

        self.misses += 1
        t0 = time.perf_counter()
        self._cache = self._recompute(template, set(key[1]), key)
        self.last_analysis_s = time.perf_counter() - t0
        return self._cache

    def _recompute(
        self, template: Template, owned: Set[int], key: CacheKey
    ) -> AnalysisCache:
        tile_size = template.tile_size
        centre = MARKER_SCALE // 2
        keys = template.tile_keys
        all_pixel_keys: Set[GlobalXY] = set()
        per_chunk: Dict[TileKey, List[TemplatePixelRecord]] = {}

        for done, tile_key in enumerate(keys, start=1):
            chunk_x, chunk_y, off_x, off_y = parse_tile_key(tile_key)
            image = template.chunked[tile_key].image
            samples = image[centre::MARKER_SCALE, centre::MARKER_SCALE]
            ys, xs = np.nonzero(samples[..., 3] > 0)
            ids = color_ids_from_rgba(samples[ys, xs]).tolist()

            records: List[TemplatePixelRecord] = []
            for x, y, color_id in zip(xs.tolist(), ys.tolist(), ids):
                lx = off_x + x
                ly = off_y + y
                records.append(
                    TemplatePixelRecord(
                        chunk_x,
                        chunk_y,
                        lx,
                        ly,
                        color_id,
                        not owned or color_id in owned,
                    )
                )
                all_pixel_keys.add((chunk_x * tile_size + lx, chunk_y * tile_size + ly))
            per_chunk[tile_key] = records

            if self.progress is not None and (
                done % ANALYSIS_YIELD_EVERY == 0 or done == len(keys)
            ):
                self.progress(done, len(keys))

        return AnalysisCache(
            cache_key=key,
            tile_size=tile_size,
            all_pixel_keys=all_pixel_keys,
            per_chunk_records=per_chunk,
            border_keys=border_pixels(all_pixel_keys),
        )


__all__ = ["AnalysisCache", "TemplateAnalyzer", "border_pixels"]
