"""Shared fakes: an in-memory canvas client and a recording sleeper."""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from wplace_fill.client import CanvasClient
from wplace_fill.core_types import (
    Charges,
    ChunkCoord,
    Coords,
    PlacementBatch,
    PlacementResponse,
    UserState,
)
from wplace_fill.palette_data import PALETTE_RGB
from wplace_fill.template import Template

TEST_TILE = 8


def rgba(color_id: int, alpha: int = 255) -> Tuple[int, int, int, int]:
    r, g, b = (int(v) for v in PALETTE_RGB[color_id])
    return (r, g, b, alpha)


def image_of(rows: Sequence[Sequence[int]]) -> np.ndarray:
    """Build an RGBA image from a grid of palette ids; 0 means transparent."""
    h, w = len(rows), len(rows[0])
    out = np.zeros((h, w, 4), dtype=np.uint8)
    for y, row in enumerate(rows):
        for x, cid in enumerate(row):
            if cid:
                out[y, x] = rgba(cid)
    return out


def make_template(
    rows: Sequence[Sequence[int]],
    coords: Tuple[int, int, int, int] = (0, 0, 0, 0),
    tile_size: int = TEST_TILE,
) -> Template:
    return Template.create(
        image_of(rows), Coords(*coords), display_name="test", tile_size=tile_size
    )


class FakeCanvasClient(CanvasClient):
    """
    In-memory canvas. Successful placements are painted into the chunk images
    so the next diff sees them.
    """

    def __init__(
        self,
        tile_size: int = TEST_TILE,
        charges: Optional[Charges] = None,
        bitmap: int = 0,
        responses: Optional[List[int]] = None,
    ) -> None:
        self.tile_size = tile_size
        self.chunks: Dict[ChunkCoord, object] = {}
        self.charges = charges if charges is not None else Charges(10.0, 10, 30_000)
        self.user_states: List[UserState] = []
        self.bitmap = bitmap
        self.responses = list(responses or [])
        self.submitted: List[PlacementBatch] = []
        self.fetches: List[ChunkCoord] = []
        self.surface_opens = 0
        self.user_queries = 0

    def blank(self, chunk: ChunkCoord) -> np.ndarray:
        img = np.zeros((self.tile_size, self.tile_size, 4), dtype=np.uint8)
        self.chunks[chunk] = img
        return img

    def fetch_chunk(self, chunk_x: int, chunk_y: int):
        self.fetches.append((chunk_x, chunk_y))
        value = self.chunks.get((chunk_x, chunk_y))
        if isinstance(value, Exception):
            raise value
        return None if value is None else value.copy()

    def open_placement_surface(self, cancel=None) -> None:
        self.surface_opens += 1

    def submit_placement(self, batch: PlacementBatch) -> PlacementResponse:
        self.submitted.append(batch)
        status = self.responses.pop(0) if self.responses else 200
        if 200 <= status < 300:
            img = self.chunks.get(batch.chunk)
            if not isinstance(img, np.ndarray):
                img = self.blank(batch.chunk)
            for x, y, cid in batch.pixels:
                img[y, x] = rgba(cid)
        return PlacementResponse(status=status)

    def query_user_state(self) -> UserState:
        self.user_queries += 1
        if self.user_states:
            state = self.user_states.pop(0)
            if state.charges is not None:
                self.charges = state.charges
            return state
        return UserState(charges=self.charges, extra_colors_bitmap=self.bitmap)


class RecordingSleeper:
    """Records requested waits; optionally calls a hook after each one."""

    def __init__(self, hook=None) -> None:
        self.calls: List[float] = []
        self.hook = hook

    def __call__(self, seconds: float) -> bool:
        self.calls.append(seconds)
        if self.hook is not None:
            return bool(self.hook(len(self.calls), seconds))
        return False


@pytest.fixture
def statuses() -> List[str]:
    return []
