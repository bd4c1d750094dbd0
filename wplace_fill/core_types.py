# wplace_fill/core_types.py
from __future__ import annotations

"""
Core type aliases, small value objects, and lightweight helpers.
"""

import math
from dataclasses import dataclass
from typing import Callable, Literal, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

# Basic aliases

RGBTuple = Tuple[int, int, int]
HexStr = str

U8Image = NDArray[np.uint8]  # (H, W, 4) RGBA

TileKey = str  # "tttt,tttt,ppp,ppp"
ChunkCoord = Tuple[int, int]
PixelKey = Tuple[int, int, int, int]  # (chunk_x, chunk_y, logical_x, logical_y)
GlobalXY = Tuple[int, int]
PlacedPixel = Tuple[int, int, int]  # (logical_x, logical_y, color_id)

PlacementMode = Literal["scan", "random"]
SchedulerState = Literal[
    "idle",
    "running",
    "collecting",
    "waiting_for_charges",
    "submitting",
    "complete",
    "protecting",
]

StatusSink = Callable[[str], None]
ProgressHook = Callable[[int, int], None]  # (done, total)

# Value objects


@dataclass(frozen=True)
class Coords:
    """Top-left corner of a template: tile (x, y) and pixel offset inside it."""

    tile_x: int
    tile_y: int
    pixel_x: int
    pixel_y: int

    @classmethod
    def from_sequence(cls, values: Sequence[int]) -> "Coords":
        if len(values) != 4:
            raise ValueError("coords need exactly 4 values (tileX, tileY, pixelX, pixelY)")
        return cls(int(values[0]), int(values[1]), int(values[2]), int(values[3]))

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.tile_x, self.tile_y, self.pixel_x, self.pixel_y)


@dataclass(frozen=True)
class Charges:
    """Placement quota snapshot. count may be fractional (partial accrual)."""

    count: float
    max: int
    cooldown_ms: int

    @property
    def whole(self) -> int:
        return int(math.floor(self.count))

    @property
    def fraction(self) -> float:
        return float(self.count) - self.whole

    @property
    def full(self) -> bool:
        return self.count >= self.max


@dataclass(frozen=True)
class UserState:
    """Result of the user/quota query."""

    charges: Optional[Charges]
    extra_colors_bitmap: int = 0


class TemplatePixelRecord(NamedTuple):
    """One opaque marker pixel of a template, in chunk-local logical coordinates."""

    chunk_x: int
    chunk_y: int
    logical_x: int
    logical_y: int
    color_id: int
    owned_color: bool

    @property
    def key(self) -> PixelKey:
        return (self.chunk_x, self.chunk_y, self.logical_x, self.logical_y)

    def global_xy(self, tile_size: int) -> GlobalXY:
        return (
            self.chunk_x * tile_size + self.logical_x,
            self.chunk_y * tile_size + self.logical_y,
        )


@dataclass(frozen=True, eq=False)
class MarkerTile:
    """3x-upscaled tile where only block centres may be opaque."""

    image: U8Image  # (3h, 3w, 4)
    png: bytes

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


@dataclass(frozen=True)
class PlacementBatch:
    """Pixels to place inside one chunk."""

    chunk: ChunkCoord
    pixels: Tuple[PlacedPixel, ...]

    def __len__(self) -> int:
        return len(self.pixels)

    @property
    def colors(self) -> list:
        return [c for _x, _y, c in self.pixels]

    @property
    def coords(self) -> list:
        flat: list = []
        for x, y, _c in self.pixels:
            flat.extend((x, y))
        return flat

    def keys(self) -> list:
        cx, cy = self.chunk
        return [(cx, cy, x, y) for x, y, _c in self.pixels]


@dataclass(frozen=True)
class PlacementResponse:
    """HTTP-ish outcome of a placement request."""

    status: int
    body: str = ""

    @property
    def rate_limited(self) -> bool:
        return self.status == 429

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


# Small helpers


def rgb_to_hex(rgb: RGBTuple) -> HexStr:
    """RGB tuple to lowercase hex string '#rrggbb'."""
    return f"#{rgb[0]:02x}{rgb[1]:02x}{rgb[2]:02x}"


def hex_to_rgb(hex_str: str) -> RGBTuple:
    """Parse '#rgb' or '#rrggbb' (case-insensitive) into an RGB tuple."""
    s = hex_str.strip().lower()
    if not s.startswith("#"):
        raise ValueError("hex must start with '#'")
    if len(s) == 4:
        r, g, b = s[1], s[2], s[3]
        s = f"#{r}{r}{g}{g}{b}{b}"
    if len(s) != 7:
        raise ValueError("hex must be '#rrggbb' or '#rgb'")
    return (int(s[1:3], 16), int(s[3:5], 16), int(s[5:7], 16))


def assert_u8_image_rgba(image: np.ndarray) -> U8Image:
    """Validate a uint8 (H,W,4) image and return it typed as U8Image."""
    if image.dtype != np.uint8 or image.ndim != 3 or image.shape[-1] != 4:
        raise TypeError("expected uint8 (H,W,4) RGBA image")
    return image  # type: ignore[return-value]


__all__ = [
    # aliases / types
    "RGBTuple",
    "HexStr",
    "U8Image",
    "TileKey",
    "ChunkCoord",
    "PixelKey",
    "GlobalXY",
    "PlacedPixel",
    "PlacementMode",
    "SchedulerState",
    "StatusSink",
    "ProgressHook",
    # value objects
    "Coords",
    "Charges",
    "UserState",
    "TemplatePixelRecord",
    "MarkerTile",
    "PlacementBatch",
    "PlacementResponse",
    # helpers
    "rgb_to_hex",
    "hex_to_rgb",
    "assert_u8_image_rgba",
]
