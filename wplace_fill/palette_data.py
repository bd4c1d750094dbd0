# wplace_fill/palette_data.py
from __future__ import annotations

"""
Palette definitions and builders.

Exports:
  PALETTE: list[tuple[int, str, str]]  # [(id, hex, name), ...]
  build_palette(entries=PALETTE)
    -> (items: list[PaletteItem], pal_rgb: uint8 [P,3])
  PALETTE_ITEMS, PALETTE_RGB: the validated canvas palette
  owned_colors_from_bitmap(extra_colors_bitmap) -> list[int]
  color_name(color_id) -> str
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .constants import BASE_OWNED_COUNT, PALETTE, PALETTE_SIZE
from .core_types import RGBTuple, U8Image, hex_to_rgb, rgb_to_hex
from .errors import ConfigurationError


@dataclass(frozen=True)
class PaletteItem:
    """Palette entry addressed by its canvas colour id."""

    color_id: int
    rgb: RGBTuple
    name: str

    @property
    def hex(self) -> str:
        return rgb_to_hex(self.rgb)


def build_palette(
    entries: Sequence[Tuple[int, str, str]] = PALETTE,
) -> Tuple[List[PaletteItem], U8Image]:
    """
    Validate and convert (id, hex, name) rows into:
      items: list[PaletteItem], items[i].color_id == i
      pal_rgb: uint8 array [P,3], row i is the colour of id i

    Ids must run 0..P-1 with no gaps or repeats.
    """
    if not entries:
        raise ConfigurationError("palette is empty")

    ids = [int(e[0]) for e in entries]
    if sorted(ids) != list(range(len(ids))):
        raise ConfigurationError(f"palette ids must be contiguous from 0, got {ids}")

    ordered = sorted(entries, key=lambda e: int(e[0]))
    items: List[PaletteItem] = []
    for color_id, hx, name in ordered:
        try:
            rgb = hex_to_rgb(hx)
        except ValueError as exc:
            raise ConfigurationError(f"bad colour for palette id {color_id}: {hx}") from exc
        items.append(PaletteItem(color_id=int(color_id), rgb=rgb, name=name))

    pal_rgb: U8Image = np.array([it.rgb for it in items], dtype=np.uint8)
    return items, pal_rgb


PALETTE_ITEMS, PALETTE_RGB = build_palette()
if len(PALETTE_ITEMS) != PALETTE_SIZE:
    raise ConfigurationError(
        f"canvas palette must have {PALETTE_SIZE} entries, got {len(PALETTE_ITEMS)}"
    )


def owned_colors_from_bitmap(extra_colors_bitmap: int) -> List[int]:
    """
    Colour ids the account may place.

    Ids 0..31 are always owned. Bit i of extra_colors_bitmap marks id 32+i.
    """
    owned = list(range(BASE_OWNED_COUNT))
    bitmap = int(extra_colors_bitmap or 0)
    if bitmap > 0:
        for color_id in range(BASE_OWNED_COUNT, PALETTE_SIZE):
            if bitmap & (1 << (color_id - BASE_OWNED_COUNT)):
                owned.append(color_id)
    return sorted(owned)


def color_name(color_id: int) -> str:
    """Human-readable palette name, '?' for unknown ids."""
    if 0 <= color_id < len(PALETTE_ITEMS):
        return PALETTE_ITEMS[color_id].name
    return "?"


__all__ = [
    "PALETTE",
    "PaletteItem",
    "build_palette",
    "PALETTE_ITEMS",
    "PALETTE_RGB",
    "owned_colors_from_bitmap",
    "color_name",
]
