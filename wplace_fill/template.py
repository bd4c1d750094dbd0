# wplace_fill/template.py
from __future__ import annotations

"""
Template value object and its persisted form.

A Template holds the marker tiles produced by the tiler plus the metadata the
scheduler and the store need. The persisted form maps each tile key to the
base64 of its PNG bytes, alongside display name, sort id, author, source url,
coords, tile size and pixel count.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import TILE_SIZE
from .core_types import Coords, MarkerTile, ProgressHook, TileKey, U8Image
from .errors import ConfigurationError
from .tiler import create_template_tiles, parse_tile_key
from .utils import base64_to_bytes, bytes_to_base64, decode_png_rgba


@dataclass
class Template:
    """One template placed at `coords` on the canvas."""

    coords: Coords
    display_name: str = "My template"
    sort_id: int = 0
    author_id: str = ""
    url: str = ""
    tile_size: int = TILE_SIZE
    chunked: Dict[TileKey, MarkerTile] = field(default_factory=dict)
    pixel_count: int = 0

    @classmethod
    def create(
        cls,
        image: U8Image,
        coords: Coords,
        *,
        display_name: str = "My template",
        sort_id: int = 0,
        author_id: str = "",
        url: str = "",
        tile_size: int = TILE_SIZE,
        progress: Optional[ProgressHook] = None,
    ) -> "Template":
        """Tile `image` at `coords` and return the finished template."""
        chunked, pixel_count = create_template_tiles(
            image, coords, tile_size=tile_size, progress=progress
        )
        return cls(
            coords=coords,
            display_name=display_name,
            sort_id=sort_id,
            author_id=author_id,
            url=url,
            tile_size=tile_size,
            chunked=chunked,
            pixel_count=pixel_count,
        )

    @property
    def tile_keys(self) -> List[TileKey]:
        return sorted(self.chunked)

    # Persisted form

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.display_name,
            "sortID": self.sort_id,
            "authorID": self.author_id,
            "url": self.url,
            "coords": list(self.coords.as_tuple()),
            "tileSize": self.tile_size,
            "pixelCount": self.pixel_count,
            "tiles": {k: bytes_to_base64(t.png) for k, t in sorted(self.chunked.items())},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Template":
        try:
            coords = Coords.from_sequence(data["coords"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"template has malformed coords: {exc}") from exc

        tiles = data.get("tiles") or {}
        chunked: Dict[TileKey, MarkerTile] = {}
        for key, encoded in tiles.items():
            parse_tile_key(key)
            try:
                png = base64_to_bytes(encoded)
                image = decode_png_rgba(png)
            except (ValueError, OSError) as exc:
                raise ConfigurationError(f"tile {key} cannot be decoded: {exc}") from exc
            chunked[key] = MarkerTile(image=image, png=png)

        return cls(
            coords=coords,
            display_name=str(data.get("name", "My template")),
            sort_id=int(data.get("sortID", 0)),
            author_id=str(data.get("authorID", "")),
            url=str(data.get("url", "")),
            tile_size=int(data.get("tileSize", TILE_SIZE)),
            chunked=chunked,
            pixel_count=int(data.get("pixelCount", 0)),
        )

    def save_json(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(self.to_dict(), fh, indent=2)
        return path

    @classmethod
    def load_json(cls, path: Path) -> "Template":
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"cannot read template {path}: {exc}") from exc
        return cls.from_dict(data)


__all__ = ["Template"]
