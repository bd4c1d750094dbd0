# wplace_fill/image_io.py
from __future__ import annotations

import io
from pathlib import Path

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .core_types import U8Image
from .errors import ConfigurationError

"""
Image I/O helpers: load any Pillow-readable file as sRGB RGBA, save RGBA PNGs.
"""

try:
    from PIL import ImageCms  # ICC conversion if profile present
except ImportError:  # pragma: no cover
    ImageCms = None  # type: ignore[assignment]


def _convert_to_srgb_rgba(im: Image.Image) -> Image.Image:
    im = ImageOps.exif_transpose(im)
    icc_bytes = im.info.get("icc_profile")

    if icc_bytes and ImageCms is not None:
        try:
            src_prof = ImageCms.ImageCmsProfile(io.BytesIO(icc_bytes))
            dst_prof = ImageCms.createProfile("sRGB")
            im2 = ImageCms.profileToProfile(
                im,
                src_prof,
                dst_prof,
                renderingIntent=ImageCms.Intent.PERCEPTUAL,
                outputMode="RGBA",
            )
            if im2 is None:
                return im.convert("RGBA")
            return im2
        except (ImageCms.PyCMSError, OSError, ValueError):
            return im.convert("RGBA")

    return im.convert("RGBA")


def load_image_rgba(path: Path) -> U8Image:
    """Load an image file as a uint8 (H,W,4) RGBA array."""
    try:
        with Image.open(path) as im0:
            im = _convert_to_srgb_rgba(im0)
    except (UnidentifiedImageError, FileNotFoundError) as exc:
        raise ConfigurationError(f"cannot read image {path}: {exc}") from exc
    return np.array(im, dtype=np.uint8)


def save_image_rgba(path: Path, rgba: U8Image) -> Path:
    """Write a uint8 (H,W,4) array as PNG, forcing the .png suffix."""
    if path.suffix.lower() != ".png":
        path = path.with_suffix(".png")
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(rgba, dtype=np.uint8)).save(path)
    return path


__all__ = ["load_image_rgba", "save_image_rgba"]
