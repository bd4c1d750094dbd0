# wplace_fill/quantize.py
from __future__ import annotations

"""
Nearest-colour matching against the canvas palette.

Distance is plain Euclidean over RGB. Alpha only matters when it is 0, which
always maps to the transparent id. Ties go to the lowest palette id, both in
the scalar and the vectorized path (np.argmin keeps the first minimum).
"""

import numpy as np

from .constants import TRANSPARENT_ID
from .core_types import U8Image
from .palette_data import PALETTE_RGB

# Opaque candidates only: row i is palette id i + 1.
_OPAQUE_RGB = PALETTE_RGB[1:].astype(np.int32)
_OPAQUE_RGB_LIST = [tuple(int(v) for v in row) for row in _OPAQUE_RGB.tolist()]

_CHUNK = 200_000


def color_id_from_rgba(r: int, g: int, b: int, a: int) -> int:
    """
    Palette id nearest to one RGBA sample.

    Reference form of the matching rule: strict `<` over ascending ids keeps
    the lowest id on ties. color_ids_from_rgba must agree with it sample for
    sample; the tests check the two against each other.
    """
    if a == 0:
        return TRANSPARENT_ID
    best_id = 1
    best_d2 = None
    for i, (pr, pg, pb) in enumerate(_OPAQUE_RGB_LIST):
        d2 = (r - pr) * (r - pr) + (g - pg) * (g - pg) + (b - pb) * (b - pb)
        if best_d2 is None or d2 < best_d2:
            best_d2 = d2
            best_id = i + 1
    return best_id


def color_ids_from_rgba(samples: U8Image) -> np.ndarray:
    """
    Vectorized color_id_from_rgba.

    samples: uint8 [..., 4]
    Returns: int16 [...] palette ids
    """
    arr = np.asarray(samples)
    if arr.shape[-1] != 4:
        raise ValueError(f"expected RGBA samples, got shape {arr.shape}")
    lead = arr.shape[:-1]
    flat = arr.reshape(-1, 4)
    out = np.zeros((flat.shape[0],), dtype=np.int16)

    visible = np.nonzero(flat[:, 3] != 0)[0]
    for i in range(0, visible.shape[0], _CHUNK):
        sel = visible[i : i + _CHUNK]
        pts = flat[sel, :3].astype(np.int32)
        diff = pts[:, None, :] - _OPAQUE_RGB[None, :, :]
        d2 = np.sum(diff * diff, axis=2)
        out[sel] = (np.argmin(d2, axis=1) + 1).astype(np.int16)

    return out.reshape(lead)


__all__ = ["color_id_from_rgba", "color_ids_from_rgba"]
