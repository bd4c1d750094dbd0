"""
Global palette, grid geometry and scheduler tunables used across the project.

- PALETTE (id, hex, name), TRANSPARENT_ID, BASE_OWNED_COUNT
- Grid geometry (TILE_SIZE, MARKER_SCALE)
- Scheduler timing (*_S / *_MS)
- Remote endpoints
"""
from __future__ import annotations

from typing import List, Tuple

# =========================
# Canvas palette (id, hex, name)
# =========================
# Index in this list must equal the id. Id 0 is the transparent sentinel and
# is never chosen for an opaque sample.
PALETTE: List[Tuple[int, str, str]] = [
    (0, "#000000", "Transparent"),
    (1, "#000000", "Black"),
    (2, "#3c3c3c", "Dark Gray"),
    (3, "#787878", "Gray"),
    (4, "#d2d2d2", "Light Gray"),
    (5, "#ffffff", "White"),
    (6, "#600018", "Deep Red"),
    (7, "#ed1c24", "Red"),
    (8, "#ff7f27", "Orange"),
    (9, "#f6aa09", "Gold"),
    (10, "#f9dd3b", "Yellow"),
    (11, "#fffabc", "Light Yellow"),
    (12, "#0eb968", "Dark Green"),
    (13, "#13e67b", "Green"),
    (14, "#87ff5e", "Light Green"),
    (15, "#0c816e", "Dark Teal"),
    (16, "#10aea6", "Teal"),
    (17, "#13e1be", "Light Teal"),
    (18, "#28509e", "Dark Blue"),
    (19, "#4093e4", "Blue"),
    (20, "#60f7f2", "Cyan"),
    (21, "#6b50f6", "Indigo"),
    (22, "#99b1fb", "Light Indigo"),
    (23, "#780c99", "Dark Purple"),
    (24, "#aa38b9", "Purple"),
    (25, "#e09ff9", "Light Purple"),
    (26, "#cb007a", "Dark Pink"),
    (27, "#ec1f80", "Pink"),
    (28, "#f38da9", "Light Pink"),
    (29, "#684634", "Dark Brown"),
    (30, "#95682a", "Brown"),
    (31, "#f8b277", "Beige"),
    (32, "#aaaaaa", "Medium Gray"),
    (33, "#a50e1e", "Dark Red"),
    (34, "#fa8072", "Light Red"),
    (35, "#e45c1a", "Dark Orange"),
    (36, "#d6b594", "Light Tan"),
    (37, "#9c8431", "Dark Goldenrod"),
    (38, "#c5ad31", "Goldenrod"),
    (39, "#e8d45f", "Light Goldenrod"),
    (40, "#4a6b3a", "Dark Olive"),
    (41, "#5a944a", "Olive"),
    (42, "#84c573", "Light Olive"),
    (43, "#0f799f", "Dark Cyan"),
    (44, "#bbfaf2", "Light Cyan"),
    (45, "#7dc7ff", "Light Blue"),
    (46, "#4d31b8", "Dark Indigo"),
    (47, "#4a4284", "Dark Slate Blue"),
    (48, "#7a71c4", "Slate Blue"),
    (49, "#b5aef1", "Light Slate Blue"),
    (50, "#dba463", "Light Brown"),
    (51, "#d18051", "Dark Beige"),
    (52, "#ffc5a5", "Light Beige"),
    (53, "#9b5249", "Dark Peach"),
    (54, "#d18078", "Peach"),
    (55, "#fab6a4", "Light Peach"),
    (56, "#7b6352", "Dark Tan"),
    (57, "#9c846b", "Tan"),
    (58, "#333941", "Dark Slate"),
    (59, "#6d758d", "Slate"),
    (60, "#b3b9d1", "Light Slate"),
    (61, "#6d643f", "Dark Stone"),
    (62, "#948c6b", "Stone"),
    (63, "#cdc59e", "Light Stone"),
]

TRANSPARENT_ID: int = 0
PALETTE_SIZE: int = 64
# Ids below this are free for everyone; the rest come from extraColorsBitmap.
BASE_OWNED_COUNT: int = 32

# ==================
# Grid geometry
# ==================
TILE_SIZE: int = 1000
MARKER_SCALE: int = 3  # must be odd so the centre of each block is well defined

# Cooperative yield cadence for long passes
TILER_YIELD_EVERY: int = 4  # tiles
ANALYSIS_YIELD_EVERY: int = 10  # tiles
COLLECT_YIELD_EVERY: int = 5  # chunks

# ==================
# Scheduler timing
# ==================
DEFAULT_COOLDOWN_MS: int = 30_000
RATE_LIMIT_BACKOFF_S: float = 30.0
CYCLE_DELAY_S: float = 10.0
RETRY_DELAY_S: float = 10.0
NO_CHARGES_DELAY_S: float = 5.0
PROTECT_PERIOD_S: float = 10.0
WAIT_POLL_S: float = 1.0
WAIT_REFRESH_EVERY: int = 10  # polls between user-state refreshes
SURFACE_WAIT_S: float = 20.0
SURFACE_POLL_S: float = 0.2

# ==================
# Remote endpoints
# ==================
API_BASE_URL: str = "https://backend.wplace.live"
TILES_URL: str = "https://backend.wplace.live/files/s0/tiles"
REQUEST_TIMEOUT_S: float = 15.0
TOKEN_ENV_VAR: str = "WPLACE_TOKEN"
