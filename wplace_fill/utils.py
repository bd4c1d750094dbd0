# wplace_fill/utils.py
from __future__ import annotations

"""
Shared utilities for wplace_fill.

Includes time formatting for countdowns and metrics, base64/PNG helpers, and
tidy print-based logging used by the CLI, the scheduler and the monitor.
"""

import base64
import io
import sys
import time
from typing import Any, Iterable, List, Tuple

import numpy as np
from PIL import Image

from .core_types import U8Image


#  Time formatting


def format_seconds_compact(seconds: float) -> str:
    """Human-friendly seconds: '<ms>ms', '<s>s', or 'Mm Ss'."""
    if seconds < 1.0:
        return f"{seconds * 1000.0:.1f}ms"
    if seconds < 60.0:
        return f"{seconds:.3f}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {seconds - 60 * minutes:.1f}s"


def format_hms(seconds: float | None) -> str:
    """Countdown style 'hh:mm:ss'; '--:--:--' for unknown or negative."""
    if seconds is None or not np.isfinite(seconds) or seconds < 0:
        return "--:--:--"
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


#  PNG / base64 helpers


def encode_png(rgba: U8Image) -> bytes:
    """Encode a uint8 (H,W,4) array as PNG bytes."""
    buf = io.BytesIO()
    Image.fromarray(rgba).save(buf, format="PNG")
    return buf.getvalue()


def decode_png_rgba(data: bytes) -> U8Image:
    """Decode image bytes into a uint8 (H,W,4) RGBA array."""
    with Image.open(io.BytesIO(data)) as im:
        return np.array(im.convert("RGBA"), dtype=np.uint8)


def bytes_to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def base64_to_bytes(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


#  CLI / progress logging


def enable_line_buffered_stdout() -> None:
    """
    Enable line-buffered stdout when supported.
    Helps live countdown printing in terminals that expose .reconfigure().
    """
    reconfig = getattr(sys.stdout, "reconfigure", None)
    if callable(reconfig):
        try:
            reconfig(line_buffering=True, write_through=True)
        except (OSError, ValueError):
            pass


# Pretty logging


def format_bool_on_off(value: Any) -> str:
    """Pretty boolean: 'on'/'off' for bools; str(value) otherwise."""
    if isinstance(value, bool):
        return "on" if value else "off"
    return str(value)


def format_number_compact(value: Any) -> str:
    """Pretty number: 1_234 style for ints; compact for floats; passthrough otherwise."""
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        text = f"{value:.3f}".rstrip("0").rstrip(".")
        return text
    return str(value)


def key_value_pairs_to_string(
    pairs: Iterable[Tuple[str, Any]], sep: str = "  ", eq: str = ": "
) -> str:
    """
    Format (name, value) pairs as 'Name: value' blocks separated by sep.
    Uses format_bool_on_off / format_number_compact for readability.
    """
    out: List[str] = []
    for name, value in pairs:
        display = (
            format_bool_on_off(value)
            if isinstance(value, bool)
            else format_number_compact(value)
        )
        out.append(f"{name}{eq}{display}")
    return sep.join(out)


def print_config_line(
    section: str, pairs: Iterable[Tuple[str, Any]], debug: bool
) -> None:
    """
    Emit a single human-readable config line, e.g.:
      [run] Mode: scan  Sleep: off  Protect: on
    Routes to debug_log() when debug=True, else to log().
    """
    line = f"[{section}] {key_value_pairs_to_string(pairs)}"
    (debug_log if debug else log)(line)


def print_banner(title: str) -> None:
    """Section banner."""
    print(f"\n=== {title} ===", flush=True)


def log(message: str) -> None:
    """Plain log line."""
    print(message, flush=True)


def log_status(message: str) -> None:
    """Timestamped status line; default sink for scheduler status."""
    print(f"[{time.strftime('%H:%M:%S')}] {message}", flush=True)


def debug_log(message: str) -> None:
    """Debug log line."""
    print(f"[debug] {message}", flush=True)


def warn(message: str) -> None:
    """Warning log line."""
    print(f"[warn] {message}", flush=True)


def error(message: str) -> None:
    """Error log line to stderr."""
    print(f"[error] {message}", file=sys.stderr, flush=True)


__all__ = [
    # formatting
    "format_seconds_compact",
    "format_hms",
    "format_bool_on_off",
    "format_number_compact",
    # png / base64
    "encode_png",
    "decode_png_rgba",
    "bytes_to_base64",
    "base64_to_bytes",
    # logging / progress
    "enable_line_buffered_stdout",
    "key_value_pairs_to_string",
    "print_config_line",
    "print_banner",
    "log",
    "log_status",
    "debug_log",
    "warn",
    "error",
]
