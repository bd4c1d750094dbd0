# wplace_fill/__init__.py
"""
wplace_fill package.

Purpose:
  Turn an image into palette-quantized marker tiles and reconcile the shared
  wplace canvas toward them under the account's charge budget. See
  fill_template.py for the CLI.

Public API:
  Template           : tiled template plus metadata and JSON persistence.
  TemplateAnalyzer   : cached per-pixel analysis with border classification.
  collect_pixels     : diff against the live canvas and pick the next batches.
  PlacementScheduler : charge-budgeted placement loop with protection mode.
  HttpCanvasClient   : requests-based client for the public backend.
  core_types         : shared type aliases and value objects.
  palette_data       : palette items, owned-colour bitmap helpers.
  utils              : shared helpers (formatting, PNG/base64, logging).

Quick start:
  from wplace_fill import Template, PlacementScheduler, HttpCanvasClient
  from wplace_fill.core_types import Coords
"""

__version__ = "0.1.0"

# Re-export namespaces for convenience.
from . import core_types
from . import palette_data
from . import utils

from .analyzer import AnalysisCache, TemplateAnalyzer  # noqa: E402,F401
from .client import CanvasClient, HttpCanvasClient  # noqa: E402,F401
from .collect import CollectResult, collect_pixels  # noqa: E402,F401
from .errors import (  # noqa: E402,F401
    ConfigurationError,
    FillError,
    RateLimitedError,
    ResourceNotReadyError,
    TransientNetworkError,
)
from .palette_data import PALETTE  # noqa: E402,F401
from .protection import ProtectionMonitor  # noqa: E402,F401
from .scheduler import PlacementScheduler, SchedulerSettings  # noqa: E402,F401
from .template import Template  # noqa: E402,F401

__all__ = [
    "__version__",
    "core_types",
    "palette_data",
    "utils",
    "PALETTE",
    "AnalysisCache",
    "TemplateAnalyzer",
    "CanvasClient",
    "HttpCanvasClient",
    "CollectResult",
    "collect_pixels",
    "FillError",
    "ConfigurationError",
    "TransientNetworkError",
    "RateLimitedError",
    "ResourceNotReadyError",
    "ProtectionMonitor",
    "PlacementScheduler",
    "SchedulerSettings",
    "Template",
]
